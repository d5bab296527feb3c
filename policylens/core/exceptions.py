class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass

class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass

class ValidationError(AppError):
    """Raised when input validation fails."""
    pass

class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass

class DocumentNotFoundError(AppError):
    """Raised when a document does not exist for the requesting tenant."""
    pass

class DocumentAlreadyProcessingError(AppError):
    """Raised when a processing run is requested for a document that is already running."""
    pass

class ConversationNotFoundError(AppError):
    """Raised when a conversation does not exist for the requesting tenant."""
    pass

class PipelineError(AppError):
    """Raised when a document pipeline stage fails terminally."""
    def __init__(self, message: str, stage: str = None, original_error: Exception = None):
        super().__init__(message, original_error)
        self.stage = stage

class ExtractionParseError(AppError):
    """Raised when an LLM response does not match the expected JSON shape."""
    pass

class EmbeddingError(AppError):
    """Raised when an embedding batch cannot be produced."""
    pass
