"""Document processing pipeline orchestration."""

from policylens.services.pipeline.document_processing_service import DocumentProcessingService
from policylens.services.pipeline.progress_notifier import (
    LoggingProgressNotifier,
    ProgressNotifier,
    QueueProgressNotifier,
)

__all__ = [
    "DocumentProcessingService",
    "LoggingProgressNotifier",
    "ProgressNotifier",
    "QueueProgressNotifier",
]
