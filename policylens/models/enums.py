"""Closed vocabularies shared across the pipeline."""

from enum import Enum


class SectionType(str, Enum):
    """Insurance document section types used to tag chunks."""
    DECLARATIONS = "declarations"
    COVERAGE_FORM = "coverage_form"
    ENDORSEMENTS = "endorsements"
    SCHEDULE = "schedule"
    CONDITIONS = "conditions"
    EXCLUSIONS = "exclusions"
    DEFINITIONS = "definitions"
    UNKNOWN = "unknown"


class DocumentType(str, Enum):
    POLICY = "policy"
    QUOTE = "quote"
    BINDER = "binder"
    ENDORSEMENT = "endorsement"
    DEC_PAGE = "dec_page"
    CERTIFICATE = "certificate"
    CONTRACT = "contract"
    UNKNOWN = "unknown"


class CoverageType(str, Enum):
    """Coverage lines recognised by classification and extraction."""
    GENERAL_LIABILITY = "general_liability"
    COMMERCIAL_PROPERTY = "commercial_property"
    BUSINESS_AUTO = "business_auto"
    WORKERS_COMPENSATION = "workers_compensation"
    UMBRELLA_EXCESS = "umbrella_excess"
    BOP = "bop"

    WIND_HAIL = "wind_hail"
    FLOOD = "flood"
    EARTHQUAKE = "earthquake"
    DIFFERENCE_IN_CONDITIONS = "difference_in_conditions"

    BUILDERS_RISK = "builders_risk"
    INLAND_MARINE = "inland_marine"
    OCEAN_MARINE = "ocean_marine"
    BOILER_MACHINERY = "boiler_machinery"

    PROFESSIONAL_LIABILITY = "professional_liability"
    DIRECTORS_OFFICERS = "directors_officers"
    EMPLOYMENT_PRACTICES = "employment_practices"
    CYBER_LIABILITY = "cyber_liability"
    MEDICAL_MALPRACTICE = "medical_malpractice"

    POLLUTION_LIABILITY = "pollution_liability"
    PRODUCT_LIABILITY = "product_liability"
    LIQUOR_LIABILITY = "liquor_liability"
    GARAGE_LIABILITY = "garage_liability"

    CRIME_FIDELITY = "crime_fidelity"
    SURETY_BOND = "surety_bond"
    AVIATION = "aviation"


class PolicyStatus(str, Enum):
    QUOTE = "quote"
    BOUND = "bound"
    ACTIVE = "active"


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessingStage(str, Enum):
    """Last stage whose writes were committed for a document."""
    TEXT_EXTRACTED = "text_extracted"
    CHUNKED = "chunked"
    CLASSIFIED = "classified"
    EXTRACTED = "extracted"
    VALIDATED = "validated"
    EMBEDDED = "embedded"


class EmbeddingStatus(str, Enum):
    PENDING = "pending"
    EMBEDDED = "embedded"
    FAILED = "failed"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
