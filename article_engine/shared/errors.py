"""
Exception hierarchy for the article generation pipeline.

PipelineError subclasses are the failures a caller sees from
generate_article(). ExternalServiceError subclasses wrap provider and
image-processing failures; whether one is fatal depends on the stage that
raised it.
"""
import enum
from typing import Optional


class ConfigErrorReason(enum.Enum):
    """Why a run was rejected before any provider call."""
    CATEGORY_NOT_FOUND = "category_not_found"
    WRITER_NOT_FOUND = "writer_not_found"
    IMAGE_PATTERN_NOT_FOUND = "image_pattern_not_found"
    MISSING_CREDENTIALS = "missing_credentials"
    INVALID_REQUEST = "invalid_request"


class PipelineError(Exception):
    """Base class for errors that abort an article generation run."""
    pass


class ConfigurationError(PipelineError):
    """A referenced document or credential is missing."""

    def __init__(self, reason: ConfigErrorReason, detail: str = ""):
        self.reason = reason
        self.detail = detail
        message = reason.value if not detail else f"{reason.value}: {detail}"
        super().__init__(message)


class UniquenessExhaustedError(PipelineError):
    """A bounded retry loop never produced an acceptable value."""

    def __init__(self, label: str, attempts: int):
        self.label = label
        self.attempts = attempts
        super().__init__(f"Failed to produce a unique {label} after {attempts} attempts")


class RequiredAssetError(PipelineError):
    """The featured image could not be generated or stored."""
    pass


class PersistenceError(PipelineError):
    """The final article write failed."""
    pass


class EntityNotFoundError(Exception):
    """Document does not exist in the content store."""

    def __init__(self, collection: str, entity_id: str):
        self.collection = collection
        self.entity_id = entity_id
        super().__init__(f"{collection}/{entity_id} not found")


class ExternalServiceError(Exception):
    """Base class for failures of an external provider."""

    def __init__(self, message: str, provider: Optional[str] = None):
        self.provider = provider
        super().__init__(message)


class LLMError(ExternalServiceError):
    """Text generation call failed or returned an empty completion."""
    pass


class ImageGenerationError(ExternalServiceError):
    """Image provider failed or returned no image."""
    pass


class ImageProcessingError(ExternalServiceError):
    """Downloaded image could not be decoded, resized or encoded."""
    pass
