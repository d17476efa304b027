"""
Shared infrastructure across nodes.
"""
from .context import NodeContext
from .errors import (
    ConfigErrorReason,
    ConfigurationError,
    EntityNotFoundError,
    ExternalServiceError,
    ImageGenerationError,
    ImageProcessingError,
    LLMError,
    PersistenceError,
    PipelineError,
    RequiredAssetError,
    UniquenessExhaustedError,
)
from .storage import LocalObjectStorage, ObjectStorage

__all__ = [
    "NodeContext",
    "ConfigErrorReason",
    "ConfigurationError",
    "EntityNotFoundError",
    "ExternalServiceError",
    "ImageGenerationError",
    "ImageProcessingError",
    "LLMError",
    "PersistenceError",
    "PipelineError",
    "RequiredAssetError",
    "UniquenessExhaustedError",
    "LocalObjectStorage",
    "ObjectStorage",
]
