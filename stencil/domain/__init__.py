"""Domain layer: errors, constants and schemas."""

from .errors import (
    ConfigError,
    CopyCancelledError,
    CopyIOError,
    DestinationNotEmptyError,
    ErrorCodes,
    InvalidTemplateNameError,
    PatternSyntaxError,
    RegistryCorruptError,
    RegistryLockTimeoutError,
    StencilError,
    TemplateExistsError,
    TemplateNotFoundError,
)
from .schemas import (
    CopyOptions,
    CopyStats,
    RegistryReport,
    SymlinkPolicy,
    Template,
)

__all__ = [
    # errors
    "StencilError",
    "ErrorCodes",
    "PatternSyntaxError",
    "TemplateExistsError",
    "TemplateNotFoundError",
    "InvalidTemplateNameError",
    "CopyIOError",
    "DestinationNotEmptyError",
    "RegistryCorruptError",
    "RegistryLockTimeoutError",
    "CopyCancelledError",
    "ConfigError",
    # schemas
    "CopyOptions",
    "CopyStats",
    "SymlinkPolicy",
    "Template",
    "RegistryReport",
]
