"""Utility functions for oci-structure."""

from oci_structure.utils.hashing import compute_digest, split_digest
from oci_structure.utils.logging import (
    configure_logging,
    get_logger,
    get_logger_with_context,
    log_duration,
)
from oci_structure.utils.errors import (
    StructureError,
    ValidationError,
    InvalidPathError,
    ConfigurationError,
    ImageResolutionError,
    LayerError,
    SpoolError,
    FilesystemError,
    EvaluationTimeoutError,
    ConditionsNotMetError,
    validate_env_var_name,
)
from oci_structure.utils.config import (
    StructureConfig,
    CheckConfig,
    RegistryConfig,
    OutputConfig,
    load_config,
    save_config,
    get_config,
    set_config,
)

__all__ = [
    # Hashing
    "compute_digest",
    "split_digest",
    # Logging
    "configure_logging",
    "get_logger",
    "get_logger_with_context",
    "log_duration",
    # Errors
    "StructureError",
    "ValidationError",
    "InvalidPathError",
    "ConfigurationError",
    "ImageResolutionError",
    "LayerError",
    "SpoolError",
    "FilesystemError",
    "EvaluationTimeoutError",
    "ConditionsNotMetError",
    "validate_env_var_name",
    # Config
    "StructureConfig",
    "CheckConfig",
    "RegistryConfig",
    "OutputConfig",
    "load_config",
    "save_config",
    "get_config",
    "set_config",
]
