"""Error hierarchy for oci-structure.

Two classes of failure exist. Errors that make an evaluation impossible
(layers cannot be read, the scratch file cannot be written, the index
cannot be built) are raised as :class:`StructureError` subclasses and
abort the evaluation. Everything else is a violation, collected and
reported together through :class:`ConditionsNotMetError`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from oci_structure.models.common import AuditError

if TYPE_CHECKING:
    from oci_structure.models.result import Violation


class StructureError(Exception):
    """Base exception for oci-structure."""

    def __init__(self, message: str, code: str = "UNKNOWN_ERROR", details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_audit_error(self) -> AuditError:
        """Convert to AuditError model."""
        return AuditError(code=self.code, message=self.message, details=self.details)


class ValidationError(StructureError):
    """User-supplied input failed validation."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class InvalidPathError(ValidationError):
    """A filesystem path is not absolute or otherwise unusable."""

    def __init__(self, path: str, reason: str = "path must be absolute"):
        super().__init__(f"invalid path {path!r}: {reason}", field="path")
        self.path = path


class ConfigurationError(StructureError):
    """Configuration error."""

    def __init__(self, message: str, config_key: str | None = None):
        details = {"config_key": config_key} if config_key else {}
        super().__init__(message, code="CONFIG_ERROR", details=details)


class ImageResolutionError(StructureError):
    """A descriptor could not be turned into a single image."""

    def __init__(self, message: str, reference: str | None = None):
        details = {"reference": reference} if reference else {}
        super().__init__(message, code="IMAGE_RESOLUTION_ERROR", details=details)


class LayerError(StructureError):
    """A layer could not be listed, decompressed or parsed."""

    def __init__(self, message: str, layer: int | None = None):
        details = {"layer": layer} if layer is not None else {}
        super().__init__(message, code="LAYER_ERROR", details=details)


class SpoolError(StructureError):
    """The flattened filesystem could not be written to scratch storage."""

    def __init__(self, message: str):
        super().__init__(message, code="SPOOL_ERROR")


class FilesystemError(StructureError):
    """Unexpected failure reading the flattened filesystem."""

    def __init__(self, message: str, path: str | None = None):
        details = {"path": path} if path else {}
        super().__init__(message, code="FILESYSTEM_ERROR", details=details)


class EvaluationTimeoutError(StructureError):
    """The caller-supplied deadline passed during evaluation."""

    def __init__(self, message: str = "Evaluation timed out", timeout: float | None = None):
        details = {"timeout": timeout} if timeout else {}
        super().__init__(message, code="TIMEOUT_ERROR", details=details)


class ConditionsNotMetError(StructureError):
    """One or more conditions were violated.

    ``str()`` of this error is the full report, one violation per line
    (regex mismatches include the file content and span several lines).
    """

    def __init__(self, violations: list[Violation], reference: str | None = None):
        self.violations = list(violations)
        message = "\n".join(v.message for v in self.violations)
        details: dict[str, Any] = {"count": len(self.violations)}
        if reference:
            details["reference"] = reference
        super().__init__(message, code="CONDITIONS_NOT_MET", details=details)


def validate_env_var_name(name: str) -> None:
    """Validate an environment variable name.

    Args:
        name: Environment variable name to validate

    Raises:
        ValidationError: If name is invalid
    """
    if not name:
        raise ValidationError("Environment variable name cannot be empty", field="name")

    if "=" in name:
        raise ValidationError(
            f"Environment variable name contains '=': {name}",
            field="name",
        )
