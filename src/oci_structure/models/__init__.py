"""Data models for oci-structure.

All models are Pydantic BaseModel with frozen=True for immutability.
"""

from oci_structure.models.common import AuditError, PERM_MASK, format_mode, parse_mode
from oci_structure.models.image import (
    ImageDigest,
    ImageIndexManifest,
    ImageManifest,
    ImageMetadata,
    IndexEntry,
    LayerInfo,
    Platform,
)
from oci_structure.models.filesystem import EntryKind, FileEntry
from oci_structure.models.conditions import (
    Condition,
    ConditionSet,
    DirCondition,
    DirSpec,
    EnvCondition,
    FileCondition,
    FileSpec,
    PermissionCondition,
    PermSpec,
)
from oci_structure.models.result import CheckResult, Violation

__all__ = [
    # Common
    "AuditError",
    "PERM_MASK",
    "format_mode",
    "parse_mode",
    # Image
    "ImageDigest",
    "ImageIndexManifest",
    "ImageManifest",
    "ImageMetadata",
    "IndexEntry",
    "LayerInfo",
    "Platform",
    # Filesystem
    "EntryKind",
    "FileEntry",
    # Conditions
    "Condition",
    "ConditionSet",
    "DirCondition",
    "DirSpec",
    "EnvCondition",
    "FileCondition",
    "FileSpec",
    "PermissionCondition",
    "PermSpec",
    # Results
    "CheckResult",
    "Violation",
]
