"""Image sources: registries and local image layouts."""

from oci_structure.registry.base import (
    DigestMismatchError,
    ImageReference,
    ImageSource,
    RegistryAuth,
    RegistryAuthError,
    RegistryError,
    RegistryNotFoundError,
    verify_digest,
)
from oci_structure.registry.layout import LayoutSource
from oci_structure.registry.oci import OCIRegistry

__all__ = [
    "DigestMismatchError",
    "ImageReference",
    "ImageSource",
    "RegistryAuth",
    "RegistryAuthError",
    "RegistryError",
    "RegistryNotFoundError",
    "verify_digest",
    "LayoutSource",
    "OCIRegistry",
]
