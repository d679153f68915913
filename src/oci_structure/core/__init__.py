"""Core domain logic for oci-structure.

This module provides the main library API for checking image structure.
"""

from oci_structure.core.check import (
    ConditionChecker,
    check_dirs,
    check_env,
    check_files,
    check_image,
    check_permissions,
)
from oci_structure.core.env_audit import audit_env_value, split_env
from oci_structure.core.image import (
    BlobLayer,
    Image,
    ImageDescriptor,
    Layer,
    OCIImage,
    OCIIndex,
    open_uncompressed,
    resolve_image,
)
from oci_structure.core.layers import materialize
from oci_structure.core.loader import (
    conditions_from_flags,
    load_conditions,
    parse_conditions,
    parse_env_flag,
    parse_file_flag,
    save_conditions,
)
from oci_structure.core.tarfs import TarFilesystem

__all__ = [
    "ConditionChecker",
    "check_image",
    "check_env",
    "check_files",
    "check_dirs",
    "check_permissions",
    # Env audit
    "audit_env_value",
    "split_env",
    # Images
    "BlobLayer",
    "Image",
    "ImageDescriptor",
    "Layer",
    "OCIImage",
    "OCIIndex",
    "open_uncompressed",
    "resolve_image",
    # Filesystem
    "materialize",
    "TarFilesystem",
    # Loading
    "conditions_from_flags",
    "load_conditions",
    "parse_conditions",
    "parse_env_flag",
    "parse_file_flag",
    "save_conditions",
]
