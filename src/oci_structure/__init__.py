"""oci-structure: check the structure of OCI container images.

This package evaluates declarative conditions against an image's
flattened filesystem and config, without running the image:

- **Env conditions**: config environment values, with an audit of
  PATH-like values for relative entries and literal ``$`` references
- **File conditions**: existence, content regex and permission bits
- **Dir conditions**: directory modes, optionally for every node below
- **Permission conditions**: nodes whose permissions equal a blocked value

Usage:
    # Library API
    from oci_structure import ConditionChecker, ConditionSet, FileCondition, FileSpec
    from oci_structure import OCIRegistry, resolve_image

    image = resolve_image(OCIRegistry().resolve("cgr.dev/chainguard/static:latest"), "linux/amd64")
    result = ConditionChecker(timeout=300).evaluate(
        image,
        ConditionSet(conditions=[FileCondition(want={"/etc/passwd": FileSpec(regex="nonroot")})]),
    )
    print(result.report())

CLI:
    oci-structure check <image> --file /etc/passwd=nonroot --env PATH=/usr/bin:/bin
    oci-structure check --layout ./image --conditions distroless.yaml
    oci-structure conditions distroless.yaml
"""

__version__ = "0.1.0"

# Core
from oci_structure.core.check import ConditionChecker, check_image
from oci_structure.core.image import BlobLayer, ImageDescriptor, OCIImage, OCIIndex, resolve_image
from oci_structure.core.layers import materialize
from oci_structure.core.loader import load_conditions, save_conditions
from oci_structure.core.tarfs import TarFilesystem

# Models (commonly used)
from oci_structure.models.conditions import (
    ConditionSet,
    DirCondition,
    DirSpec,
    EnvCondition,
    FileCondition,
    FileSpec,
    PermissionCondition,
    PermSpec,
)
from oci_structure.models.image import ImageMetadata, Platform
from oci_structure.models.result import CheckResult, Violation

# Sources
from oci_structure.registry import LayoutSource, OCIRegistry

# Errors
from oci_structure.utils.errors import ConditionsNotMetError, StructureError

__all__ = [
    # Version
    "__version__",
    # Core
    "ConditionChecker",
    "check_image",
    "BlobLayer",
    "ImageDescriptor",
    "OCIImage",
    "OCIIndex",
    "resolve_image",
    "materialize",
    "load_conditions",
    "save_conditions",
    "TarFilesystem",
    # Models - Conditions
    "ConditionSet",
    "DirCondition",
    "DirSpec",
    "EnvCondition",
    "FileCondition",
    "FileSpec",
    "PermissionCondition",
    "PermSpec",
    # Models - Image
    "ImageMetadata",
    "Platform",
    # Models - Result
    "CheckResult",
    "Violation",
    # Sources
    "LayoutSource",
    "OCIRegistry",
    # Errors
    "ConditionsNotMetError",
    "StructureError",
]
