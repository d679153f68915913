"""Static knowledge tables."""

from oci_structure.knowledge.path_vars import PATH_LIKE_VARS, get_separator

__all__ = [
    "PATH_LIKE_VARS",
    "get_separator",
]
