"""Knowledge base of PATH-like environment variables.

Values of these variables are lists of filesystem locations. A relative
entry, or a literal ``$NAME`` left over from an unexpanded Dockerfile
``ENV NAME=$NAME:...``, makes lookups depend on the working directory or
fail outright, so their values are audited component by component.
"""

from types import MappingProxyType
from typing import Mapping

PATH_LIKE_VARS: Mapping[str, str] = MappingProxyType(
    {
        "CDC_AGENT_PATH": ":",
        "CRI_CONFIG_PATH": ":",
        "GATUS_CONFIG_PATH": ":",
        "GCONV_PATH": ":",
        "GEM_PATH": ":",
        "GETCONF_DIR": ":",
        "GOPATH": ":",
        "JAVA_HOME": ":",
        "KO_DATA_PATH": ":",
        "LD_LIBRARY_PATH": ":",
        "LD_ORIGIN_PATH": ":",
        "LD_PRELOAD": ":",
        "LIBRARY_PATH": ":",
        "LOCPATH": ":",
        # Lua uses ';' between search templates
        "LUA_CPATH": ";",
        "LUA_PATH": ";",
        "MAAC_PATH": ":",
        "MCAC_PATH": ":",
        "NKEYS_PATH": ":",
        "NIS_PATH": ":",
        "NLSPATH": ":",
        "OPENSEARCH_PATH_CONF": ":",
        "PATH": ":",
        "PERLLIB": ":",
        "PYTHONPATH": ":",
        "RESOLV_HOST_CONF": ":",
        "TMPDIR": ":",
        "TZDIR": ":",
        "ZAP_PATH": ":",
    }
)


def get_separator(name: str) -> str | None:
    """Get the list separator of a PATH-like variable, or None if unknown."""
    return PATH_LIKE_VARS.get(name)
