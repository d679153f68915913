"""Audit of PATH-like environment values."""

from __future__ import annotations

from oci_structure.knowledge.path_vars import get_separator


def split_env(entries: list[str]) -> dict[str, str]:
    """Index raw ``KEY=VALUE`` strings by name.

    The last entry for a repeated name wins. An entry without ``=`` maps
    to an empty value.
    """
    out: dict[str, str] = {}
    for item in entries:
        key, _, value = item.partition("=")
        out[key] = value
    return out


def audit_env_value(name: str, value: str) -> list[str]:
    """Check every component of a PATH-like value.

    Components must be absolute and must not be the literal ``$NAME``
    reference to the variable itself. Variables missing from the
    knowledge table are not audited.

    Returns:
        One message per offending component
    """
    separator = get_separator(name)
    if separator is None:
        return []

    literal = f"${name}"
    problems = []
    for component in value.split(separator):
        if not component.startswith("/") or component == literal:
            problems.append(
                f"env {name} value {value!r} references relative path "
                f"or literal $ string {component!r}"
            )
    return problems
