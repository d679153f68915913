"""Common model types shared across modules."""

from typing import Any

from pydantic import BaseModel, Field


class AuditError(BaseModel):
    """Machine-readable form of an error that aborted an evaluation."""

    model_config = {"frozen": True}

    code: str = Field(description="Error code for programmatic handling")
    message: str = Field(description="Human-readable error message")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional error context",
    )

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


PERM_MASK = 0o7777
"""Permission bits considered in mode comparisons: rwx for all classes plus setuid, setgid and sticky."""


def format_mode(mode: int) -> str:
    """Render permission bits as zero-padded octal, e.g. ``0644`` or ``4755``."""
    return format(mode & PERM_MASK, "04o")


def parse_mode(value: Any) -> int:
    """Parse a permission value given as an int or an octal string.

    Accepts ``0o644``, ``0644`` and ``644``. Integers are taken as-is.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid mode: {value!r}")
    if isinstance(value, int):
        mode = value
    elif isinstance(value, str):
        text = value.strip().lower()
        if text.startswith("0o"):
            text = text[2:]
        if not text or any(c not in "01234567" for c in text):
            raise ValueError(f"invalid octal mode: {value!r}")
        mode = int(text, 8)
    else:
        raise ValueError(f"invalid mode: {value!r}")
    if mode < 0 or mode > PERM_MASK:
        raise ValueError(f"mode out of range: {value!r}")
    return mode
