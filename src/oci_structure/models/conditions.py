"""Condition data models.

Conditions form a closed set of variants distinguished by ``kind``.
Each variant maps a subject (an env var name or an absolute path) to
what is expected of it.
"""

import re
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator

from oci_structure.models.common import parse_mode

_MULTILINE_FLAG = re.compile(r"\(\?[a-zA-Z]*m")


def anchor_end_of_text(pattern: str) -> str:
    """Make ``$`` match only at the very end of the content.

    Python's ``$`` also matches just before a trailing newline, so ``bar$``
    would accept ``"bar\\n"``. Bare ``$`` outside character classes becomes
    ``\\Z`` unless the pattern turns on multiline mode, and ``\\z`` is
    accepted as another spelling of ``\\Z``.
    """
    multiline = _MULTILINE_FLAG.search(pattern) is not None
    out = []
    in_class = False
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "\\" and i + 1 < len(pattern):
            escaped = pattern[i : i + 2]
            out.append("\\Z" if escaped == "\\z" and not in_class else escaped)
            i += 2
            continue
        if in_class:
            in_class = c != "]"
        elif c == "[":
            in_class = True
            # a ] right after [ or [^ is literal
            end = i + 1
            if pattern.startswith("^", end):
                end += 1
            if pattern.startswith("]", end):
                out.append(pattern[i : end + 1])
                i = end + 1
                continue
        elif c == "$" and not multiline:
            c = "\\Z"
        out.append(c)
        i += 1
    return "".join(out)


def compile_content_regex(pattern: str) -> re.Pattern[bytes]:
    """Compile a file-content pattern for matching against raw bytes."""
    return re.compile(anchor_end_of_text(pattern).encode("utf-8"))


def _check_absolute(paths: dict[str, object]) -> None:
    for path in paths:
        if not path.startswith("/"):
            raise ValueError(f"path {path!r} must be absolute")


class FileSpec(BaseModel):
    """Expectations for one file."""

    model_config = {"frozen": True}

    optional: bool = Field(
        default=False,
        description="Skip silently when the file is absent",
    )
    mode: int | None = Field(default=None, description="Expected permission bits")
    regex: str | None = Field(default=None, description="Pattern the content must match")

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, v: object) -> int | None:
        return None if v is None else parse_mode(v)

    @field_validator("regex")
    @classmethod
    def _compile_regex(cls, v: str | None) -> str | None:
        if v:
            try:
                compile_content_regex(v)
            except re.error as e:
                raise ValueError(f"invalid regex {v!r}: {e}") from e
        return v


class DirSpec(BaseModel):
    """Expectations for a directory, or every node below it."""

    model_config = {"frozen": True}

    mode: int = Field(description="Expected permission bits")
    recursive: bool = Field(default=False, description="Check the whole subtree")
    files_only: bool = Field(
        default=False,
        description="When recursive, only check regular files",
    )

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, v: object) -> int:
        return parse_mode(v)


class PermSpec(BaseModel):
    """A permission value nothing under a root may carry."""

    model_config = {"frozen": True}

    block: int = Field(description="Blocked permission bits")
    override: list[str] = Field(
        default_factory=list,
        description="Path prefixes exempt from the block",
    )

    @field_validator("block", mode="before")
    @classmethod
    def _parse_block(cls, v: object) -> int:
        return parse_mode(v)

    @field_validator("override")
    @classmethod
    def _normalize_override(cls, v: list[str]) -> list[str]:
        out = []
        for prefix in v:
            if not prefix.startswith("/"):
                raise ValueError(f"override prefix {prefix!r} must be absolute")
            out.append(prefix.rstrip("/") or "/")
        return out

    def is_overridden(self, path: str) -> bool:
        """Check whether ``path`` falls under an override prefix.

        Matching is on path-segment boundaries: ``/usr/bin`` covers
        ``/usr/bin`` and ``/usr/bin/sudo`` but not ``/usr/binary``.
        """
        for prefix in self.override:
            if prefix == "/" or path == prefix or path.startswith(prefix + "/"):
                return True
        return False


class EnvCondition(BaseModel):
    """Environment variables must have the given values."""

    model_config = {"frozen": True}

    kind: Literal["env"] = "env"
    want: dict[str, str] = Field(default_factory=dict)

    @field_validator("want")
    @classmethod
    def _check_names(cls, v: dict[str, str]) -> dict[str, str]:
        for name in v:
            if not name or "=" in name:
                raise ValueError(f"invalid environment variable name {name!r}")
        return v


class FileCondition(BaseModel):
    """Files must exist with the given content and permissions."""

    model_config = {"frozen": True}

    kind: Literal["files"] = "files"
    want: dict[str, FileSpec] = Field(default_factory=dict)

    @field_validator("want")
    @classmethod
    def _check_paths(cls, v: dict[str, FileSpec]) -> dict[str, FileSpec]:
        _check_absolute(v)
        return v


class DirCondition(BaseModel):
    """Directories (or their contents) must have the given permissions."""

    model_config = {"frozen": True}

    kind: Literal["dirs"] = "dirs"
    want: dict[str, DirSpec] = Field(default_factory=dict)

    @field_validator("want")
    @classmethod
    def _check_paths(cls, v: dict[str, DirSpec]) -> dict[str, DirSpec]:
        _check_absolute(v)
        return v


class PermissionCondition(BaseModel):
    """No node under a root may carry a blocked permission."""

    model_config = {"frozen": True}

    kind: Literal["permissions"] = "permissions"
    want: dict[str, PermSpec] = Field(default_factory=dict)

    @field_validator("want")
    @classmethod
    def _check_paths(cls, v: dict[str, PermSpec]) -> dict[str, PermSpec]:
        _check_absolute(v)
        return v


Condition = Annotated[
    Union[EnvCondition, FileCondition, DirCondition, PermissionCondition],
    Field(discriminator="kind"),
]

FILESYSTEM_KINDS = frozenset({"files", "dirs", "permissions"})


class ConditionSet(BaseModel):
    """An ordered collection of conditions evaluated together."""

    model_config = {"frozen": True}

    conditions: list[Condition] = Field(default_factory=list)

    @property
    def needs_filesystem(self) -> bool:
        """Whether any condition has to look at image content."""
        return any(c.kind in FILESYSTEM_KINDS for c in self.conditions)

    def __len__(self) -> int:
        return len(self.conditions)

    def extended(self, *conditions: Condition) -> "ConditionSet":
        """Return a new set with ``conditions`` appended."""
        return ConditionSet(conditions=[*self.conditions, *conditions])
