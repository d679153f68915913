"""Flattened filesystem entry model."""

import stat
from enum import Enum

from pydantic import BaseModel, Field

from oci_structure.models.common import PERM_MASK


class EntryKind(str, Enum):
    """Type of a filesystem node."""

    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"
    HARDLINK = "hardlink"
    OTHER = "other"


_TYPE_BITS = {
    EntryKind.FILE: stat.S_IFREG,
    EntryKind.DIR: stat.S_IFDIR,
    EntryKind.SYMLINK: stat.S_IFLNK,
    EntryKind.HARDLINK: stat.S_IFREG,
    EntryKind.OTHER: 0,
}


class FileEntry(BaseModel):
    """One live node of the flattened image filesystem.

    ``mode`` carries both the file-type bits and the permission bits, like
    ``st_mode``. Compare permissions through :attr:`perm`, never ``mode``.
    """

    model_config = {"frozen": True}

    path: str = Field(description="Absolute POSIX path with a leading slash")
    kind: EntryKind = Field(description="Node type")
    mode: int = Field(description="Type bits plus permission bits")
    size: int = Field(default=0, description="Content size in bytes")
    link_target: str | None = Field(default=None, description="Symlink or hard link target")
    offset: int | None = Field(
        default=None,
        description="Offset of the content in the spooled tar (None for dirs and links)",
    )
    implicit: bool = Field(
        default=False,
        description="Directory synthesized because the tar only contained its children",
    )

    @property
    def perm(self) -> int:
        """Permission bits including setuid, setgid and sticky."""
        return self.mode & PERM_MASK

    @property
    def is_dir(self) -> bool:
        return self.kind == EntryKind.DIR

    @property
    def is_symlink(self) -> bool:
        return self.kind == EntryKind.SYMLINK

    @property
    def is_regular(self) -> bool:
        return self.kind in (EntryKind.FILE, EntryKind.HARDLINK)

    @staticmethod
    def compose_mode(kind: EntryKind, perm: int) -> int:
        """Combine a node type with permission bits into an ``st_mode`` value."""
        return _TYPE_BITS[kind] | (perm & PERM_MASK)
