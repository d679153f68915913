"""Read-only filesystem view over a seekable tar.

The tar is scanned once, header by header, seeking over content. The
resulting index maps every absolute path to a :class:`FileEntry` holding
the content offset, so later lookups never rescan the archive. Memory
grows with the number of entries, not with their size; content is read
from the underlying file on demand.
"""

from __future__ import annotations

import errno
import io
import os
import posixpath
import stat
import tarfile
from typing import BinaryIO, Iterator

from oci_structure.models.filesystem import EntryKind, FileEntry
from oci_structure.utils.errors import FilesystemError, InvalidPathError
from oci_structure.utils.logging import get_logger

logger = get_logger("tarfs")

MAX_SYMLINK_HOPS = 40
WHITEOUT_PREFIX = ".wh."
IMPLICIT_DIR_MODE = stat.S_IFDIR | 0o755

_SPECIAL_TYPES = {
    tarfile.CHRTYPE: stat.S_IFCHR,
    tarfile.BLKTYPE: stat.S_IFBLK,
    tarfile.FIFOTYPE: stat.S_IFIFO,
}


def normalize_member_name(name: str) -> str:
    """Map a tar member name to an absolute path.

    ``./usr/bin/``, ``usr/bin`` and ``/usr/bin`` all become ``/usr/bin``.
    ``..`` segments are folded lexically and cannot climb above ``/``.
    """
    return posixpath.normpath("/" + name.lstrip("/"))


def is_whiteout(path: str) -> bool:
    return posixpath.basename(path).startswith(WHITEOUT_PREFIX)


def entry_from_tarinfo(info: tarfile.TarInfo, path: str) -> FileEntry:
    """Build the index entry for one tar header."""
    perm = info.mode & 0o7777
    if info.isdir():
        kind = EntryKind.DIR
    elif info.issym():
        kind = EntryKind.SYMLINK
    elif info.islnk():
        kind = EntryKind.HARDLINK
    elif info.isreg():
        kind = EntryKind.FILE
    else:
        return FileEntry(
            path=path,
            kind=EntryKind.OTHER,
            mode=_SPECIAL_TYPES.get(info.type, 0) | perm,
        )

    if kind == EntryKind.FILE:
        return FileEntry(
            path=path,
            kind=kind,
            mode=FileEntry.compose_mode(kind, perm),
            size=info.size,
            offset=info.offset_data,
        )
    target = info.linkname
    if kind == EntryKind.HARDLINK:
        target = normalize_member_name(target)
    return FileEntry(
        path=path,
        kind=kind,
        mode=FileEntry.compose_mode(kind, perm),
        link_target=target if kind != EntryKind.DIR else None,
    )


class _SectionReader(io.RawIOBase):
    """Reads ``size`` bytes starting at ``offset`` of a shared seekable file."""

    def __init__(self, fileobj: BinaryIO, offset: int, size: int) -> None:
        self._fileobj = fileobj
        self._offset = offset
        self._size = size
        self._pos = 0

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._pos

    def seek(self, pos: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            new = pos
        elif whence == io.SEEK_CUR:
            new = self._pos + pos
        elif whence == io.SEEK_END:
            new = self._size + pos
        else:
            raise ValueError(f"invalid whence: {whence}")
        if new < 0:
            raise ValueError("negative seek position")
        self._pos = new
        return new

    def readinto(self, buffer) -> int:
        remaining = self._size - self._pos
        if remaining <= 0:
            return 0
        n = min(len(buffer), remaining)
        self._fileobj.seek(self._offset + self._pos)
        data = self._fileobj.read(n)
        if len(data) < n:
            raise FilesystemError("unexpected end of data in spooled filesystem")
        buffer[: len(data)] = data
        self._pos += len(data)
        return len(data)


class TarFilesystem:
    """Random-access, read-only view of a flattened image filesystem.

    Example:
        with open("flat.tar", "rb") as f:
            fs = TarFilesystem(f)
            info = fs.stat("/etc/passwd")
            with fs.open("/etc/passwd") as fh:
                data = fh.read()

    Raises from lookups:
        InvalidPathError: path is not absolute
        FileNotFoundError: path (or a component) does not exist
        NotADirectoryError: a non-final component is not a directory
        IsADirectoryError: ``open`` on a directory
        OSError(ELOOP): too many symlink hops
        FilesystemError: anything unexpected while reading
    """

    def __init__(self, fileobj: BinaryIO) -> None:
        self._fileobj = fileobj
        self._entries: dict[str, FileEntry] = {}
        self._children: dict[str, set[str]] = {"/": set()}
        self._entries["/"] = FileEntry(path="/", kind=EntryKind.DIR, mode=IMPLICIT_DIR_MODE, implicit=True)
        self._build_index()

    def __len__(self) -> int:
        return len(self._entries)

    # Index construction

    def _build_index(self) -> None:
        try:
            self._fileobj.seek(0, os.SEEK_END)
            if self._fileobj.tell() == 0:
                return
            self._fileobj.seek(0)
            with tarfile.open(fileobj=self._fileobj, mode="r:") as tf:
                while (info := tf.next()) is not None:
                    self._add(info)
                    # headers only; drop the member list tarfile keeps
                    tf.members.clear()
        except tarfile.TarError as e:
            raise FilesystemError(f"building filesystem index: {e}") from e
        except OSError as e:
            raise FilesystemError(f"reading spooled filesystem: {e}") from e
        logger.debug("indexed %d filesystem entries", len(self._entries))

    def _add(self, info: tarfile.TarInfo) -> None:
        path = normalize_member_name(info.name)
        if is_whiteout(path):
            return
        entry = entry_from_tarinfo(info, path)
        if path == "/":
            if entry.is_dir:
                self._entries["/"] = entry
            return

        parent = posixpath.dirname(path)
        self._ensure_dir(parent)

        previous = self._entries.get(path)
        if previous is not None and previous.is_dir and not entry.is_dir:
            self._drop_subtree(path)
        self._entries[path] = entry
        self._children[parent].add(posixpath.basename(path))
        if entry.is_dir:
            self._children.setdefault(path, set())

    def _ensure_dir(self, path: str) -> None:
        if path in self._children:
            return
        parent = posixpath.dirname(path)
        self._ensure_dir(parent)
        if path not in self._entries:
            self._entries[path] = FileEntry(
                path=path,
                kind=EntryKind.DIR,
                mode=IMPLICIT_DIR_MODE,
                implicit=True,
            )
        self._children[parent].add(posixpath.basename(path))
        self._children[path] = set()

    def _drop_subtree(self, path: str) -> None:
        stack = [path]
        while stack:
            current = stack.pop()
            for name in self._children.pop(current, set()):
                child = posixpath.join(current, name)
                self._entries.pop(child, None)
                stack.append(child)

    # Lookup

    @staticmethod
    def clean_path(path: str) -> str:
        """Validate and normalize a query path.

        Raises:
            InvalidPathError: If the path is empty or relative
        """
        if not path or not path.startswith("/"):
            raise InvalidPathError(path)
        if "\x00" in path:
            raise InvalidPathError(path, "path contains a NUL byte")
        return posixpath.normpath("/" + path.lstrip("/"))

    def _resolve(self, path: str, follow_last: bool = True) -> FileEntry:
        original = path
        parts = [p for p in self.clean_path(path).split("/") if p]
        current = "/"
        hops = 0
        i = 0
        while i < len(parts):
            candidate = posixpath.join(current, parts[i])
            entry = self._entries.get(candidate)
            if entry is None:
                raise FileNotFoundError(errno.ENOENT, "no such file or directory", original)
            last = i == len(parts) - 1
            if entry.is_symlink and (follow_last or not last):
                hops += 1
                if hops > MAX_SYMLINK_HOPS:
                    raise OSError(errno.ELOOP, "too many levels of symbolic links", original)
                target = entry.link_target or ""
                base = target if target.startswith("/") else posixpath.join(current, target)
                resolved = normalize_member_name(base)
                parts = [p for p in resolved.split("/") if p] + parts[i + 1 :]
                current = "/"
                i = 0
                continue
            if not last and not entry.is_dir:
                raise NotADirectoryError(errno.ENOTDIR, "not a directory", original)
            current = candidate
            i += 1
        return self._entries[current]

    def _content_entry(self, entry: FileEntry, original: str) -> FileEntry:
        """Follow hard links to the entry that holds the content."""
        hops = 0
        while entry.kind == EntryKind.HARDLINK:
            hops += 1
            target = self._entries.get(entry.link_target or "")
            if target is None or hops > MAX_SYMLINK_HOPS:
                raise FileNotFoundError(errno.ENOENT, "hard link target missing", original)
            entry = target
        return entry

    def stat(self, path: str) -> FileEntry:
        """Describe ``path``, following symlinks."""
        entry = self._resolve(path, follow_last=True)
        if entry.kind == EntryKind.HARDLINK:
            target = self._content_entry(entry, path)
            return entry.model_copy(update={"size": target.size, "offset": target.offset})
        return entry

    def lstat(self, path: str) -> FileEntry:
        """Describe ``path`` without following a final symlink."""
        return self._resolve(path, follow_last=False)

    def exists(self, path: str) -> bool:
        try:
            self.stat(path)
        except (FileNotFoundError, NotADirectoryError):
            return False
        return True

    def open(self, path: str) -> BinaryIO:
        """Open a regular file for reading, following symlinks."""
        entry = self.stat(path)
        if entry.is_dir:
            raise IsADirectoryError(errno.EISDIR, "is a directory", path)
        if not entry.is_regular or entry.offset is None:
            raise FilesystemError(f"{path} is not a regular file", path=path)
        return io.BufferedReader(_SectionReader(self._fileobj, entry.offset, entry.size))  # type: ignore[return-value]

    def read_bytes(self, path: str, limit: int | None = None) -> bytes:
        """Read a file's content, at most ``limit`` bytes when given."""
        with self.open(path) as f:
            return f.read() if limit is None else f.read(limit)

    def listdir(self, path: str) -> list[str]:
        """Sorted names directly under a directory."""
        entry = self._resolve(path)
        if not entry.is_dir:
            raise NotADirectoryError(errno.ENOTDIR, "not a directory", path)
        return sorted(self._children.get(entry.path, ()))

    def walk(self, root: str) -> Iterator[tuple[str, FileEntry]]:
        """Yield ``(path, entry)`` for ``root`` and everything below it.

        The root itself is resolved through symlinks; symlinks further
        down are reported but not followed. Paths are reported under the
        name the caller used for ``root``. Order is depth-first with
        names sorted.
        """
        shown_root = self.clean_path(root)
        entry = self._resolve(shown_root)
        yield shown_root, entry
        if not entry.is_dir:
            return

        # Stack holds children in reverse order so pops come out sorted.
        stack = self._child_items(entry.path, shown_root)
        while stack:
            shown, child = stack.pop()
            yield shown, child
            if child.is_dir:
                stack.extend(self._child_items(child.path, shown))

    def _child_items(self, real_dir: str, shown_dir: str) -> list[tuple[str, FileEntry]]:
        names = sorted(self._children.get(real_dir, ()), reverse=True)
        return [
            (posixpath.join(shown_dir, name), self._entries[posixpath.join(real_dir, name)])
            for name in names
        ]
