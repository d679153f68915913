"""Layer materialization: one seekable flattened filesystem per evaluation.

Tar streams can only be read forwards, but conditions look paths up in
any order. Layers are therefore spooled to a scratch file on disk (never
held in memory) and indexed by :class:`TarFilesystem`.

A single layer is copied through unchanged. Several layers are merged
into one flattened tar, walking from the top layer down: an entry from
a lower layer is written only if nothing above replaced it, whited it
out, made an ancestor opaque, or turned an ancestor into a
non-directory. This gives the same tree as applying the layers bottom
first, without buffering any content.
"""

from __future__ import annotations

import gzip
import posixpath
import tarfile
import tempfile
import time
import zlib
from contextlib import contextmanager
from typing import TYPE_CHECKING, BinaryIO, Iterator

import zstandard

from oci_structure.core.tarfs import WHITEOUT_PREFIX, TarFilesystem, normalize_member_name
from oci_structure.utils.errors import EvaluationTimeoutError, LayerError, SpoolError
from oci_structure.utils.logging import get_logger, log_duration

if TYPE_CHECKING:
    from oci_structure.core.image import Layer

logger = get_logger("layers")

OPAQUE_WHITEOUT = ".wh..wh..opq"
CHUNK_SIZE = 1 << 20

_READ_ERRORS = (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile, zstandard.ZstdError)


def check_deadline(deadline: float | None, stage: str) -> None:
    """Raise if the monotonic ``deadline`` has passed."""
    if deadline is not None and time.monotonic() > deadline:
        raise EvaluationTimeoutError(f"deadline exceeded while {stage}")


@contextmanager
def materialize(
    layers: list[Layer],
    *,
    spool_dir: str | None = None,
    deadline: float | None = None,
) -> Iterator[TarFilesystem]:
    """Spool ``layers`` to scratch storage and yield a filesystem view.

    The scratch file is removed when the context exits, whether the body
    succeeded or raised.

    Args:
        layers: Layers bottom first
        spool_dir: Directory for the scratch file (system default if None)
        deadline: ``time.monotonic()`` value after which to give up

    Raises:
        LayerError: A layer could not be opened, decompressed or parsed
        SpoolError: The scratch file could not be created or written
        FilesystemError: The flattened tar could not be indexed
        EvaluationTimeoutError: The deadline passed
    """
    try:
        scratch = tempfile.TemporaryFile(dir=spool_dir, prefix="oci-structure-", suffix=".tar")
    except OSError as e:
        raise SpoolError(f"creating scratch file: {e}") from e

    try:
        with log_duration(logger, f"materializing {len(layers)} layer(s)"):
            if len(layers) == 1:
                _spool_single(layers[0], scratch, deadline)
            else:
                _flatten(layers, scratch, deadline)
            try:
                scratch.flush()
            except OSError as e:
                raise SpoolError(f"writing scratch file: {e}") from e
            check_deadline(deadline, "indexing filesystem")
            fs = TarFilesystem(scratch)
        yield fs
    finally:
        try:
            scratch.close()
        except OSError as e:
            logger.warning("failed to remove scratch file: %s", e)


def _open_layer(layer: Layer, index: int) -> BinaryIO:
    try:
        return layer.uncompressed()
    except LayerError:
        raise
    except (OSError, *_READ_ERRORS) as e:
        raise LayerError(f"opening layer {index}: {e}", layer=index) from e


def _spool_single(layer: Layer, scratch: BinaryIO, deadline: float | None) -> None:
    stream = _open_layer(layer, 0)
    try:
        while True:
            check_deadline(deadline, "reading layer 0")
            try:
                chunk = stream.read(CHUNK_SIZE)
            except (OSError, *_READ_ERRORS) as e:
                raise LayerError(f"reading layer 0: {e}", layer=0) from e
            if not chunk:
                break
            try:
                scratch.write(chunk)
            except OSError as e:
                raise SpoolError(f"writing scratch file: {e}") from e
    finally:
        stream.close()


class _MergeState:
    """Paths claimed by the layers above the one being read."""

    def __init__(self) -> None:
        self.seen: dict[str, bool] = {}  # path -> is directory
        self.deleted: set[str] = set()
        self.opaque: set[str] = set()

    def hidden(self, path: str) -> bool:
        if path in self.seen or path in self.deleted:
            return True
        parent = path
        while parent != "/":
            parent = posixpath.dirname(parent)
            if parent in self.deleted or parent in self.opaque:
                return True
            if self.seen.get(parent) is False:
                return True
        return False


def _flatten(layers: list[Layer], scratch: BinaryIO, deadline: float | None) -> None:
    state = _MergeState()
    try:
        out = tarfile.open(fileobj=scratch, mode="w", format=tarfile.PAX_FORMAT)
    except OSError as e:
        raise SpoolError(f"writing scratch file: {e}") from e

    try:
        with out:
            for index in range(len(layers) - 1, -1, -1):
                _merge_layer(layers[index], index, out, state, deadline)
    except OSError as e:
        raise SpoolError(f"finishing flattened filesystem: {e}") from e


def _merge_layer(
    layer: Layer,
    index: int,
    out: tarfile.TarFile,
    state: _MergeState,
    deadline: float | None,
) -> None:
    # Whiteouts and entries of this layer only affect the layers below it,
    # so they are folded into the state once the layer is done.
    seen: dict[str, bool] = {}
    deleted: set[str] = set()
    opaque: set[str] = set()
    written = 0

    stream = _open_layer(layer, index)
    try:
        with tarfile.open(fileobj=stream, mode="r|") as tf:
            while (info := tf.next()) is not None:
                # one entry at a time; drop the member list tarfile keeps
                tf.members.clear()
                check_deadline(deadline, f"merging layer {index}")
                path = normalize_member_name(info.name)
                parent, base = posixpath.split(path)
                if base == OPAQUE_WHITEOUT:
                    opaque.add(parent)
                    continue
                if base.startswith(WHITEOUT_PREFIX):
                    deleted.add(posixpath.join(parent, base[len(WHITEOUT_PREFIX) :]))
                    continue
                if state.hidden(path):
                    continue

                seen[path] = info.isdir()
                info.name = path.lstrip("/") or "."
                if info.islnk():
                    info.linkname = normalize_member_name(info.linkname).lstrip("/")
                if info.isreg():
                    out.addfile(info, tf.extractfile(info))
                else:
                    out.addfile(info)
                written += 1
    except LayerError:
        raise
    except _READ_ERRORS as e:
        raise LayerError(f"reading layer {index}: {e}", layer=index) from e
    except OSError as e:
        raise SpoolError(f"writing flattened filesystem: {e}") from e
    finally:
        stream.close()

    state.seen.update(seen)
    state.deleted |= deleted
    state.opaque |= opaque
    logger.debug(
        "merged layer %d: %d entries kept, %d whiteouts, %d opaque dirs",
        index,
        written,
        len(deleted),
        len(opaque),
    )

