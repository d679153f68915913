"""Image and layer handles consumed by the evaluator.

The evaluator only needs two things from an image: its layers, bottom
first, each readable once as an uncompressed tar stream, and the raw
``KEY=VALUE`` environment from its config. Anything providing
:class:`Image` and :class:`Layer` can be checked; :class:`OCIImage` and
:class:`BlobLayer` are the implementations the bundled image sources
build.
"""

from __future__ import annotations

import gzip
import io
from pathlib import Path
from typing import BinaryIO, Callable, Protocol, runtime_checkable

import zstandard

from oci_structure.models.image import (
    INDEX_MEDIA_TYPES,
    ImageDigest,
    ImageIndexManifest,
    ImageMetadata,
    IndexEntry,
    LayerInfo,
    Platform,
)
from oci_structure.utils.errors import ImageResolutionError, LayerError

GZIP_MAGIC = b"\x1f\x8b"
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"


@runtime_checkable
class Layer(Protocol):
    """One filesystem layer."""

    def uncompressed(self) -> BinaryIO:
        """Open a fresh read pass over the layer's uncompressed tar bytes.

        The caller owns the returned stream and must close it.
        """
        ...


@runtime_checkable
class Image(Protocol):
    """A resolved single-platform image."""

    def layers(self) -> list[Layer]:
        """Layers in application order, bottom first."""
        ...

    def config_env(self) -> list[str]:
        """Raw ``KEY=VALUE`` strings from the image config, order preserved."""
        ...


class _PrefixedReader(io.RawIOBase):
    """Replays bytes already consumed from ``stream`` before reading on."""

    def __init__(self, prefix: bytes, stream: BinaryIO) -> None:
        self._prefix = prefix
        self._stream = stream

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self._prefix:
            n = min(len(buffer), len(self._prefix))
            buffer[:n] = self._prefix[:n]
            self._prefix = self._prefix[n:]
            return n
        data = self._stream.read(len(buffer))
        n = len(data)
        buffer[:n] = data
        return n

    def close(self) -> None:
        try:
            self._stream.close()
        finally:
            super().close()


class _GzipLayerStream(gzip.GzipFile):
    """GzipFile that also closes the stream it decompresses."""

    def __init__(self, source: BinaryIO) -> None:
        self._source = source
        super().__init__(fileobj=source, mode="rb")

    def close(self) -> None:
        try:
            super().close()
        finally:
            self._source.close()


def open_uncompressed(raw: BinaryIO) -> BinaryIO:
    """Wrap a raw blob stream so that reads return uncompressed tar bytes.

    gzip and zstd are detected by their magic numbers; anything else is
    passed through as a plain tar. Closing the result closes ``raw``.
    """
    magic = raw.read(4)
    stream = io.BufferedReader(_PrefixedReader(magic, raw))
    if magic.startswith(GZIP_MAGIC):
        return _GzipLayerStream(stream)  # type: ignore[return-value]
    if magic.startswith(ZSTD_MAGIC):
        decompressor = zstandard.ZstdDecompressor()
        return decompressor.stream_reader(stream, read_across_frames=True, closefd=True)  # type: ignore[return-value]
    return stream


class BlobLayer:
    """A layer backed by a (possibly compressed) blob.

    Example:
        layer = BlobLayer.from_path("blobs/sha256/abc...")
        with layer.uncompressed() as stream:
            ...
    """

    def __init__(self, opener: Callable[[], BinaryIO], info: LayerInfo | None = None) -> None:
        self._opener = opener
        self.info = info

    @classmethod
    def from_path(cls, path: Path | str, info: LayerInfo | None = None) -> "BlobLayer":
        """Layer reading its blob from a file on disk."""
        return cls(lambda: open(path, "rb"), info)

    @classmethod
    def from_bytes(cls, data: bytes, info: LayerInfo | None = None) -> "BlobLayer":
        """Layer holding its blob in memory."""
        return cls(lambda: io.BytesIO(data), info)

    def uncompressed(self) -> BinaryIO:
        try:
            raw = self._opener()
        except OSError as e:
            raise LayerError(f"opening layer {self._describe()}: {e}") from e
        return open_uncompressed(raw)

    def _describe(self) -> str:
        return str(self.info.digest) if self.info else "<blob>"

    def __repr__(self) -> str:
        return f"BlobLayer({self._describe()})"


class OCIImage:
    """A resolved image: config metadata plus its layers."""

    def __init__(self, metadata: ImageMetadata, layers: list[Layer]) -> None:
        self._metadata = metadata
        self._layers = list(layers)

    @property
    def metadata(self) -> ImageMetadata:
        return self._metadata

    @property
    def reference(self) -> str:
        return self._metadata.full_reference

    @property
    def digest(self) -> ImageDigest | None:
        return self._metadata.digest

    @property
    def platform(self) -> Platform | None:
        return self._metadata.platform

    def layers(self) -> list[Layer]:
        return list(self._layers)

    def config_env(self) -> list[str]:
        return list(self._metadata.env)

    def __repr__(self) -> str:
        return f"OCIImage(reference='{self.reference}', layers={len(self._layers)})"


class OCIIndex:
    """A multi-platform index whose children load on demand."""

    def __init__(
        self,
        manifest: ImageIndexManifest,
        loader: Callable[[IndexEntry], OCIImage],
        reference: str = "",
    ) -> None:
        self.manifest = manifest
        self.reference = reference
        self._loader = loader

    @property
    def platforms(self) -> list[Platform]:
        return [m.platform for m in self.manifest.manifests if m.platform]

    def image(self, digest: ImageDigest | str) -> OCIImage:
        """Load the child with the given digest."""
        wanted = str(digest)
        for entry in self.manifest.manifests:
            if str(entry.digest) == wanted:
                return self._loader(entry)
        raise ImageResolutionError(f"index has no child {wanted}", reference=self.reference)

    def select(self, platform: Platform | None = None) -> OCIImage:
        """Load the first child matching ``platform``, or the first child when None."""
        entries = self.manifest.manifests
        if not entries:
            raise ImageResolutionError("image index is empty", reference=self.reference)
        if platform is None:
            return self._loader(entries[0])
        for entry in entries:
            if entry.platform is not None and platform.matches(entry.platform):
                return self._loader(entry)
        available = ", ".join(str(p) for p in self.platforms) or "none declared"
        raise ImageResolutionError(
            f"no image for platform {platform} in index (available: {available})",
            reference=self.reference,
        )


class ImageDescriptor:
    """What an image source returns for a reference: an image or an index."""

    def __init__(
        self,
        reference: str,
        media_type: str,
        digest: ImageDigest | None = None,
        image_loader: Callable[[], OCIImage] | None = None,
        index_loader: Callable[[], OCIIndex] | None = None,
    ) -> None:
        self.reference = reference
        self.media_type = media_type
        self.digest = digest
        self._image_loader = image_loader
        self._index_loader = index_loader

    @property
    def is_index(self) -> bool:
        return self.media_type in INDEX_MEDIA_TYPES

    def image(self) -> OCIImage:
        if self.is_index or self._image_loader is None:
            raise ImageResolutionError(
                f"{self.reference} is not a single image ({self.media_type})",
                reference=self.reference,
            )
        return self._image_loader()

    def image_index(self) -> OCIIndex:
        if not self.is_index or self._index_loader is None:
            raise ImageResolutionError(
                f"{self.reference} is not an image index ({self.media_type})",
                reference=self.reference,
            )
        return self._index_loader()

    def __repr__(self) -> str:
        return f"ImageDescriptor(reference='{self.reference}', media_type='{self.media_type}')"


def resolve_image(descriptor: ImageDescriptor, platform: Platform | str | None = None) -> OCIImage:
    """Turn a descriptor into the single image to check.

    Args:
        descriptor: Image or index descriptor
        platform: Platform to pick from an index; the first child when None

    Returns:
        The resolved image
    """
    if isinstance(platform, str):
        platform = Platform.parse(platform)
    if descriptor.is_index:
        return descriptor.image_index().select(platform)
    return descriptor.image()
