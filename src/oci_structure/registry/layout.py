"""Image source for OCI image-layout directories."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from oci_structure.core.image import BlobLayer, ImageDescriptor, OCIImage, OCIIndex
from oci_structure.models.image import (
    IMAGE_MEDIA_TYPES,
    INDEX_MEDIA_TYPES,
    OCI_INDEX,
    ImageDigest,
    ImageIndexManifest,
    ImageManifest,
    ImageMetadata,
    IndexEntry,
)
from oci_structure.registry.base import (
    RegistryError,
    RegistryNotFoundError,
    parse_digest,
    verify_digest,
)
from oci_structure.utils.logging import get_logger

logger = get_logger("registry.layout")

REF_NAME_ANNOTATION = "org.opencontainers.image.ref.name"


class LayoutSource:
    """Reads images from a directory in OCI image-layout format.

    The directory holds an ``oci-layout`` marker, an ``index.json`` and
    content-addressed blobs under ``blobs/<algorithm>/<hex>``, as written
    by ``skopeo copy ... oci:DIR``, ``crane push --format oci`` or
    ``docker buildx build --output type=oci``.

    References select an entry of ``index.json``:

    * ``""``: the single entry, or the whole index when there are several
    * ``sha256:...``: the entry with that digest
    * anything else: the entry whose ``org.opencontainers.image.ref.name``
      annotation equals it

    Example:
        source = LayoutSource("./image")
        image = resolve_image(source.resolve("latest"), "linux/arm64")
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        if not (self.path / "oci-layout").is_file():
            raise RegistryError(f"{self.path} is not an OCI image layout (missing oci-layout)", code="INVALID_LAYOUT")

    def blob_path(self, digest: ImageDigest | str) -> Path:
        algorithm, hex_value = parse_digest(str(digest))
        return self.path / "blobs" / algorithm / hex_value

    def _read_blob(self, digest: ImageDigest | str) -> bytes:
        path = self.blob_path(digest)
        try:
            content = path.read_bytes()
        except FileNotFoundError as e:
            raise RegistryNotFoundError(f"blob {digest}") from e
        except OSError as e:
            raise RegistryError(f"Reading blob {digest}: {e}") from e
        verify_digest(content, str(digest))
        return content

    def _read_json(self, digest: ImageDigest | str) -> dict[str, Any]:
        try:
            return json.loads(self._read_blob(digest))
        except ValueError as e:
            raise RegistryError(f"Invalid JSON in blob {digest}: {e}") from e

    def _read_index(self) -> dict[str, Any]:
        try:
            with open(self.path / "index.json", "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError as e:
            raise RegistryNotFoundError(f"{self.path}/index.json") from e
        except (OSError, ValueError) as e:
            raise RegistryError(f"Reading {self.path}/index.json: {e}") from e

    def resolve(self, reference: str = "") -> ImageDescriptor:
        """Describe the layout entry selected by ``reference``.

        Raises:
            RegistryNotFoundError: If no entry matches
            RegistryError: If the layout is unreadable
        """
        raw = self._read_index()
        top = ImageIndexManifest.from_dict(raw)
        raw_entries = raw.get("manifests", []) or []
        shown = f"{self.path}:{reference}" if reference else str(self.path)

        if not reference and len(top.manifests) != 1:
            # Several platform entries directly in index.json.
            return ImageDescriptor(
                reference=shown,
                media_type=OCI_INDEX,
                index_loader=lambda: OCIIndex(top, self._load_image_entry, reference=shown),
            )

        entry = self._select(top.manifests, raw_entries, reference)
        logger.debug("layout entry %s selected for %r", entry.digest, reference)

        if entry.media_type in INDEX_MEDIA_TYPES:
            return ImageDescriptor(
                reference=shown,
                media_type=entry.media_type,
                digest=entry.digest,
                index_loader=lambda: OCIIndex(
                    ImageIndexManifest.from_dict(self._read_json(entry.digest), entry.digest),
                    self._load_image_entry,
                    reference=shown,
                ),
            )
        return ImageDescriptor(
            reference=shown,
            media_type=entry.media_type,
            digest=entry.digest,
            image_loader=lambda: self._load_image(shown, entry.digest),
        )

    @staticmethod
    def _select(entries: list[IndexEntry], raw_entries: list[dict[str, Any]], reference: str) -> IndexEntry:
        if not entries:
            raise RegistryNotFoundError("index.json has no manifests")
        if not reference:
            return entries[0]
        for entry, raw in zip(entries, raw_entries):
            if str(entry.digest) == reference:
                return entry
            annotations = raw.get("annotations") or {}
            if annotations.get(REF_NAME_ANNOTATION) == reference:
                return entry
        raise RegistryNotFoundError(reference)

    def _load_image_entry(self, entry: IndexEntry) -> OCIImage:
        if entry.media_type not in IMAGE_MEDIA_TYPES:
            raise RegistryError(f"Index child {entry.digest} is not an image manifest ({entry.media_type})")
        return self._load_image(str(self.path), entry.digest)

    def _load_image(self, reference: str, digest: ImageDigest) -> OCIImage:
        manifest = ImageManifest.from_dict(self._read_json(digest), digest)
        config = self._read_json(manifest.config_digest)
        metadata = ImageMetadata.from_config(reference, config, manifest=manifest, digest=digest)

        layers = []
        for layer in manifest.layers:
            path = self.blob_path(layer.digest)
            if not path.is_file():
                raise RegistryNotFoundError(f"layer blob {layer.digest}")
            layers.append(BlobLayer.from_path(path, info=layer))
        return OCIImage(metadata, layers)
