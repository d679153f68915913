"""Image-related data models."""

from typing import Any

from pydantic import BaseModel, Field

# Manifest and index media types
MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"

IMAGE_MEDIA_TYPES = frozenset({MANIFEST_V2, OCI_MANIFEST})
INDEX_MEDIA_TYPES = frozenset({MANIFEST_LIST, OCI_INDEX})


class ImageDigest(BaseModel):
    """Content digest of a manifest, config or layer blob."""

    model_config = {"frozen": True}

    algorithm: str = Field(default="sha256", description="Hash algorithm")
    hash: str = Field(description="The digest hash value")

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.hash}"

    @classmethod
    def from_string(cls, digest: str) -> "ImageDigest":
        """Parse a digest string like 'sha256:abc123...'."""
        if ":" in digest:
            algorithm, hash_value = digest.split(":", 1)
            return cls(algorithm=algorithm, hash=hash_value)
        return cls(hash=digest)


class Platform(BaseModel):
    """Target platform of an image (os/architecture[/variant])."""

    model_config = {"frozen": True}

    os: str = Field(description="Operating system, e.g. linux")
    architecture: str = Field(description="CPU architecture, e.g. amd64")
    variant: str | None = Field(default=None, description="CPU variant, e.g. v8")

    def __str__(self) -> str:
        parts = [self.os, self.architecture]
        if self.variant:
            parts.append(self.variant)
        return "/".join(parts)

    @classmethod
    def parse(cls, value: str) -> "Platform":
        """Parse ``os/arch[/variant]``.

        Raises:
            ValueError: If the string does not have two or three parts
        """
        parts = value.split("/")
        if len(parts) not in (2, 3) or not all(parts):
            raise ValueError(f"invalid platform {value!r}, want os/arch[/variant]")
        return cls(os=parts[0], architecture=parts[1], variant=parts[2] if len(parts) == 3 else None)

    def matches(self, other: "Platform") -> bool:
        """Check whether ``other`` satisfies this platform.

        A platform without a variant accepts any variant.
        """
        if self.os != other.os or self.architecture != other.architecture:
            return False
        return self.variant is None or self.variant == other.variant


class LayerInfo(BaseModel):
    """Manifest descriptor of one layer blob."""

    model_config = {"frozen": True}

    digest: ImageDigest = Field(description="Layer digest")
    size: int = Field(description="Compressed layer size in bytes")
    media_type: str = Field(description="Layer media type")


class ImageManifest(BaseModel):
    """Single-platform image manifest."""

    model_config = {"frozen": True}

    schema_version: int = Field(default=2, description="Manifest schema version")
    media_type: str = Field(default=OCI_MANIFEST, description="Manifest media type")
    digest: ImageDigest | None = Field(default=None, description="Manifest digest")
    config_digest: ImageDigest = Field(description="Config blob digest")
    layers: list[LayerInfo] = Field(default_factory=list, description="Image layers, bottom first")
    annotations: dict[str, str] = Field(
        default_factory=dict,
        description="OCI annotations",
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any], digest: ImageDigest | None = None) -> "ImageManifest":
        """Build from a decoded manifest document."""
        layers = [
            LayerInfo(
                digest=ImageDigest.from_string(layer.get("digest", "")),
                size=layer.get("size", 0),
                media_type=layer.get("mediaType", ""),
            )
            for layer in data.get("layers", []) or []
        ]
        config = data.get("config", {}) or {}
        return cls(
            schema_version=data.get("schemaVersion", 2),
            media_type=data.get("mediaType", OCI_MANIFEST),
            digest=digest,
            config_digest=ImageDigest.from_string(config.get("digest", "")),
            layers=layers,
            annotations=data.get("annotations", {}) or {},
        )


class IndexEntry(BaseModel):
    """One child manifest referenced from an image index."""

    model_config = {"frozen": True}

    digest: ImageDigest = Field(description="Child manifest digest")
    media_type: str = Field(default=OCI_MANIFEST, description="Child manifest media type")
    size: int = Field(default=0, description="Child manifest size")
    platform: Platform | None = Field(default=None, description="Child platform, if declared")


class ImageIndexManifest(BaseModel):
    """Multi-platform image index (OCI index or Docker manifest list)."""

    model_config = {"frozen": True}

    schema_version: int = Field(default=2)
    media_type: str = Field(default=OCI_INDEX)
    digest: ImageDigest | None = Field(default=None)
    manifests: list[IndexEntry] = Field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any], digest: ImageDigest | None = None) -> "ImageIndexManifest":
        """Build from a decoded index document."""
        entries = []
        for m in data.get("manifests", []) or []:
            platform = None
            p = m.get("platform")
            if p and p.get("os") and p.get("architecture"):
                platform = Platform(os=p["os"], architecture=p["architecture"], variant=p.get("variant"))
            entries.append(
                IndexEntry(
                    digest=ImageDigest.from_string(m.get("digest", "")),
                    media_type=m.get("mediaType", OCI_MANIFEST),
                    size=m.get("size", 0),
                    platform=platform,
                )
            )
        return cls(
            schema_version=data.get("schemaVersion", 2),
            media_type=data.get("mediaType", OCI_INDEX),
            digest=digest,
            manifests=entries,
        )


class ImageMetadata(BaseModel):
    """Metadata of a resolved single-platform image."""

    model_config = {"frozen": True}

    reference: str = Field(description="Reference the image was resolved from")
    digest: ImageDigest | None = Field(default=None, description="Manifest digest")
    manifest: ImageManifest | None = Field(default=None, description="Image manifest")
    platform: Platform | None = Field(default=None, description="Image platform")

    # Raw KEY=VALUE strings, order preserved, duplicates allowed
    env: list[str] = Field(default_factory=list, description="Config environment")
    labels: dict[str, str] = Field(default_factory=dict, description="Config labels")

    raw_config: dict[str, Any] = Field(
        default_factory=dict,
        description="Raw image config document",
    )

    @property
    def full_reference(self) -> str:
        """The reference pinned to the digest when known, as ``repo@digest`` without the tag."""
        if not self.digest:
            return self.reference
        name = self.reference.split("@", 1)[0]
        head, sep, tail = name.rpartition(":")
        if sep and "/" not in tail:
            name = head
        return f"{name}@{self.digest}"

    @classmethod
    def from_config(
        cls,
        reference: str,
        config: dict[str, Any],
        manifest: ImageManifest | None = None,
        digest: ImageDigest | None = None,
    ) -> "ImageMetadata":
        """Build metadata from a decoded image config document."""
        container_config = config.get("config", {}) or {}
        platform = None
        if config.get("os") and config.get("architecture"):
            platform = Platform(
                os=config["os"],
                architecture=config["architecture"],
                variant=config.get("variant"),
            )
        return cls(
            reference=reference,
            digest=digest,
            manifest=manifest,
            platform=platform,
            env=list(container_config.get("Env", []) or []),
            labels=container_config.get("Labels", {}) or {},
            raw_config=config,
        )
