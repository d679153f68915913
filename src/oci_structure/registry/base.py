"""Base image source protocol and types."""

import os
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from oci_structure.core.image import ImageDescriptor
from oci_structure.utils.errors import StructureError
from oci_structure.utils.hashing import compute_digest, split_digest


class RegistryAuth(BaseModel):
    """Authentication credentials for a container registry."""

    model_config = {"frozen": True}

    username: str | None = Field(default=None, description="Registry username")
    password: str | None = Field(default=None, description="Registry password or token")
    token: str | None = Field(default=None, description="Bearer token")

    @classmethod
    def from_env(cls) -> "RegistryAuth | None":
        """Create auth from environment variables.

        Looks for REGISTRY_USERNAME and REGISTRY_PASSWORD,
        or REGISTRY_TOKEN for token auth.
        """
        username = os.environ.get("REGISTRY_USERNAME")
        password = os.environ.get("REGISTRY_PASSWORD")
        token = os.environ.get("REGISTRY_TOKEN")

        if token:
            return cls(token=token)
        if username and password:
            return cls(username=username, password=password)
        return None


DOCKER_HUB = "docker.io"
DOCKER_HUB_ALIASES = frozenset({"index.docker.io", "registry-1.docker.io"})


class ImageReference(BaseModel):
    """A parsed ``[registry/]repository[:tag][@digest]`` reference.

    The first path component is a registry host only if it contains a dot
    or a port, or is ``localhost``; otherwise the reference points at
    Docker Hub, where single-name repositories live under ``library/``.
    """

    model_config = {"frozen": True}

    registry: str = DOCKER_HUB
    repository: str
    tag: str | None = None
    digest: str | None = None

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """Parse ``reference``, raising RegistryError if it has no repository."""
        name, _, digest = reference.partition("@")
        tag = None
        head, sep, tail = name.rpartition(":")
        if sep and "/" not in tail:
            name, tag = head, tail

        host, slash, path = name.partition("/")
        if slash and ("." in host or ":" in host or host == "localhost"):
            registry, repository = host, path
        else:
            registry, repository = DOCKER_HUB, name

        if not repository:
            raise RegistryError(f"Invalid image reference: {reference!r}", code="INVALID_REFERENCE")
        if registry in DOCKER_HUB_ALIASES:
            registry = DOCKER_HUB
        if registry == DOCKER_HUB and "/" not in repository:
            repository = f"library/{repository}"
        return cls(registry=registry, repository=repository, tag=tag or None, digest=digest or None)

    @property
    def target(self) -> str:
        """What to ask the manifests endpoint for: digest, tag, or ``latest``."""
        return self.digest or self.tag or "latest"


class RegistryError(StructureError):
    """Base exception for image source operations."""

    def __init__(self, message: str, code: str = "REGISTRY_ERROR") -> None:
        super().__init__(message, code=code)


class RegistryAuthError(RegistryError):
    """Authentication failed."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message, code="AUTH_ERROR")


class RegistryNotFoundError(RegistryError):
    """Image, manifest or blob not found."""

    def __init__(self, reference: str) -> None:
        super().__init__(f"Not found: {reference}", code="NOT_FOUND")
        self.reference = reference


class DigestMismatchError(RegistryError):
    """A blob's content does not hash to its declared digest."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(f"digest mismatch: expected {expected}, got {actual}", code="DIGEST_MISMATCH")
        self.expected = expected
        self.actual = actual


@runtime_checkable
class ImageSource(Protocol):
    """Protocol for anything that can turn a reference into an image.

    Sources only describe what a reference points at. Manifests, configs
    and layer blobs are fetched lazily through the returned descriptor,
    so resolving an index does not download every platform.

    Example:
        class MySource:
            def resolve(self, reference: str) -> ImageDescriptor:
                manifest = fetch(reference)
                return ImageDescriptor(
                    reference=reference,
                    media_type=manifest["mediaType"],
                    image_loader=lambda: build_image(manifest),
                )
    """

    def resolve(self, reference: str) -> ImageDescriptor:
        """Describe the image or index ``reference`` points at.

        Raises:
            RegistryNotFoundError: If the reference does not exist
            RegistryAuthError: If authentication fails
            RegistryError: For other errors
        """
        ...


def parse_digest(digest: str) -> tuple[str, str]:
    """Split a digest into algorithm and hex, raising RegistryError if malformed."""
    try:
        return split_digest(digest)
    except ValueError as e:
        raise RegistryError(str(e)) from e


def verify_digest(content: bytes, digest: str) -> str:
    """Check that ``content`` hashes to ``digest`` and return it.

    Raises:
        DigestMismatchError: If it does not
        RegistryError: If the digest is malformed or uses an unknown algorithm
    """
    algorithm, _ = parse_digest(digest)
    try:
        actual = compute_digest(content, algorithm)
    except ValueError as e:
        raise RegistryError(f"Unsupported digest algorithm in {digest}") from e
    if actual != digest:
        raise DigestMismatchError(digest, actual)
    return actual
