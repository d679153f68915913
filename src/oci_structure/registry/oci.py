"""OCI registry client implementation."""

from __future__ import annotations

import base64
import hashlib
import re
import tempfile
from functools import partial
from typing import Any, BinaryIO

import httpx

from oci_structure.core.image import BlobLayer, ImageDescriptor, OCIImage, OCIIndex
from oci_structure.models.image import (
    IMAGE_MEDIA_TYPES,
    INDEX_MEDIA_TYPES,
    MANIFEST_LIST,
    MANIFEST_V2,
    OCI_INDEX,
    OCI_MANIFEST,
    ImageDigest,
    ImageIndexManifest,
    ImageManifest,
    ImageMetadata,
    IndexEntry,
)
from oci_structure.registry.base import (
    DOCKER_HUB,
    DigestMismatchError,
    ImageReference,
    RegistryAuth,
    RegistryAuthError,
    RegistryError,
    RegistryNotFoundError,
    parse_digest,
    verify_digest,
)
from oci_structure.utils.hashing import compute_digest
from oci_structure.utils.logging import get_logger

logger = get_logger("registry.oci")

CHUNK_SIZE = 1 << 20

# key="quoted value" or key=token, as in WWW-Authenticate parameters
_CHALLENGE_PARAM = re.compile(r'(\w+)=(?:"([^"]*)"|([^\s,]*))')


class OCIRegistry:
    """Image source for OCI-compliant container registries.

    Implements the pull side of the OCI Distribution Specification:
    manifests and indexes, config blobs and layer blobs. Layer blobs are
    downloaded only when a layer is opened, into an anonymous temporary
    file, and their digest is verified before any byte is handed out.

    Example:
        registry = OCIRegistry()
        descriptor = registry.resolve("cgr.dev/chainguard/static:latest")
        image = resolve_image(descriptor, "linux/amd64")
    """

    # Registries whose API is not served from the registry host itself
    API_HOSTS = {DOCKER_HUB: "registry-1.docker.io"}

    ACCEPT = ", ".join([OCI_MANIFEST, OCI_INDEX, MANIFEST_V2, MANIFEST_LIST])

    def __init__(
        self,
        base_url: str | None = None,
        auth: RegistryAuth | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        insecure: bool = False,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Create a client. Nothing is fetched until a reference is resolved.

        Args:
            base_url: Send every request here instead of the reference's registry
            auth: Credentials; read from REGISTRY_* variables when omitted
            timeout: Per-request timeout in seconds
            max_retries: Connection attempts httpx retries before giving up
            insecure: Talk plain HTTP to registries other than Docker Hub
            transport: httpx transport to use instead of the network
        """
        self._base_url = base_url
        self._auth = auth or RegistryAuth.from_env()
        self._timeout = timeout
        self._max_retries = max_retries
        self._insecure = insecure
        self._transport = transport
        self._token_cache: dict[str, str] = {}

    def _registry_url(self, registry: str) -> str:
        if self._base_url:
            return self._base_url.rstrip("/")
        scheme = "http" if self._insecure and registry != DOCKER_HUB else "https"
        return f"{scheme}://{self.API_HOSTS.get(registry, registry)}"

    def _get_client(self) -> httpx.Client:
        transport = self._transport or httpx.HTTPTransport(retries=self._max_retries)
        return httpx.Client(
            timeout=self._timeout,
            transport=transport,
            follow_redirects=True,
        )

    @staticmethod
    def _parse_challenge(header: str) -> tuple[str, dict[str, str]]:
        """Split a WWW-Authenticate header into its scheme and parameters.

        Example:
            'Bearer realm="https://auth.example.com/token",service="registry"'
            -> ("bearer", {"realm": "https://auth.example.com/token", "service": "registry"})
        """
        scheme, _, rest = header.strip().partition(" ")
        params = {key.lower(): quoted or bare for key, quoted, bare in _CHALLENGE_PARAM.findall(rest)}
        return scheme.lower(), params

    def _get_token(self, client: httpx.Client, params: dict[str, str], repository: str) -> str:
        """Fetch a pull token for ``repository`` from the challenge's realm.

        A configured static token is used as-is without asking the realm.
        """
        if self._auth and self._auth.token:
            return self._auth.token

        realm = params.get("realm")
        if not realm:
            raise RegistryAuthError("No realm in WWW-Authenticate header")

        basic = None
        if self._auth and self._auth.username and self._auth.password:
            basic = (self._auth.username, self._auth.password)

        response = client.get(
            realm,
            params={"service": params.get("service", ""), "scope": f"repository:{repository}:pull"},
            auth=basic,
        )
        if response.status_code in (401, 403):
            raise RegistryAuthError(f"Token request for {repository} was refused")
        if response.status_code != 200:
            raise RegistryError(f"Token request failed: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RegistryAuthError(f"Invalid token response: {e}") from e
        token = data.get("token") or data.get("access_token")
        if not token:
            raise RegistryAuthError("Token response has no token")
        return token

    def _authorization(self, client: httpx.Client, challenge: str, repository: str) -> str | None:
        """Answer a 401 challenge with an Authorization header value, if possible."""
        scheme, params = self._parse_challenge(challenge)
        if scheme == "bearer":
            token = self._get_token(client, params, repository)
            self._token_cache[repository] = token
            return f"Bearer {token}"
        if scheme == "basic" and self._auth and self._auth.username and self._auth.password:
            credentials = f"{self._auth.username}:{self._auth.password}".encode()
            return "Basic " + base64.b64encode(credentials).decode("ascii")
        return None

    def _send(
        self,
        client: httpx.Client,
        url: str,
        repository: str,
        headers: dict[str, str] | None = None,
        stream: bool = False,
    ) -> httpx.Response:
        """GET ``url``, answering one authentication challenge if needed.

        Args:
            client: HTTP client
            url: Request URL
            repository: Repository the token must grant pull access to
            headers: Additional headers
            stream: Leave the body unread; the caller must close the response
        """
        headers = dict(headers or {})
        if repository in self._token_cache:
            headers["Authorization"] = f"Bearer {self._token_cache[repository]}"

        try:
            response = client.send(client.build_request("GET", url, headers=headers), stream=stream)
            challenge = response.headers.get("www-authenticate")
            if response.status_code == 401 and challenge:
                authorization = self._authorization(client, challenge, repository)
                if authorization:
                    response.close()
                    headers["Authorization"] = authorization
                    response = client.send(client.build_request("GET", url, headers=headers), stream=stream)
        except httpx.HTTPError as e:
            raise RegistryError(f"Request to {url} failed: {e}", code="CONNECTION_ERROR") from e

        return response

    @staticmethod
    def _check_status(response: httpx.Response, what: str) -> None:
        if response.status_code == 404:
            raise RegistryNotFoundError(what)
        elif response.status_code in (401, 403):
            raise RegistryAuthError(f"Authentication failed for {what}")
        elif response.status_code != 200:
            raise RegistryError(f"Failed to get {what}: {response.status_code}")

    def _get_manifest(self, registry_url: str, repository: str, tag: str) -> tuple[dict[str, Any], str, ImageDigest]:
        """Fetch a manifest or index.

        Returns:
            The decoded document, its media type and its digest
        """
        url = f"{registry_url}/v2/{repository}/manifests/{tag}"
        with self._get_client() as client:
            response = self._send(client, url, repository, headers={"Accept": self.ACCEPT})
            self._check_status(response, f"{repository}:{tag}")
            content = response.content
            content_type = response.headers.get("content-type", "").split(";")[0].strip()

        actual = verify_digest(content, tag) if ":" in tag else compute_digest(content)

        try:
            data = response.json()
        except ValueError as e:
            raise RegistryError(f"Invalid manifest for {repository}:{tag}: {e}") from e

        media_type = data.get("mediaType") or content_type
        if media_type not in IMAGE_MEDIA_TYPES and media_type not in INDEX_MEDIA_TYPES:
            # Some registries omit mediaType from OCI documents.
            media_type = OCI_INDEX if "manifests" in data else OCI_MANIFEST
        return data, media_type, ImageDigest.from_string(actual)

    def resolve(self, reference: str) -> ImageDescriptor:
        """Describe what ``reference`` points at.

        Only the top-level manifest is fetched here. The config and layer
        blobs, or the index children, are fetched when the descriptor is
        turned into an image.

        Args:
            reference: Image reference (e.g., "nginx:latest", "ghcr.io/org/app@sha256:...")

        Returns:
            Descriptor of the image or index

        Raises:
            RegistryNotFoundError: If image not found
            RegistryAuthError: If authentication fails
            RegistryError: For other errors
        """
        ref = ImageReference.parse(reference)
        registry_url, repository = self._registry_url(ref.registry), ref.repository
        data, media_type, digest = self._get_manifest(registry_url, repository, ref.target)
        logger.debug("resolved %s to %s (%s)", reference, digest, media_type)

        if media_type in INDEX_MEDIA_TYPES:
            index = ImageIndexManifest.from_dict(data, digest)
            load_child = partial(self._load_child, reference, registry_url, repository)
            return ImageDescriptor(
                reference=reference,
                media_type=media_type,
                digest=digest,
                index_loader=lambda: OCIIndex(index, load_child, reference=reference),
            )

        return ImageDescriptor(
            reference=reference,
            media_type=media_type,
            digest=digest,
            image_loader=lambda: self._build_image(reference, registry_url, repository, data, digest),
        )

    def _load_child(self, reference: str, registry_url: str, repository: str, entry: IndexEntry) -> OCIImage:
        data, media_type, digest = self._get_manifest(registry_url, repository, str(entry.digest))
        if media_type not in IMAGE_MEDIA_TYPES:
            raise RegistryError(f"Index child {entry.digest} is not an image manifest ({media_type})")
        return self._build_image(reference, registry_url, repository, data, digest)

    def _build_image(
        self,
        reference: str,
        registry_url: str,
        repository: str,
        data: dict[str, Any],
        digest: ImageDigest,
    ) -> OCIImage:
        manifest = ImageManifest.from_dict(data, digest)
        config = self._get_config(registry_url, repository, str(manifest.config_digest))
        metadata = ImageMetadata.from_config(reference, config, manifest=manifest, digest=digest)

        layers = [
            BlobLayer(partial(self.open_blob, registry_url, repository, str(layer.digest)), info=layer)
            for layer in manifest.layers
        ]
        return OCIImage(metadata, layers)

    def _get_config(self, registry_url: str, repository: str, digest: str) -> dict[str, Any]:
        url = f"{registry_url}/v2/{repository}/blobs/{digest}"
        with self._get_client() as client:
            response = self._send(client, url, repository)
            self._check_status(response, f"config blob {digest}")
            content = response.content

        verify_digest(content, digest)
        try:
            return response.json()
        except ValueError as e:
            raise RegistryError(f"Invalid config blob {digest}: {e}") from e

    def open_blob(self, registry_url: str, repository: str, digest: str) -> BinaryIO:
        """Download a blob into an anonymous temporary file.

        Returns:
            The file, positioned at the start; closing it deletes it

        Raises:
            DigestMismatchError: If the downloaded content does not match ``digest``
        """
        algorithm, expected = parse_digest(digest)
        try:
            hasher = hashlib.new(algorithm)
        except ValueError as e:
            raise RegistryError(f"Unsupported digest algorithm in {digest}") from e

        url = f"{registry_url}/v2/{repository}/blobs/{digest}"
        dest = tempfile.TemporaryFile(prefix="oci-structure-blob-")
        try:
            with self._get_client() as client:
                response = self._send(client, url, repository, stream=True)
                try:
                    self._check_status(response, f"blob {digest}")
                    for chunk in response.iter_bytes(CHUNK_SIZE):
                        hasher.update(chunk)
                        dest.write(chunk)
                except httpx.HTTPError as e:
                    raise RegistryError(f"Downloading blob {digest} failed: {e}", code="CONNECTION_ERROR") from e
                finally:
                    response.close()

            if hasher.hexdigest() != expected:
                raise DigestMismatchError(digest, f"{algorithm}:{hasher.hexdigest()}")
            dest.seek(0)
        except BaseException:
            dest.close()
            raise

        logger.debug("downloaded blob %s", digest)
        return dest
