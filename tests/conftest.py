"""Shared test fixtures for oci-structure tests."""

from __future__ import annotations

import gzip
import io
import json
import posixpath
import tarfile
from pathlib import Path
from typing import Any

import pytest

from oci_structure.core.image import BlobLayer, OCIImage
from oci_structure.models.image import ImageDigest, ImageMetadata
from oci_structure.utils.config import StructureConfig, set_config
from oci_structure.utils.hashing import compute_digest

Entry = tuple[tarfile.TarInfo, bytes]

PASSWD = (
    "root:x:0:0:root:/root:/sbin/nologin\n"
    "nonroot:x:65532:65532:nonroot:/home/nonroot:/sbin/nologin\n"
)


class LayerBuilder:
    """Builds tar layers in memory.

    Example:
        layer = layers.layer(
            layers.dir("etc"),
            layers.file("etc/passwd", "root:x:0:0::/root:/bin/sh\\n"),
            layers.whiteout("etc/shadow"),
        )
    """

    @staticmethod
    def file(name: str, data: bytes | str = b"", mode: int = 0o644) -> Entry:
        if isinstance(data, str):
            data = data.encode("utf-8")
        info = tarfile.TarInfo(name)
        info.size = len(data)
        info.mode = mode
        return info, data

    @staticmethod
    def dir(name: str, mode: int = 0o755) -> Entry:
        info = tarfile.TarInfo(name)
        info.type = tarfile.DIRTYPE
        info.mode = mode
        return info, b""

    @staticmethod
    def symlink(name: str, target: str) -> Entry:
        info = tarfile.TarInfo(name)
        info.type = tarfile.SYMTYPE
        info.linkname = target
        info.mode = 0o777
        return info, b""

    @staticmethod
    def hardlink(name: str, target: str, mode: int = 0o644) -> Entry:
        info = tarfile.TarInfo(name)
        info.type = tarfile.LNKTYPE
        info.linkname = target
        info.mode = mode
        return info, b""

    @staticmethod
    def chardev(name: str, mode: int = 0o666) -> Entry:
        info = tarfile.TarInfo(name)
        info.type = tarfile.CHRTYPE
        info.mode = mode
        info.devmajor = 1
        info.devminor = 3
        return info, b""

    @classmethod
    def whiteout(cls, path: str) -> Entry:
        parent, base = posixpath.split(path)
        return cls.file(posixpath.join(parent, f".wh.{base}"))

    @classmethod
    def opaque(cls, directory: str) -> Entry:
        return cls.file(posixpath.join(directory, ".wh..wh..opq"))

    @staticmethod
    def layer(*entries: Entry, compress: bool = False) -> bytes:
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w", format=tarfile.PAX_FORMAT) as tf:
            for info, data in entries:
                tf.addfile(info, io.BytesIO(data) if info.isreg() else None)
        raw = buf.getvalue()
        return gzip.compress(raw) if compress else raw

    @staticmethod
    def image(
        *layers: bytes,
        env: list[str] | None = None,
        reference: str = "registry.example.com/team/app:1.0",
    ) -> OCIImage:
        metadata = ImageMetadata(reference=reference, env=env or [])
        return OCIImage(metadata, [BlobLayer.from_bytes(data) for data in layers])


def sample_layers(builder: LayerBuilder) -> list[bytes]:
    """A small distroless-style image in two layers."""
    base = builder.layer(
        builder.dir("etc"),
        builder.file("etc/passwd", PASSWD),
        builder.file("etc/os-release", "ID=wolfi\n"),
        builder.dir("home"),
        builder.dir("home/nonroot"),
        builder.dir("usr"),
        builder.dir("usr/bin"),
        builder.file("usr/bin/sudo", b"\x7fELF\x02\x01\x01\x00\x00\x00", mode=0o4755),
        builder.file("usr/bin/app", "#!/bin/sh\necho hi\n", mode=0o755),
        builder.symlink("bin", "usr/bin"),
        builder.dir("tmp", mode=0o1777),
    )
    app = builder.layer(
        builder.dir("app"),
        builder.file("app/config.yaml", "port: 8080\n"),
        builder.symlink("app/current", "config.yaml"),
        builder.dir("app/data"),
        builder.file("app/data/a.txt", "a\n"),
        builder.whiteout("etc/os-release"),
        compress=True,
    )
    return [base, app]


SAMPLE_ENV = [
    "PATH=/usr/local/bin:/usr/bin:/bin",
    "SSL_CERT_FILE=/etc/ssl/certs/ca-certificates.crt",
]


@pytest.fixture
def layers() -> LayerBuilder:
    """Tar layer builder."""
    return LayerBuilder()


@pytest.fixture
def sample_env() -> list[str]:
    """Config environment of the sample image."""
    return list(SAMPLE_ENV)


@pytest.fixture
def sample_blobs(layers: LayerBuilder) -> list[bytes]:
    """Layer blobs of the sample image, bottom first."""
    return sample_layers(layers)


@pytest.fixture
def sample_image(layers: LayerBuilder, sample_blobs: list[bytes], sample_env: list[str]) -> OCIImage:
    """Two-layer image with a typical non-root filesystem."""
    return layers.image(*sample_blobs, env=sample_env)


class LayoutWriter:
    """Writes an OCI image-layout directory."""

    def __init__(self, root: Path) -> None:
        self.root = root
        root.mkdir(parents=True, exist_ok=True)
        (root / "oci-layout").write_text(json.dumps({"imageLayoutVersion": "1.0.0"}))
        self.entries: list[dict[str, Any]] = []

    def blob(self, data: bytes) -> str:
        digest = compute_digest(data)
        algorithm, hex_value = digest.split(":", 1)
        path = self.root / "blobs" / algorithm / hex_value
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return digest

    def image(
        self,
        layers: list[bytes],
        env: list[str] | None = None,
        os: str = "linux",
        architecture: str = "amd64",
    ) -> dict[str, Any]:
        """Write config, layers and manifest; return the manifest descriptor."""
        config = json.dumps(
            {"os": os, "architecture": architecture, "config": {"Env": env or []}}
        ).encode()
        manifest = {
            "schemaVersion": 2,
            "mediaType": "application/vnd.oci.image.manifest.v1+json",
            "config": {
                "mediaType": "application/vnd.oci.image.config.v1+json",
                "digest": self.blob(config),
                "size": len(config),
            },
            "layers": [
                {
                    "mediaType": "application/vnd.oci.image.layer.v1.tar",
                    "digest": self.blob(data),
                    "size": len(data),
                }
                for data in layers
            ],
        }
        raw = json.dumps(manifest).encode()
        return {
            "mediaType": "application/vnd.oci.image.manifest.v1+json",
            "digest": self.blob(raw),
            "size": len(raw),
            "platform": {"os": os, "architecture": architecture},
        }

    def add(self, descriptor: dict[str, Any], ref_name: str | None = None) -> None:
        entry = dict(descriptor)
        if ref_name:
            entry["annotations"] = {"org.opencontainers.image.ref.name": ref_name}
        self.entries.append(entry)

    def write_index(self) -> Path:
        index = {
            "schemaVersion": 2,
            "mediaType": "application/vnd.oci.image.index.v1+json",
            "manifests": self.entries,
        }
        (self.root / "index.json").write_text(json.dumps(index))
        return self.root


@pytest.fixture
def layout_writer(tmp_path: Path) -> LayoutWriter:
    """Empty OCI layout under a temporary directory."""
    return LayoutWriter(tmp_path / "layout")


@pytest.fixture
def sample_layout(layout_writer: LayoutWriter, layers: LayerBuilder) -> Path:
    """OCI layout holding the sample image tagged ``latest``."""
    layout_writer.add(layout_writer.image(sample_layers(layers), env=list(SAMPLE_ENV)), ref_name="latest")
    return layout_writer.write_index()


@pytest.fixture
def sample_digest() -> ImageDigest:
    """A well-formed sha256 digest."""
    return ImageDigest(hash="a" * 64)


@pytest.fixture(autouse=True)
def default_config():
    """Isolate tests from configuration files on the machine."""
    set_config(StructureConfig())
    yield
    set_config(None)


@pytest.fixture
def sample_conditions_file(tmp_path: Path) -> str:
    """Create a conditions file for the sample image."""
    content = """
conditions:
  - env:
      PATH: /usr/local/bin:/usr/bin:/bin
  - files:
      /etc/passwd:
        regex: "nonroot:x:65532"
        mode: "0644"
      /etc/apk/repositories:
        optional: true
  - dirs:
      /home/nonroot:
        mode: "0755"
      /app:
        mode: "0644"
        recursive: true
        files_only: true
  - permissions:
      /:
        block: "4755"
        override: [/usr/bin/sudo]
"""
    path = tmp_path / "conditions.yaml"
    path.write_text(content)
    return str(path)
