"""
multikf/models/k8s.py

Kubernetes versions available as kind node images. A version is always paired
with the sha256 digest of its image so the node image is pinned exactly.
"""

from __future__ import annotations

import re
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, field_validator

KIND_NODE_IMAGE = "kindest/node"

_VERSION_RE = re.compile(r"^v\d+\.\d+\.\d+$")
_SHA256_RE = re.compile(r"^[0-9a-f]{64}$")


class KindK8sVersion(BaseModel):
    """A Kubernetes version and the digest of its kind node image.

    Attributes:
        version: Kubernetes version tag, e.g. "v1.25.11".
        sha256: Hex digest of the matching kindest/node image (no "sha256:" prefix).
    """

    model_config = ConfigDict(frozen=True)

    version: str
    sha256: str

    @field_validator("version")
    @classmethod
    def validate_version(cls, value: str) -> str:
        if not _VERSION_RE.match(value):
            raise ValueError(f"invalid kubernetes version {value!r}, expected vX.Y.Z")
        return value

    @field_validator("sha256")
    @classmethod
    def validate_sha256(cls, value: str) -> str:
        digest = value.removeprefix("sha256:").lower()
        if not _SHA256_RE.match(digest):
            raise ValueError(f"invalid sha256 digest {value!r}")
        return digest

    @property
    def image(self) -> str:
        """Pinned image reference, e.g. kindest/node:v1.25.11@sha256:..."""
        return f"{KIND_NODE_IMAGE}:{self.version}@sha256:{self.sha256}"


_KNOWN_VERSIONS: Dict[str, str] = {
    "v1.25.11": "227fa11ce74ea76a0474eeefb84cb75d8dad1b08638371ecf0e86259b35be0c8",
    "v1.23.17": "e5fd1d9cd7a9a50939f9c005684df5a6d145e8d695e78463637b79464292e66c",
    "v1.23.12": "9402cf1330bbd3a0d097d2033fa489b2abe40d479cc5ef47d0b6a6960613148a",
}

DEFAULT_VERSION = "v1.25.11"


def default_version() -> KindK8sVersion:
    return KindK8sVersion(version=DEFAULT_VERSION, sha256=_KNOWN_VERSIONS[DEFAULT_VERSION])


def list_versions() -> List[KindK8sVersion]:
    """All known versions, newest first."""
    return [KindK8sVersion(version=v, sha256=s) for v, s in _KNOWN_VERSIONS.items()]


def new_kind_k8s_version(version: str, sha256: str = "") -> KindK8sVersion:
    """
    Build a version pair, filling in or checking the digest against the catalogue.

    An empty `sha256` is only accepted for catalogued versions. A catalogued
    version with a different digest is rejected; an uncatalogued version is
    accepted as long as the caller pins a digest.

    Raises:
        ValueError: If the pair is incomplete or inconsistent.
    """
    known = _KNOWN_VERSIONS.get(version)
    if not sha256:
        if known is None:
            raise ValueError(
                f"kubernetes version {version} is not catalogued, a sha256 is required"
            )
        sha256 = known
    pair = KindK8sVersion(version=version, sha256=sha256)
    if known is not None and pair.sha256 != known:
        raise ValueError(
            f"sha256 mismatch for kubernetes {version}: expected {known}, got {pair.sha256}"
        )
    return pair
