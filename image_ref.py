"""
Container image references in Artifact Registry form:

    REGISTRY/PROJECT/REPO/IMAGE:TAG
    REGISTRY/PROJECT/REPO/IMAGE@sha256:<digest>
"""

import re
from dataclasses import dataclass, replace
from typing import Optional

DEFAULT_REGISTRY = "europe-west1-docker.pkg.dev"
DEFAULT_PROJECT = "oak-examples-477357"
DEFAULT_REPOSITORY = "attested-gemma"
DEFAULT_IMAGE = "attested-gemma"
DEFAULT_TAG = "latest"

_REGISTRY_RE = re.compile(
    r"^(localhost|[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)+)(:[0-9]+)?$"
)
_SEGMENT_RE = re.compile(r"^[a-z0-9]+([._-][a-z0-9]+)*$")
_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_DIGEST_RE = re.compile(r"^sha256:[0-9a-f]{64}$")


class ImageReferenceError(ValueError):
    pass


@dataclass(frozen=True)
class ImageReference:
    registry: str = DEFAULT_REGISTRY
    project: str = DEFAULT_PROJECT
    repository: str = DEFAULT_REPOSITORY
    image: str = DEFAULT_IMAGE
    tag: str = DEFAULT_TAG
    digest: Optional[str] = None

    def __post_init__(self):
        if not _REGISTRY_RE.match(self.registry):
            raise ImageReferenceError(f"Invalid registry host '{self.registry}'")
        for label, segment in (("project", self.project), ("repository", self.repository), ("image", self.image)):
            if not _SEGMENT_RE.match(segment):
                raise ImageReferenceError(f"Invalid {label} '{segment}'")
        if not _TAG_RE.match(self.tag):
            raise ImageReferenceError(f"Invalid tag '{self.tag}'")
        if self.digest is not None and not _DIGEST_RE.match(self.digest):
            raise ImageReferenceError(f"Invalid digest '{self.digest}'")

    @property
    def repository_url(self) -> str:
        return f"{self.registry}/{self.project}/{self.repository}/{self.image}"

    def with_digest(self, digest: str) -> "ImageReference":
        if not digest:
            return self
        if not digest.startswith("sha256:"):
            digest = f"sha256:{digest}"
        return replace(self, digest=digest)

    def __str__(self) -> str:
        if self.digest:
            return f"{self.repository_url}@{self.digest}"
        return f"{self.repository_url}:{self.tag}"

    @classmethod
    def parse(cls, value: str) -> "ImageReference":
        digest = None
        tag = DEFAULT_TAG
        if "@" in value:
            value, digest = value.split("@", 1)
        # A colon after the last slash is a tag, one before it is a registry port.
        last_slash = value.rfind("/")
        colon = value.rfind(":")
        if colon > last_slash:
            value, tag = value[:colon], value[colon + 1:]

        parts = value.split("/")
        if len(parts) != 4:
            raise ImageReferenceError(
                f"Expected REGISTRY/PROJECT/REPO/IMAGE, got '{value}'"
            )
        registry, project, repository, image = parts
        return cls(registry, project, repository, image, tag, digest)
