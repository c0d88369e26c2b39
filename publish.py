# -----------------------------------------------------------------------------
# IMAGE PUBLISHER
# -----------------------------------------------------------------------------
# Builds the workload container image and pushes it to Artifact Registry.
# Steps run strictly in order (tag, build, push) and the first failure stops
# the run: a failed build never reaches the registry.
# -----------------------------------------------------------------------------

import argparse
import sys
from typing import Optional

import docker
from docker import DockerClient
from docker.errors import APIError, BuildError, DockerException
from rich.console import Console
from rich.markup import escape

from image_ref import (
    DEFAULT_IMAGE,
    DEFAULT_PROJECT,
    DEFAULT_REGISTRY,
    DEFAULT_REPOSITORY,
    DEFAULT_TAG,
    ImageReference,
    ImageReferenceError,
)

console = Console()


class PublishError(Exception):
    """Raised when the image cannot be built or pushed."""

    pass


def build_image(client: DockerClient, reference: ImageReference, context: str) -> None:
    console.print(f"[cyan][BUILD] {reference} from {context}[/cyan]")
    try:
        client.images.build(path=context, tag=str(reference), rm=True)
    except BuildError as e:
        raise PublishError(f"Build of {reference} failed: {e.msg}") from e
    except APIError as e:
        raise PublishError(f"Docker refused to build {reference}: {e}") from e


def push_image(client: DockerClient, reference: ImageReference) -> None:
    console.print(f"[cyan][PUSH] {reference}[/cyan]")
    try:
        stream = client.images.push(reference.repository_url, tag=reference.tag, stream=True, decode=True)
        for line in stream:
            # Registry failures arrive as stream entries, not as exceptions.
            if "error" in line:
                raise PublishError(f"Push of {reference} failed: {line['error']}")
    except APIError as e:
        raise PublishError(f"Docker refused to push {reference}: {e}") from e


def publish(reference: ImageReference, context: str = ".", client: Optional[DockerClient] = None) -> ImageReference:
    """
    Build ``context`` into ``reference`` and push it.

    Raises:
        PublishError: If either step fails.
    """
    if reference.digest:
        raise PublishError(f"Cannot publish to a digest reference: {reference}")

    owns_client = client is None
    if owns_client:
        try:
            client = docker.from_env()
        except DockerException as e:
            raise PublishError(f"Docker Engine is not available: {e}") from e

    try:
        build_image(client, reference, context)
        push_image(client, reference)
    finally:
        if owns_client:
            client.close()
    console.print(f"[green]Container image is available on {reference}[/green]")
    return reference


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build the workload image and push it to Artifact Registry.")
    parser.add_argument("--registry", default=DEFAULT_REGISTRY)
    parser.add_argument("--project", default=DEFAULT_PROJECT)
    parser.add_argument("--repository", default=DEFAULT_REPOSITORY)
    parser.add_argument("--image", default=DEFAULT_IMAGE)
    parser.add_argument("--tag", default=DEFAULT_TAG)
    parser.add_argument("--context", default=".", help="Docker build context directory")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        reference = ImageReference(args.registry, args.project, args.repository, args.image, args.tag)
        publish(reference, args.context)
    except (ImageReferenceError, PublishError) as e:
        console.print(f"[bold red]{escape(str(e))}[/bold red]")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
