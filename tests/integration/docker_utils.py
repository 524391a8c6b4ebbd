"""Docker helpers for integration tests."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

if TYPE_CHECKING:
    from docker.client import DockerClient
    from docker.models.containers import Container
else:
    DockerClient = Any  # type: ignore[misc,assignment]
    Container = Any  # type: ignore[misc,assignment]


def get_docker_client() -> DockerClient:
    """Create a Docker client from environment settings."""
    import docker

    return docker.from_env()


def _published_host(client: DockerClient) -> str:
    base_url = client.api.base_url
    if base_url.startswith(("unix://", "npipe://", "http+docker://")):
        return "localhost"
    return urlparse(base_url).hostname or "localhost"


@dataclass
class RedisService:
    """A running Redis container."""

    container: Container
    host: str

    @property
    def url(self) -> str:
        self.container.reload()
        bindings = self.container.attrs["NetworkSettings"]["Ports"].get("6379/tcp")
        if not bindings:
            raise RuntimeError(f"Redis port not published on {self.container.short_id}")
        return f"redis://{self.host}:{bindings[0]['HostPort']}/0"


@contextmanager
def run_redis(client: DockerClient, image: str = "redis:7-alpine") -> Iterator[RedisService]:
    """Run a throwaway Redis container on a random host port."""
    container = client.containers.run(image, detach=True, ports={"6379/tcp": None})
    try:
        yield RedisService(container=container, host=_published_host(client))
    finally:
        container.remove(force=True, v=True)
