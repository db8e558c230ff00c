"""
Docker Runtime Client

Thin async wrapper around aiodocker exposing only what the relay consumes:
list running containers, attach to a container's raw log stream, fetch one
stats snapshot and subscribe to the daemon's event feed.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import aiodocker
from aiodocker.exceptions import DockerError

from docker2lm.core.exceptions import DockerConnectionError, DockerOperationError
from docker2lm.core.logging import logger


def _flag(value: bool) -> str:
    return "1" if value else "0"


class RuntimeClient:
    """Async client for the local Docker daemon"""

    def __init__(self, url: Optional[str] = None, docker: Optional[aiodocker.Docker] = None):
        self.url = url
        self._docker = docker

    @property
    def docker(self) -> aiodocker.Docker:
        if self._docker is None:
            try:
                self._docker = aiodocker.Docker(url=self.url)
            except Exception as e:
                raise DockerConnectionError(f"Failed to connect to Docker daemon: {e}")
        return self._docker

    async def list_containers(self) -> List[Dict[str, Any]]:
        """List running containers as {"id", "labels"} dicts"""
        try:
            containers = await self.docker.containers.list()
        except DockerError as e:
            raise DockerOperationError("list_containers", str(e))

        result = []
        for container in containers:
            data = container._container
            result.append({
                "id": data.get("Id") or container.id,
                "labels": data.get("Labels") or {},
            })
        return result

    async def is_tty(self, container_id: str) -> bool:
        """Whether the container was started with a TTY (unframed log output)"""
        container = self.docker.containers.container(container_id)
        try:
            info = await container.show()
        except DockerError as e:
            raise DockerOperationError("inspect", str(e))
        return bool((info.get("Config") or {}).get("Tty"))

    @asynccontextmanager
    async def attach_logs(
        self,
        container_id: str,
        since: Optional[int] = None,
        follow: bool = True,
        stdout: bool = True,
        stderr: bool = True,
        timestamps: bool = True
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """
        Open a container's raw log stream

        Entering the context sends the request; the value is an async
        iterator over the raw (still multiplexed) bytes, which ends when the
        daemon closes the stream.
        """
        params = {
            "follow": _flag(follow),
            "stdout": _flag(stdout),
            "stderr": _flag(stderr),
            "timestamps": _flag(timestamps),
        }
        if since is not None:
            params["since"] = str(since)

        try:
            async with self.docker._query(
                f"containers/{container_id}/logs",
                method="GET",
                params=params,
                timeout=None,
            ) as response:
                yield response.content.iter_any()
        except DockerError as e:
            raise DockerOperationError("attach_logs", str(e))

    @asynccontextmanager
    async def subscribe_events(self) -> AsyncIterator[AsyncIterator[bytes]]:
        """
        Open the daemon's event feed

        The value is an async iterator over newline-delimited JSON events.
        """
        try:
            async with self.docker._query(
                "events",
                method="GET",
                timeout=None,
            ) as response:
                yield response.content
        except DockerError as e:
            raise DockerOperationError("events", str(e))

    async def stats_snapshot(self, container_id: str) -> Dict[str, Any]:
        """Fetch one non-streaming stats document"""
        container = self.docker.containers.container(container_id)
        try:
            stats = await container.stats(stream=False)
        except DockerError as e:
            raise DockerOperationError("stats", str(e))

        # Older aiodocker releases wrap the single document in a list
        if isinstance(stats, list):
            if not stats:
                raise DockerOperationError("stats", "empty stats response")
            stats = stats[0]
        return stats

    async def close(self) -> None:
        if self._docker is not None:
            try:
                await self._docker.close()
            except Exception as e:
                logger.error(f"Error closing Docker client: {e}")
            self._docker = None
