"""
Container Registry

The dedup pool: tracks which containers currently have an active log stream.
Every method is synchronous, so a check-and-insert never spans an await and
is atomic on the event loop.
"""

from typing import Any, Dict, List, Optional

from docker2lm.core.logging import logger


_PENDING = object()


class ContainerRegistry:
    """At most one tracked entry per container id"""

    def __init__(self):
        self._entries: Dict[str, Any] = {}

    def try_register(self, container_id: str) -> bool:
        """Record tracking for container_id unless it is already tracked"""
        if container_id in self._entries:
            return False
        self._entries[container_id] = _PENDING
        return True

    def attach(self, container_id: str, handle: Any) -> None:
        """Associate the active stream handle with a registered container"""
        if container_id not in self._entries:
            logger.warning(f"Attach for untracked container {container_id[:12]} ignored")
            return
        self._entries[container_id] = handle

    def unregister(self, container_id: str) -> None:
        self._entries.pop(container_id, None)

    def get(self, container_id: str) -> Optional[Any]:
        handle = self._entries.get(container_id)
        return None if handle is _PENDING else handle

    def tracked_ids(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, container_id: str) -> bool:
        return container_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
