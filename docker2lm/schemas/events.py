from pydantic import BaseModel
from typing import Optional, Dict, Any


ACTIONABLE_STATUSES = ("start", "die")


class LifecycleEvent(BaseModel):
    """A Docker daemon event, reduced to the fields the agent acts on"""
    type: str
    status: str
    id: str
    time: Optional[int] = None

    @classmethod
    def from_docker(cls, event: Dict[str, Any]) -> "LifecycleEvent":
        actor = event.get("Actor") or {}
        return cls(
            type=event.get("Type") or "",
            status=event.get("status") or event.get("Action") or "",
            id=event.get("id") or actor.get("ID") or "",
            time=event.get("time"),
        )

    @property
    def is_container(self) -> bool:
        return self.type == "container"

    @property
    def is_actionable(self) -> bool:
        return self.is_container and self.status in ACTIONABLE_STATUSES
