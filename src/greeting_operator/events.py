"""Change events and reconcile keys."""

from dataclasses import dataclass, field
from typing import List, Optional

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"


@dataclass(frozen=True, order=True)
class ReconcileKey:
    """Identifies the GreetingService a reconcile request is for."""

    namespace: str
    name: str

    def __str__(self):
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class ChangeEvent:
    """A create/update/delete notification for one object."""

    type: str
    kind: str
    namespace: Optional[str]
    name: str
    owner_references: List[dict] = field(default_factory=list)

    @classmethod
    def from_body(cls, event_type, body):
        """Build an event from a watch payload.

        Args:
            event_type: ADDED/MODIFIED/DELETED, or None for the initial listing
            body: the object as delivered by the watch stream
        """
        metadata = body.get("metadata", {})
        return cls(
            type=event_type or ADDED,
            kind=body.get("kind", ""),
            namespace=metadata.get("namespace"),
            name=metadata.get("name", ""),
            owner_references=[dict(ref) for ref in metadata.get("ownerReferences") or []],
        )

    def controller_owner(self, kind, api_group=None):
        """Return the controller owner reference of ``kind``, if any."""
        for ref in self.owner_references:
            if ref.get("kind") != kind or not ref.get("controller"):
                continue
            if api_group and not ref.get("apiVersion", "").startswith(f"{api_group}/"):
                continue
            return ref
        return None
