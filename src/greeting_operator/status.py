"""Status subresource contents for GreetingService objects."""

import enum

from greeting_operator.models.greeting import GreetingServiceStatus


class ReconcileState(str, enum.Enum):
    """Per-object reconcile state, mirrored in ``status.phase``."""

    UNKNOWN = "Unknown"
    RECONCILING = "Reconciling"
    READY = "Ready"
    FAILED = "Failed"
    DELETED = "Deleted"


def ready_status(spec, generation=None):
    """Status written after a successful reconcile."""
    noun = "replica" if spec.replicas == 1 else "replicas"
    status = GreetingServiceStatus(
        phase=ReconcileState.READY.value,
        readyReplicas=spec.replicas,
        message=f"Deployed {spec.replicas} {noun} of {spec.image} on port {spec.port}",
        observedGeneration=generation,
    )
    return status.model_dump(exclude_none=True)


def failed_status(message, generation=None, ready_replicas=None):
    """Status written when a reconcile attempt could not complete."""
    status = GreetingServiceStatus(
        phase=ReconcileState.FAILED.value,
        readyReplicas=ready_replicas,
        message=message,
        observedGeneration=generation,
    )
    return status.model_dump(exclude_none=True)


def status_changed(current, desired):
    """True if any desired status field differs from what is stored."""
    current = current or {}
    return any(current.get(key) != value for key, value in desired.items())
