"""Core reconciliation logic."""

import logging
from dataclasses import dataclass
from typing import Optional

from greeting_operator.builders import build_owned_objects
from greeting_operator.config import OperatorSettings
from greeting_operator.errors import SpecValidationError, StoreError
from greeting_operator.kinds import FINALIZER, GREETING_SERVICE, OWNED_KINDS
from greeting_operator.models.greeting import validate_spec
from greeting_operator.status import (
    ReconcileState,
    failed_status,
    ready_status,
    status_changed,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one successful reconcile call.

    ``requeue_after`` asks the dispatcher to look at the key again after that
    many seconds; None means no follow-up is needed.
    """

    state: ReconcileState
    requeue_after: Optional[float] = None

    @classmethod
    def deleted(cls):
        return cls(ReconcileState.DELETED)


class Reconciler:
    """Drives the owned Deployment and Service of a GreetingService.

    Every step is idempotent. Store failures propagate to the caller, which
    owns the retry policy.
    """

    def __init__(self, store, settings=None):
        self.store = store
        self.settings = settings or OperatorSettings()

    def reconcile(self, key):
        """Reconcile the GreetingService identified by ``key``.

        Raises:
            StoreError: any store call failed; the attempt should be retried
        """
        parent = self.store.get(GREETING_SERVICE, key.namespace, key.name)
        if parent is None:
            logger.info(f"GreetingService {key} no longer exists, nothing to do")
            return ReconcileResult.deleted()

        metadata = parent.get("metadata", {})
        if metadata.get("deletionTimestamp"):
            return self._finalize(key, parent)

        if self.settings.uses_finalizer:
            parent = self._ensure_finalizer(key, parent)
            metadata = parent.get("metadata", {})

        generation = metadata.get("generation")

        try:
            spec = validate_spec(parent.get("spec"))
        except SpecValidationError as e:
            logger.warning(f"GreetingService {key} has an invalid spec: {e}")
            self._write_status(key, parent, failed_status(f"Invalid spec: {e}", generation))
            return ReconcileResult(
                ReconcileState.FAILED, requeue_after=self.settings.invalid_spec_retry
            )

        try:
            for kind, desired in build_owned_objects(parent, spec):
                self.store.apply(kind, desired)
                logger.debug(f"Applied {kind.kind} for GreetingService {key}")
        except StoreError as e:
            logger.error(f"Failed to apply owned objects for GreetingService {key}: {e}")
            self._record_failure(key, parent, e, generation)
            raise

        self._write_status(key, parent, ready_status(spec, generation))
        logger.info(
            f"GreetingService {key} reconciled: {spec.replicas} x {spec.image}:{spec.port}"
        )
        return ReconcileResult(
            ReconcileState.READY, requeue_after=self.settings.resync_period
        )

    def _write_status(self, key, parent, desired):
        if not status_changed(parent.get("status"), desired):
            logger.debug(f"Status of GreetingService {key} already up to date")
            return

        self.store.apply_status(
            GREETING_SERVICE,
            key.namespace,
            key.name,
            desired,
            resource_version=parent["metadata"].get("resourceVersion"),
        )

    def _record_failure(self, key, parent, error, generation):
        """Best-effort Failed status; never replaces the original error."""
        try:
            self._write_status(
                key, parent, failed_status(f"Reconcile failed: {error}", generation)
            )
        except StoreError as status_error:
            logger.warning(
                f"Could not record failure on GreetingService {key}: {status_error}"
            )

    def _ensure_finalizer(self, key, parent):
        finalizers = parent["metadata"].get("finalizers") or []
        if FINALIZER in finalizers:
            return parent

        logger.info(f"Adding finalizer to GreetingService {key}")
        updated = self.store.set_finalizers(
            GREETING_SERVICE,
            key.namespace,
            key.name,
            [*finalizers, FINALIZER],
            resource_version=parent["metadata"].get("resourceVersion"),
        )
        return updated or parent

    def _finalize(self, key, parent):
        """Handle a GreetingService that is being deleted."""
        finalizers = parent["metadata"].get("finalizers") or []
        if FINALIZER not in finalizers:
            logger.debug(f"GreetingService {key} is terminating; owned objects are garbage collected")
            return ReconcileResult.deleted()

        for kind in OWNED_KINDS:
            self.store.delete(kind, key.namespace, key.name)

        self.store.set_finalizers(
            GREETING_SERVICE,
            key.namespace,
            key.name,
            [f for f in finalizers if f != FINALIZER],
            resource_version=parent["metadata"].get("resourceVersion"),
        )
        logger.info(f"Cleaned up owned objects of GreetingService {key}")
        return ReconcileResult.deleted()
