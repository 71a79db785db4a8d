"""Event dispatcher and worker pool driving the reconcile core."""

import asyncio
import logging

from greeting_operator.config import OperatorSettings
from greeting_operator.errors import StoreAccessError, StoreError, StoreValidationError
from greeting_operator.events import DELETED, ReconcileKey
from greeting_operator.kinds import GREETING_SERVICE, GROUP, OWNED_KINDS
from greeting_operator.queue import WorkQueue
from greeting_operator.reconcile import Reconciler
from greeting_operator.status import ReconcileState

logger = logging.getLogger(__name__)

_OWNED_KIND_NAMES = {kind.kind for kind in OWNED_KINDS}


class Controller:
    """Turns change events into reconcile calls.

    Events are mapped to the key of the owning GreetingService and pushed
    through a WorkQueue. ``worker_limit`` workers pull keys and run the
    reconciler in a thread, so distinct keys reconcile in parallel while each
    key has at most one attempt in flight.
    """

    def __init__(self, store, settings=None, reconciler=None):
        self.store = store
        self.settings = settings or OperatorSettings()
        self.reconciler = reconciler or Reconciler(store, self.settings)
        self.queue = WorkQueue(
            backoff_base=self.settings.backoff_base,
            backoff_max=self.settings.backoff_max,
        )
        self._states = {}
        self._workers = []
        self._abandoned = {}
        self._accepting = False

    @property
    def running(self):
        return bool(self._workers) and self._accepting

    def state_of(self, key):
        return self._states.get(key, ReconcileState.UNKNOWN)

    async def start(self):
        """Spawn the worker pool."""
        if self._workers:
            logger.warning("Controller already started")
            return

        self._accepting = True
        for index in range(self.settings.worker_limit):
            self._workers.append(
                asyncio.create_task(self._worker(index), name=f"greeting-worker-{index}")
            )
        logger.info(f"Controller started with {self.settings.worker_limit} workers")

    async def stop(self, grace_period=None):
        """Stop accepting events and wind down the workers.

        In-flight reconciles get ``grace_period`` seconds to finish. Anything
        still queued is dropped; the next start lists every object again.
        """
        if grace_period is None:
            grace_period = self.settings.shutdown_grace_period

        self._accepting = False
        pending = self.queue.pending()
        self.queue.shutdown()

        if self._workers:
            _, unfinished = await asyncio.wait(self._workers, timeout=grace_period)
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)
                logger.warning(f"Abandoned {len(unfinished)} in-flight reconcile(s) at shutdown")
            self._workers = []

        if self._abandoned:
            logger.warning(
                f"{len(self._abandoned)} timed-out reconcile(s) still running: "
                f"{', '.join(str(key) for key in sorted(self._abandoned))}"
            )

        if pending:
            logger.info(
                f"Dropped {len(pending)} pending reconcile(s) at shutdown: "
                f"{', '.join(str(key) for key in pending)}"
            )
        logger.info("Controller stopped")

    async def handle_event(self, event):
        """Queue a reconcile for the GreetingService affected by ``event``.

        Returns:
            The ReconcileKey queued, or None if the event was dropped.
        """
        if not self._accepting:
            logger.debug(f"Controller not accepting events, ignoring {event.kind} {event.name}")
            return None

        key = await self._key_for(event)
        if key is None:
            return None

        if event.kind == GREETING_SERVICE.kind and event.type == DELETED:
            logger.info(f"GreetingService {key} deleted")
            self._states.pop(key, None)
            self.queue.forget(key)
            self.queue.cancel(key)
            return None

        self.queue.add(key)
        return key

    def enqueue(self, key):
        """Queue a reconcile for ``key`` directly."""
        self.queue.add(key)

    async def _key_for(self, event):
        if event.kind == GREETING_SERVICE.kind:
            return ReconcileKey(event.namespace, event.name)

        if event.kind not in _OWNED_KIND_NAMES:
            logger.debug(f"Ignoring event for unrelated kind {event.kind}")
            return None

        owner = event.controller_owner(GREETING_SERVICE.kind, GROUP)
        if owner is None:
            logger.debug(f"{event.kind} {event.namespace}/{event.name} has no GreetingService owner")
            return None

        key = ReconcileKey(event.namespace, owner["name"])
        try:
            parent = await asyncio.to_thread(
                self.store.get, GREETING_SERVICE, key.namespace, key.name
            )
        except StoreError as e:
            # level-triggered: let the reconcile itself sort out a missing owner
            logger.debug(f"Owner lookup for {key} failed ({e}), queueing anyway")
            return key

        if parent is None or parent["metadata"].get("uid") != owner.get("uid"):
            logger.debug(f"Owner {key} of {event.kind} {event.name} is gone, dropping event")
            return None
        return key

    async def _worker(self, index):
        logger.debug(f"Worker {index} started")
        while True:
            key = await self.queue.get()
            if key is None:
                logger.debug(f"Worker {index} exiting")
                return
            await self._process(key)

    async def _process(self, key):
        self._states[key] = ReconcileState.RECONCILING
        attempt = asyncio.ensure_future(asyncio.to_thread(self.reconciler.reconcile, key))

        done, _ = await asyncio.wait({attempt}, timeout=self.settings.reconcile_timeout)
        if not done:
            # The thread keeps running; the key stays in-flight until it returns.
            logger.error(
                f"Reconcile of {key} exceeded {self.settings.reconcile_timeout}s, scheduling retry"
            )
            self._states[key] = ReconcileState.FAILED
            self.queue.add_rate_limited(key)
            self._abandoned[key] = attempt
            attempt.add_done_callback(lambda future, key=key: self._release(key, future))
            return

        try:
            self._handle_outcome(key, attempt)
        finally:
            self.queue.done(key)

    def _release(self, key, future):
        self._abandoned.pop(key, None)
        if not future.cancelled() and future.exception() is not None:
            logger.warning(f"Timed-out reconcile of {key} finished with error: {future.exception()}")
        self.queue.done(key)

    def _handle_outcome(self, key, attempt):
        try:
            result = attempt.result()
        except StoreValidationError as e:
            # rejected writes wait for the invalid-spec interval, not the backoff
            self._states[key] = ReconcileState.FAILED
            self.queue.forget(key)
            self.queue.add_after(key, self.settings.invalid_spec_retry)
            logger.error(
                f"Store rejected the objects for {key}: {e}; "
                f"retrying in {self.settings.invalid_spec_retry:.0f}s"
            )
            return
        except StoreError as e:
            self._states[key] = ReconcileState.FAILED
            delay = self.queue.add_rate_limited(key)
            level = logging.ERROR if isinstance(e, StoreAccessError) else logging.WARNING
            logger.log(
                level,
                f"Reconcile of {key} failed (attempt {self.queue.num_requeues(key)}): {e}; "
                f"retrying in {delay:.1f}s",
            )
            return
        except Exception:
            self._states[key] = ReconcileState.FAILED
            delay = self.queue.add_rate_limited(key)
            logger.exception(f"Unexpected error reconciling {key}; retrying in {delay:.1f}s")
            return

        self.queue.forget(key)
        if result.state == ReconcileState.DELETED:
            self._states.pop(key, None)
            return

        self._states[key] = result.state
        if result.requeue_after is not None:
            self.queue.add_after(key, result.requeue_after)
