import asyncio
import threading

import pytest

from greeting_operator.controller import Controller
from greeting_operator.errors import (
    StoreAccessError,
    StoreValidationError,
    TransientStoreError,
)
from greeting_operator.events import ADDED, DELETED, ChangeEvent, ReconcileKey
from greeting_operator.kinds import DEPLOYMENT, GREETING_SERVICE, SERVICE
from greeting_operator.reconcile import ReconcileResult
from greeting_operator.status import ReconcileState

from tests.fakes import greeting_service

KEY = ReconcileKey("default", "hello")


async def wait_for(condition, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
async def controller(store, settings):
    controller = Controller(store, settings)
    await controller.start()
    yield controller
    await controller.stop(grace_period=1)


def primary_event(name="hello", event_type=ADDED):
    return ChangeEvent(event_type, GREETING_SERVICE.kind, "default", name)


class RecordingReconciler:
    """Counts calls and tracks how many run at once per key."""

    def __init__(self, delay=0.05, outcomes=None):
        self.delay = delay
        self.outcomes = list(outcomes or [])
        self.calls = []
        self.active = {}
        self.max_active = {}
        self.max_total = 0
        self._lock = threading.Lock()

    def reconcile(self, key):
        with self._lock:
            self.calls.append(key)
            self.active[key] = self.active.get(key, 0) + 1
            self.max_active[key] = max(self.max_active.get(key, 0), self.active[key])
            self.max_total = max(self.max_total, sum(self.active.values()))
        try:
            threading.Event().wait(self.delay)
            if self.outcomes:
                outcome = self.outcomes.pop(0)
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
            return ReconcileResult(ReconcileState.READY)
        finally:
            with self._lock:
                self.active[key] -= 1


class TestEventMapping:
    async def test_primary_event_queues_its_own_key(self, controller, store):
        store.create(GREETING_SERVICE, greeting_service())

        assert await controller.handle_event(primary_event()) == KEY
        await wait_for(lambda: controller.state_of(KEY) == ReconcileState.READY)
        assert store.peek(DEPLOYMENT, "default", "hello") is not None

    async def test_owned_event_maps_to_owner(self, controller, store):
        store.create(GREETING_SERVICE, greeting_service())
        await controller.handle_event(primary_event())
        await wait_for(lambda: store.peek(SERVICE, "default", "hello") is not None)
        service_event = [e for e in store.events if e.kind == "Service"][0]

        assert await controller.handle_event(service_event) == KEY

    async def test_owned_event_without_owner_is_dropped(self, controller):
        event = ChangeEvent(ADDED, "Deployment", "default", "stray")
        assert await controller.handle_event(event) is None
        assert len(controller.queue) == 0

    async def test_owned_event_for_vanished_owner_is_dropped(self, controller):
        event = ChangeEvent(
            DELETED,
            "Deployment",
            "default",
            "hello",
            owner_references=[
                {
                    "apiVersion": "tutorial.example.com/v1",
                    "kind": "GreetingService",
                    "name": "hello",
                    "uid": "gone",
                    "controller": True,
                }
            ],
        )
        assert await controller.handle_event(event) is None
        assert controller.queue.is_idle()

    async def test_unrelated_kind_is_dropped(self, controller):
        event = ChangeEvent(ADDED, "ConfigMap", "default", "x")
        assert await controller.handle_event(event) is None

    async def test_primary_delete_clears_state(self, controller, store):
        store.create(GREETING_SERVICE, greeting_service())
        await controller.handle_event(primary_event())
        await wait_for(lambda: controller.state_of(KEY) == ReconcileState.READY)

        assert controller.queue.pending() == [KEY]

        assert await controller.handle_event(primary_event(event_type=DELETED)) is None
        assert controller.state_of(KEY) == ReconcileState.UNKNOWN
        # the resync timer is disarmed too
        assert controller.queue.pending() == []


class TestScenarios:
    async def test_self_healing_after_out_of_band_delete(self, controller, store):
        store.create(GREETING_SERVICE, greeting_service(replicas=3))
        await controller.handle_event(primary_event())
        await wait_for(lambda: controller.state_of(KEY) == ReconcileState.READY)

        store.delete(DEPLOYMENT, "default", "hello")
        delete_event = [
            e for e in store.events if e.kind == "Deployment" and e.type == DELETED
        ][0]

        assert await controller.handle_event(delete_event) == KEY
        await wait_for(lambda: store.peek(DEPLOYMENT, "default", "hello") is not None)
        assert store.peek(DEPLOYMENT, "default", "hello")["spec"]["replicas"] == 3

    async def test_error_then_recover(self, controller, store):
        store.create(GREETING_SERVICE, greeting_service(replicas=2))
        store.fail_next("apply", TransientStoreError("conflict", status=409))

        await controller.handle_event(primary_event())

        def status():
            return store.peek(GREETING_SERVICE, "default", "hello").get("status", {})

        await wait_for(lambda: status().get("phase") == "Ready")
        assert status()["readyReplicas"] == 2
        assert controller.state_of(KEY) == ReconcileState.READY
        assert controller.queue.num_requeues(KEY) == 0

    async def test_concurrent_keys_stay_independent(self, controller, store):
        for name, replicas in (("one", 1), ("two", 4)):
            store.create(GREETING_SERVICE, greeting_service(name=name, replicas=replicas))
            await controller.handle_event(primary_event(name))

        one, two = ReconcileKey("default", "one"), ReconcileKey("default", "two")
        await wait_for(
            lambda: controller.state_of(one) == ReconcileState.READY
            and controller.state_of(two) == ReconcileState.READY
        )

        assert store.peek(DEPLOYMENT, "default", "one")["spec"]["replicas"] == 1
        assert store.peek(DEPLOYMENT, "default", "two")["spec"]["replicas"] == 4
        assert store.peek(GREETING_SERVICE, "default", "one")["status"]["readyReplicas"] == 1
        assert store.peek(GREETING_SERVICE, "default", "two")["status"]["readyReplicas"] == 4


class TestDispatch:
    async def test_single_in_flight_per_key(self, store, settings):
        reconciler = RecordingReconciler(delay=0.05)
        controller = Controller(store, settings, reconciler=reconciler)
        await controller.start()
        try:
            for _ in range(5):
                controller.enqueue(KEY)
                await asyncio.sleep(0.01)
            await wait_for(lambda: controller.queue.is_idle())
        finally:
            await controller.stop()

        assert reconciler.max_active[KEY] == 1
        # bursts collapse: far fewer calls than events
        assert 1 < len(reconciler.calls) < 5

    async def test_distinct_keys_run_in_parallel(self, store, settings):
        reconciler = RecordingReconciler(delay=0.2)
        controller = Controller(store, settings, reconciler=reconciler)
        await controller.start()
        try:
            controller.enqueue(ReconcileKey("default", "a"))
            controller.enqueue(ReconcileKey("default", "b"))
            controller.enqueue(ReconcileKey("default", "c"))
            await wait_for(lambda: len(reconciler.calls) == 3)
        finally:
            await controller.stop()

        # worker_limit is 2
        assert reconciler.max_total == 2

    async def test_failure_requeues_with_backoff(self, store, settings):
        reconciler = RecordingReconciler(
            delay=0, outcomes=[TransientStoreError("boom"), TransientStoreError("boom")]
        )
        controller = Controller(store, settings, reconciler=reconciler)
        await controller.start()
        try:
            controller.enqueue(KEY)
            await wait_for(lambda: len(reconciler.calls) == 3)
            await wait_for(lambda: controller.state_of(KEY) == ReconcileState.READY)
        finally:
            await controller.stop()

        assert controller.queue.num_requeues(KEY) == 0

    async def test_access_errors_are_retried_and_logged_loudly(self, store, settings, caplog):
        reconciler = RecordingReconciler(
            delay=0, outcomes=[StoreAccessError("forbidden", status=403)]
        )
        controller = Controller(store, settings, reconciler=reconciler)
        await controller.start()
        try:
            controller.enqueue(KEY)
            await wait_for(lambda: controller.state_of(KEY) == ReconcileState.READY)
        finally:
            await controller.stop()

        assert len(reconciler.calls) == 2
        assert any(
            r.levelname == "ERROR" and "forbidden" in r.getMessage() for r in caplog.records
        )

    async def test_rejected_write_waits_for_the_invalid_spec_interval(self, store, settings):
        reconciler = RecordingReconciler(
            delay=0, outcomes=[StoreValidationError("Deployment is invalid", status=422)]
        )
        controller = Controller(store, settings, reconciler=reconciler)
        await controller.start()
        try:
            controller.enqueue(KEY)
            await wait_for(lambda: controller.state_of(KEY) == ReconcileState.FAILED)
            # several backoff periods
            await asyncio.sleep(0.3)

            assert len(reconciler.calls) == 1
            assert controller.queue.num_requeues(KEY) == 0
            assert controller.queue.pending() == [KEY]
        finally:
            await controller.stop()

    async def test_unexpected_exception_does_not_kill_worker(self, store, settings):
        reconciler = RecordingReconciler(delay=0, outcomes=[RuntimeError("bug")])
        controller = Controller(store, settings, reconciler=reconciler)
        await controller.start()
        try:
            controller.enqueue(KEY)
            await wait_for(lambda: len(reconciler.calls) == 2)
            await wait_for(lambda: controller.state_of(KEY) == ReconcileState.READY)
        finally:
            await controller.stop()

    async def test_requested_requeue_is_scheduled(self, store, settings):
        reconciler = RecordingReconciler(
            delay=0,
            outcomes=[ReconcileResult(ReconcileState.READY, requeue_after=0.05)],
        )
        controller = Controller(store, settings, reconciler=reconciler)
        await controller.start()
        try:
            controller.enqueue(KEY)
            await wait_for(lambda: len(reconciler.calls) == 2)
        finally:
            await controller.stop()

    async def test_timeout_is_a_failure_and_keeps_key_in_flight(self, store, settings):
        settings = settings.model_copy(update={"reconcile_timeout": 0.05})
        reconciler = RecordingReconciler(delay=0.3)
        controller = Controller(store, settings, reconciler=reconciler)
        await controller.start()
        try:
            controller.enqueue(KEY)
            await wait_for(lambda: controller.state_of(KEY) == ReconcileState.FAILED)
            assert controller.queue.is_processing(KEY)
            await wait_for(lambda: len(reconciler.calls) >= 2, timeout=3)
        finally:
            await controller.stop()

        assert reconciler.max_active[KEY] == 1


class TestShutdown:
    async def test_stop_rejects_new_events(self, store, settings):
        controller = Controller(store, settings)
        await controller.start()
        assert controller.running

        await controller.stop()

        assert not controller.running
        store.create(GREETING_SERVICE, greeting_service())
        assert await controller.handle_event(primary_event()) is None

    async def test_stop_lets_in_flight_reconcile_finish(self, store, settings):
        reconciler = RecordingReconciler(delay=0.1)
        controller = Controller(store, settings, reconciler=reconciler)
        await controller.start()
        controller.enqueue(KEY)
        await wait_for(lambda: len(reconciler.calls) == 1)

        await controller.stop(grace_period=1)

        assert reconciler.active[KEY] == 0
        assert controller.state_of(KEY) == ReconcileState.READY

    async def test_stop_cancels_reconciles_that_outlast_the_grace_period(self, store, settings):
        reconciler = RecordingReconciler(delay=0.5)
        controller = Controller(store, settings, reconciler=reconciler)
        await controller.start()
        controller.enqueue(KEY)
        await wait_for(lambda: len(reconciler.calls) == 1)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await controller.stop(grace_period=0.1)

        assert loop.time() - started < 0.4
        assert not controller.running
        assert controller._workers == []

    async def test_stop_drops_scheduled_requeues(self, store, settings):
        reconciler = RecordingReconciler(
            delay=0, outcomes=[ReconcileResult(ReconcileState.READY, requeue_after=60)]
        )
        controller = Controller(store, settings, reconciler=reconciler)
        await controller.start()
        controller.enqueue(KEY)
        await wait_for(lambda: controller.queue.pending() == [KEY])

        await controller.stop()

        assert controller.queue.pending() == []
        assert len(reconciler.calls) == 1
