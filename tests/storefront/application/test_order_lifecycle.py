"""Tests for OrderLifecycle: persisted transitions, concurrency handling and observers."""

import threading
import time

import pytest
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError
from structlog.testing import capture_logs

from storefront.errors import IllegalTransitionError
from storefront.notification.fake_adapter import FakeNotificationAdapter
from storefront.order.lifecycle import OrderLifecycle
from storefront.order.observers import CustomerNotifier, TrackingRefreshScheduler, TransitionObserver
from storefront.domain import storefront
from storefront.order.order import Order, OrderStatus
from storefront.shared.locks import KeyedLock
from storefront.utils import storage


class RecordingObserver(TransitionObserver):
    def __init__(self):
        self.seen = []

    def on_transition(self, order, change):
        self.seen.append((str(order.id), change.to_status))


class BrokenObserver(TransitionObserver):
    def on_transition(self, order, change):
        raise RuntimeError("observer exploded")


@pytest.fixture()
def lifecycle(clock):
    return OrderLifecycle(clock=clock)


def _advance(lifecycle, order, *statuses):
    for status in statuses:
        order = lifecycle.transition(order.id, status, actor="ops", payment_ref="pay-001")
    return order


class TestTransition:
    def test_transition_is_persisted(self, lifecycle, make_order):
        order = make_order()

        lifecycle.transition(order.id, OrderStatus.PROCESSING, actor="ops", reason="Picked")

        stored = storage.load(Order, order.id)
        assert stored.status == OrderStatus.PROCESSING.value
        assert len(stored.history) == 2
        assert stored.history[-1].reason == "Picked"
        assert stored.history[-1].actor == "ops"

    def test_payment_reference_recorded_on_paid(self, lifecycle, make_order):
        order = _advance(lifecycle, make_order(), OrderStatus.PROCESSING)
        lifecycle.transition(order.id, OrderStatus.PAID, actor="payments", payment_ref="pay-777")
        assert storage.load(Order, order.id).payment_ref == "pay-777"

    def test_accepts_status_values_and_aggregates(self, lifecycle, make_order):
        order = make_order()
        updated = lifecycle.transition(order, "Processing", actor="ops")
        assert updated.status == OrderStatus.PROCESSING.value

    def test_stale_copy_is_evaluated_against_stored_status(self, lifecycle, make_order):
        stale = make_order()
        _advance(lifecycle, stale, OrderStatus.CANCELLED)

        with pytest.raises(IllegalTransitionError):
            lifecycle.transition(stale, OrderStatus.PROCESSING, actor="ops")
        assert storage.load(Order, stale.id).status == OrderStatus.CANCELLED.value

    def test_illegal_transition_persists_nothing(self, lifecycle, make_order):
        order = make_order()
        with pytest.raises(IllegalTransitionError):
            lifecycle.transition(order.id, OrderStatus.SHIPPED, actor="ops")

        stored = storage.load(Order, order.id)
        assert stored.status == OrderStatus.PENDING.value
        assert len(stored.history) == 1

    def test_unknown_order(self, lifecycle):
        with pytest.raises(ObjectNotFoundError):
            lifecycle.transition("no-such-order", OrderStatus.PROCESSING, actor="ops")

    def test_history_is_append_only_across_saves(self, lifecycle, make_order):
        order = _advance(
            lifecycle,
            make_order(),
            OrderStatus.PROCESSING,
            OrderStatus.PAID,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        )
        history = storage.load(Order, order.id).history
        assert [entry.sequence for entry in history] == [1, 2, 3, 4, 5]
        assert all(later.changed_at > earlier.changed_at for earlier, later in zip(history, history[1:]))

    def test_delivered_order_is_not_refunded_directly(self, lifecycle, make_order):
        order = _advance(
            lifecycle,
            make_order(payment_ref="pay-001"),
            OrderStatus.PROCESSING,
            OrderStatus.PAID,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        )

        with pytest.raises(IllegalTransitionError) as exc:
            lifecycle.transition(order.id, OrderStatus.REFUNDED, actor="ops", reason="Return no-such-return")
        assert "approved return" in exc.value.messages["status"][0]
        assert storage.load(Order, order.id).status == OrderStatus.DELIVERED.value

    def test_transition_takes_no_return_reference(self, lifecycle, make_order):
        order = make_order()
        with pytest.raises(TypeError):
            lifecycle.transition(order.id, OrderStatus.PROCESSING, actor="ops", return_request_id="no-such-return")


class TestVersionConflicts:
    def test_conflict_is_retried_against_a_fresh_read(self, lifecycle, make_order, monkeypatch):
        order = make_order()
        real_save = storage.save
        calls = []

        def flaky_save(*aggregates):
            calls.append(aggregates)
            if len(calls) == 1:
                raise ExpectedVersionError("Wrong expected version")
            real_save(*aggregates)

        monkeypatch.setattr(storage, "save", flaky_save)

        lifecycle.transition(order.id, OrderStatus.PROCESSING, actor="ops")

        assert len(calls) == 2
        stored = storage.load(Order, order.id)
        assert stored.status == OrderStatus.PROCESSING.value
        assert len(stored.history) == 2

    def test_gives_up_after_max_attempts(self, make_order, clock, monkeypatch):
        lifecycle = OrderLifecycle(max_attempts=2, clock=clock)
        order = make_order()
        attempts = []

        def always_conflicts(*aggregates):
            attempts.append(aggregates)
            raise ExpectedVersionError("Wrong expected version")

        monkeypatch.setattr(storage, "save", always_conflicts)

        with pytest.raises(IllegalTransitionError):
            lifecycle.transition(order.id, OrderStatus.PROCESSING, actor="ops")

        assert len(attempts) == 2
        monkeypatch.undo()
        assert storage.load(Order, order.id).status == OrderStatus.PENDING.value


class TestConcurrentWriters:
    def test_injected_lock_registry_is_kept(self, clock):
        shared = KeyedLock()
        assert OrderLifecycle(locks=shared, clock=clock).locks is shared

    def test_one_writer_per_order_across_lifecycles(self, clock, make_order, monkeypatch):
        shared = KeyedLock()
        writers = [OrderLifecycle(locks=shared, clock=clock), OrderLifecycle(locks=shared, clock=clock)]
        order = make_order()
        real_load = storage.load

        def slow_load(*args):
            aggregate = real_load(*args)
            time.sleep(0.05)
            return aggregate

        monkeypatch.setattr(storage, "load", slow_load)
        start = threading.Barrier(len(writers))
        outcomes = []

        def write(lifecycle):
            with storefront.domain_context():
                start.wait()
                try:
                    lifecycle.transition(order.id, OrderStatus.PROCESSING, actor="ops")
                    outcomes.append("committed")
                except IllegalTransitionError:
                    outcomes.append("refused")

        threads = [threading.Thread(target=write, args=(lifecycle,)) for lifecycle in writers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert sorted(outcomes) == ["committed", "refused"]
        stored = real_load(Order, order.id)
        assert stored.status == OrderStatus.PROCESSING.value
        assert len(stored.history) == 2
        assert f"order:{order.id}" not in shared


class TestObservers:
    def test_observers_see_committed_changes(self, lifecycle, make_order):
        observer = RecordingObserver()
        lifecycle.register(observer)
        order = make_order()

        lifecycle.transition(order.id, OrderStatus.PROCESSING, actor="ops")

        assert observer.seen == [(str(order.id), OrderStatus.PROCESSING.value)]

    def test_failing_observer_does_not_undo_the_transition(self, clock, make_order):
        recorder = RecordingObserver()
        lifecycle = OrderLifecycle(observers=[BrokenObserver(), recorder], clock=clock)
        order = make_order()

        lifecycle.transition(order.id, OrderStatus.PROCESSING, actor="ops")

        assert storage.load(Order, order.id).status == OrderStatus.PROCESSING.value
        assert recorder.seen == [(str(order.id), OrderStatus.PROCESSING.value)]

    def test_rejected_transition_notifies_nobody(self, lifecycle, make_order):
        observer = RecordingObserver()
        lifecycle.register(observer)
        with pytest.raises(IllegalTransitionError):
            lifecycle.transition(make_order().id, OrderStatus.DELIVERED, actor="ops")
        assert observer.seen == []


class TestCustomerNotifier:
    def test_customer_told_about_shipment(self, lifecycle, make_order):
        channel = FakeNotificationAdapter()
        lifecycle.register(CustomerNotifier(channel))
        order = _advance(lifecycle, make_order(), OrderStatus.PROCESSING, OrderStatus.PAID)
        channel.reset()

        lifecycle.transition(order.id, OrderStatus.SHIPPED, actor="warehouse")

        assert len(channel.sent) == 1
        notice = channel.sent[0]
        assert notice.recipient == "ana@example.com"
        assert notice.order_id == str(order.id)
        assert notice.status == OrderStatus.SHIPPED.value
        assert notice.subject == f"Order {order.id} has shipped"
        assert "1,094.00 MXN" in notice.body

    def test_internal_statuses_are_not_announced(self, lifecycle, make_order):
        channel = FakeNotificationAdapter()
        lifecycle.register(CustomerNotifier(channel))
        lifecycle.transition(make_order().id, OrderStatus.PROCESSING, actor="ops")
        assert channel.sent == []

    def test_order_without_email_is_skipped(self, lifecycle, make_order):
        channel = FakeNotificationAdapter()
        lifecycle.register(CustomerNotifier(channel))
        lifecycle.transition(make_order(contact_email=None).id, OrderStatus.CANCELLED, actor="ops")
        assert channel.sent == []

    def test_delivery_failure_leaves_transition_in_place(self, lifecycle, make_order):
        channel = FakeNotificationAdapter()
        channel.configure(raise_on_send=ConnectionError("SMTP down"))
        lifecycle.register(CustomerNotifier(channel))
        order = make_order()

        lifecycle.transition(order.id, OrderStatus.CANCELLED, actor="ops")

        assert storage.load(Order, order.id).status == OrderStatus.CANCELLED.value

    def test_undelivered_notice_is_logged(self, lifecycle, make_order):
        channel = FakeNotificationAdapter()
        channel.configure(should_succeed=False, failure_reason="Mailbox full")
        lifecycle.register(CustomerNotifier(channel))
        order = make_order()

        with capture_logs() as logs:
            lifecycle.transition(order.id, OrderStatus.CANCELLED, actor="ops")

        undelivered = [entry for entry in logs if entry["event"] == "Customer notification not delivered"]
        assert len(undelivered) == 1
        assert undelivered[0]["error"] == "Mailbox full"
        assert undelivered[0]["order_id"] == str(order.id)


class TestTrackingRefreshScheduler:
    def test_job_queued_when_order_ships(self, lifecycle, make_order, clock):
        scheduler = TrackingRefreshScheduler(clock=clock)
        lifecycle.register(scheduler)
        order = _advance(lifecycle, make_order(), OrderStatus.PROCESSING, OrderStatus.PAID)
        assert scheduler.jobs == []

        lifecycle.transition(order.id, OrderStatus.SHIPPED, actor="warehouse")

        jobs = scheduler.drain()
        assert len(jobs) == 1
        assert jobs[0].order_id == str(order.id)
        assert jobs[0].carrier == "Estafeta"
        assert jobs[0].scheduled_at == clock()
        assert scheduler.jobs == []
