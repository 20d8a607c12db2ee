"""Tests for the saga and order state machines."""

import uuid

import pytest

from orderflow.core.exceptions import ConflictException
from orderflow.models import OrderStatus
from orderflow.services.checkout_saga import InvalidSagaTransition, SagaState, SagaStateMachine
from orderflow.services.order_state_machine import OrderStateMachine


class TestSagaStateMachine:
    """Tests for saga state transitions."""

    def test_happy_gateway_path(self):
        saga = SagaStateMachine("key-1")
        for state in (
            SagaState.RESERVING,
            SagaState.PRICING,
            SagaState.PERSISTING,
            SagaState.COMMITTED,
            SagaState.GATEWAY_OK,
        ):
            saga.advance(state)

        assert saga.state == SagaState.GATEWAY_OK
        assert saga.history[0] == SagaState.VALIDATING

    def test_compensation_path(self):
        saga = SagaStateMachine("key-2")
        for state in (
            SagaState.RESERVING,
            SagaState.PRICING,
            SagaState.PERSISTING,
            SagaState.COMMITTED,
            SagaState.GATEWAY_FAILED,
            SagaState.COMPENSATING,
            SagaState.COMPENSATED,
        ):
            saga.advance(state)

        assert saga.state == SagaState.COMPENSATED

    def test_cannot_skip_reservation(self):
        saga = SagaStateMachine("key-3")
        with pytest.raises(InvalidSagaTransition):
            saga.advance(SagaState.PRICING)

    def test_fail_only_before_commit(self):
        saga = SagaStateMachine("key-4")
        saga.advance(SagaState.RESERVING)
        saga.fail()
        assert saga.state == SagaState.FAILED

        committed = SagaStateMachine("key-5")
        for state in (SagaState.RESERVING, SagaState.PRICING, SagaState.PERSISTING, SagaState.COMMITTED):
            committed.advance(state)
        committed.fail()
        assert committed.state == SagaState.COMMITTED

    def test_committed_orders_cannot_be_failed_back(self):
        saga = SagaStateMachine("key-6")
        for state in (SagaState.RESERVING, SagaState.PRICING, SagaState.PERSISTING, SagaState.COMMITTED):
            saga.advance(state)
        with pytest.raises(InvalidSagaTransition):
            saga.advance(SagaState.FAILED)


class TestOrderStateMachine:
    """Tests for order status transitions."""

    def test_cancellable_statuses(self):
        machine = OrderStateMachine()
        assert set(machine.cancellable_statuses()) == {
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
        }

    def test_cancelled_cannot_be_cancelled_again(self):
        machine = OrderStateMachine()
        assert not machine.is_cancellable(OrderStatus.CANCELLED)
        assert machine.can_transition(OrderStatus.CANCELLED, OrderStatus.REFUNDED)

    def test_refunded_is_terminal(self):
        assert OrderStateMachine().is_terminal_state(OrderStatus.REFUNDED)
        assert OrderStateMachine().next_statuses(OrderStatus.PENDING) == [OrderStatus.CANCELLED, OrderStatus.CONFIRMED]

    def test_history_entry_for_cancel(self):
        order_id = uuid.uuid4()
        entry = OrderStateMachine().history_entry(
            order_id, OrderStatus.PENDING, OrderStatus.CANCELLED, "Payment initiation failed", notes="timeout"
        )

        assert entry.order_id == order_id
        assert entry.status == OrderStatus.CANCELLED
        assert entry.previous_status == OrderStatus.PENDING
        assert entry.notes == "timeout"

    def test_history_entry_rejects_illegal_move(self):
        with pytest.raises(ConflictException) as exc_info:
            OrderStateMachine().history_entry(
                uuid.uuid4(), OrderStatus.SHIPPED, OrderStatus.CANCELLED, "Too late"
            )
        assert exc_info.value.error_code == "INVALID_STATUS_TRANSITION"
