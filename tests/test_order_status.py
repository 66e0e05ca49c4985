"""Tests for the order state machine and the restock calculation."""

from dataclasses import dataclass

import pytest

from order_service.app.order_status import (
    ALLOWED_TRANSITIONS,
    CANCEL_AFTER_SHIPPING_ERROR,
    OrderStatus,
    allowed_next_statuses,
    calculate_restock_quantities,
    is_terminal,
    normalize_status,
    validate_status_transition,
)

S = OrderStatus

EXPECTED_ALLOWED = {
    (S.PENDING, S.PROCESSING),
    (S.PENDING, S.CANCELLED),
    (S.PROCESSING, S.SHIPPED),
    (S.PROCESSING, S.CANCELLED),
    (S.SHIPPED, S.DELIVERED),
    (S.CONFIRMED, S.PROCESSING),
    (S.FAILED, S.PENDING),
}


@dataclass
class Line:
    product_id: str
    quantity: int


class TestValidateStatusTransition:
    @pytest.mark.parametrize("from_status", list(OrderStatus))
    @pytest.mark.parametrize("to_status", list(OrderStatus))
    def test_matches_transition_table(self, from_status, to_status):
        result = validate_status_transition(from_status, to_status)

        assert result.allowed == ((from_status, to_status) in EXPECTED_ALLOWED)
        if result.allowed:
            assert result.error is None
        else:
            assert result.error

    @pytest.mark.parametrize("from_status", [S.SHIPPED, S.DELIVERED])
    def test_cancel_after_shipping_has_specific_message(self, from_status):
        result = validate_status_transition(from_status, S.CANCELLED)

        assert not result.allowed
        assert result.error == CANCEL_AFTER_SHIPPING_ERROR

    @pytest.mark.parametrize("terminal", [S.DELIVERED, S.CANCELLED])
    @pytest.mark.parametrize("to_status", list(OrderStatus))
    def test_terminal_states_reject_everything(self, terminal, to_status):
        assert not validate_status_transition(terminal, to_status).allowed

    def test_generic_message_names_both_statuses(self):
        result = validate_status_transition(S.DELIVERED, S.PROCESSING)
        assert result.error == "Cannot transition from DELIVERED to PROCESSING"

        result = validate_status_transition(S.SHIPPED, S.PENDING)
        assert result.error == "Cannot transition from SHIPPED to PENDING"

    def test_cancelled_to_cancelled_uses_terminal_message(self):
        result = validate_status_transition(S.CANCELLED, S.CANCELLED)
        assert result.error == "Cannot transition from CANCELLED to CANCELLED"

    def test_same_status_is_not_a_transition(self):
        assert not validate_status_transition(S.PENDING, S.PENDING).allowed


class TestStatusHelpers:
    def test_terminal_statuses(self):
        assert {s for s in OrderStatus if is_terminal(s)} == {S.DELIVERED, S.CANCELLED}
        assert all(not ALLOWED_TRANSITIONS[s] for s in OrderStatus if is_terminal(s))

    def test_allowed_next_statuses_sorted(self):
        assert allowed_next_statuses(S.PENDING) == [S.CANCELLED, S.PROCESSING]
        assert allowed_next_statuses(S.DELIVERED) == []

    @pytest.mark.parametrize("raw", ["pending", "Pending", " PENDING ", S.PENDING])
    def test_normalize_status_ignores_case(self, raw):
        assert normalize_status(raw) is S.PENDING

    def test_normalize_status_rejects_unknown(self):
        with pytest.raises(ValueError):
            normalize_status("LOST")


class TestCalculateRestockQuantities:
    def test_already_restocked_returns_none(self):
        assert calculate_restock_quantities([Line("p1", 2)], already_restocked=True) is None
        assert calculate_restock_quantities([], already_restocked=True) is None

    def test_empty_order_returns_empty_mapping(self):
        result = calculate_restock_quantities([], already_restocked=False)
        assert result == {}
        assert result is not None

    def test_aggregates_duplicate_products(self):
        items = [Line("p1", 2), Line("p1", 3), Line("p2", 1)]
        assert calculate_restock_quantities(items, already_restocked=False) == {"p1": 5, "p2": 1}

    def test_keeps_first_seen_order(self):
        items = [Line("b", 1), Line("a", 1), Line("b", 1)]
        assert list(calculate_restock_quantities(items, already_restocked=False)) == ["b", "a"]
