"""Tests for webhook event sequencing rules."""

import pytest

from webhook_jobs.sequence import (
    EVENT_RULES,
    TERMINAL_EVENTS,
    SequenceCheck,
    check_sequence,
    is_terminal_event,
    terminal_events_for_flow,
)


class TestCheckSequence:
    def test_unknown_event_always_allowed(self):
        assert check_sequence(None, "payment.confirmed") == SequenceCheck(allowed=True)
        assert check_sequence("PIX_CASH_IN_WAS_CLEARED", "payment.confirmed").allowed

    def test_flow_start_without_previous(self):
        assert check_sequence(None, "PIX_CASH_IN_WAS_RECEIVED").allowed
        assert check_sequence("", "BOLETO_WAS_REGISTERED").allowed

    def test_requires_previous_state(self):
        check = check_sequence(None, "PIX_CASH_IN_WAS_CLEARED")
        assert not check.allowed
        assert check.reason == "Event PIX_CASH_IN_WAS_CLEARED requires a previous state"

    def test_valid_transition(self):
        assert check_sequence("PIX_CASH_IN_WAS_RECEIVED", "PIX_CASH_IN_WAS_CLEARED").allowed
        assert check_sequence("BOLETO_CASH_IN_WAS_RECEIVED", "BOLETO_WAS_CANCELLED").allowed

    def test_terminal_current_blocks(self):
        check = check_sequence("PIX_CASH_IN_WAS_CLEARED", "PIX_CASH_IN_WAS_RECEIVED")
        assert not check.allowed
        assert check.reason == (
            "Current state PIX_CASH_IN_WAS_CLEARED is terminal, "
            "cannot process PIX_CASH_IN_WAS_RECEIVED"
        )

    def test_invalid_transition(self):
        check = check_sequence("BOLETO_WAS_REGISTERED", "BOLETO_CASH_IN_WAS_CLEARED")
        assert not check.allowed
        assert check.reason == (
            "Invalid transition from BOLETO_WAS_REGISTERED to BOLETO_CASH_IN_WAS_CLEARED"
        )

    @pytest.mark.parametrize(
        "path",
        [
            ["BILL_PAYMENT_WAS_RECEIVED", "BILL_PAYMENT_WAS_CREATED", "BILL_PAYMENT_WAS_CONFIRMED",
             "BILL_PAYMENT_WAS_REFUSED"],
            ["BILL_PAYMENT_WAS_RECEIVED", "BILL_PAYMENT_HAS_FAILED", "BILL_PAYMENT_WAS_CANCELLED"],
            ["PIX_CASHOUT_WAS_CANCELED", "PIX_CASHOUT_WAS_UNDONE"],
            ["BOLETO_WAS_REGISTERED", "BOLETO_CASH_IN_WAS_RECEIVED", "BOLETO_CASH_IN_WAS_CLEARED"],
        ],
    )
    def test_full_flows(self, path):
        current = None
        for event in path:
            assert check_sequence(current, event).allowed, (current, event)
            current = event

    def test_rules_reference_known_events(self):
        for rule in EVENT_RULES.values():
            assert rule.allowed_previous <= set(EVENT_RULES)


class TestTerminalEvents:
    def test_is_terminal_event(self):
        assert is_terminal_event("PIX_QRCODE_WAS_CREATED")
        assert not is_terminal_event("BILL_PAYMENT_WAS_CONFIRMED")
        assert not is_terminal_event("payment.confirmed")

    def test_terminal_events_for_flow(self):
        assert terminal_events_for_flow("BOLETO") == [
            "BOLETO_CASH_IN_WAS_CLEARED",
            "BOLETO_WAS_CANCELLED",
        ]
        assert terminal_events_for_flow("PIX_CASH_IN") == ["PIX_CASH_IN_WAS_CLEARED"]

    def test_terminal_set_matches_rules(self):
        assert TERMINAL_EVENTS == {e for e, r in EVENT_RULES.items() if r.is_terminal}
