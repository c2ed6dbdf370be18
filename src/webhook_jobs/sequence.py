"""
Webhook event sequencing rules.

Payment providers deliver webhooks at least once and in no guaranteed order.
Each known event lists the events that may precede it and whether it closes
the flow. A handler compares the last event applied to a transaction with the
incoming one; an event that arrives ahead of its predecessor is retried later
as OUT_OF_SEQUENCE instead of being applied.

Events not listed here are always allowed.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class EventRule:
    allowed_previous: frozenset[str]  # Empty: may start a flow
    is_terminal: bool


@dataclass(frozen=True)
class SequenceCheck:
    """Outcome of checking an incoming event against the current one."""

    allowed: bool
    reason: str | None = None


def _rule(*allowed_previous: str, terminal: bool = False) -> EventRule:
    return EventRule(allowed_previous=frozenset(allowed_previous), is_terminal=terminal)


EVENT_RULES: dict[str, EventRule] = {
    # PIX cash-in
    "PIX_CASH_IN_WAS_RECEIVED": _rule(),
    "PIX_CASH_IN_WAS_CLEARED": _rule("PIX_CASH_IN_WAS_RECEIVED", terminal=True),
    # PIX cash-out; a cancellation may still be undone
    "PIX_CASHOUT_WAS_COMPLETED": _rule(terminal=True),
    "PIX_CASHOUT_WAS_CANCELED": _rule(),
    "PIX_CASHOUT_WAS_UNDONE": _rule("PIX_CASHOUT_WAS_CANCELED", terminal=True),
    # PIX refund
    "PIX_REFUND_WAS_RECEIVED": _rule(),
    "PIX_REFUND_WAS_CLEARED": _rule("PIX_REFUND_WAS_RECEIVED", terminal=True),
    # PIX QR code
    "PIX_QRCODE_WAS_CREATED": _rule(terminal=True),
    # Boleto
    "BOLETO_WAS_REGISTERED": _rule(),
    "BOLETO_CASH_IN_WAS_RECEIVED": _rule("BOLETO_WAS_REGISTERED"),
    "BOLETO_CASH_IN_WAS_CLEARED": _rule("BOLETO_CASH_IN_WAS_RECEIVED", terminal=True),
    "BOLETO_WAS_CANCELLED": _rule(
        "BOLETO_WAS_REGISTERED", "BOLETO_CASH_IN_WAS_RECEIVED", terminal=True
    ),
    # Bill payment; confirmed may still be refused, failed may still be cancelled
    "BILL_PAYMENT_WAS_RECEIVED": _rule(),
    "BILL_PAYMENT_WAS_CREATED": _rule("BILL_PAYMENT_WAS_RECEIVED"),
    "BILL_PAYMENT_WAS_CONFIRMED": _rule("BILL_PAYMENT_WAS_CREATED"),
    "BILL_PAYMENT_HAS_FAILED": _rule("BILL_PAYMENT_WAS_RECEIVED", "BILL_PAYMENT_WAS_CREATED"),
    "BILL_PAYMENT_WAS_CANCELLED": _rule("BILL_PAYMENT_HAS_FAILED", terminal=True),
    "BILL_PAYMENT_WAS_REFUSED": _rule("BILL_PAYMENT_WAS_CONFIRMED", terminal=True),
}

TERMINAL_EVENTS = frozenset(name for name, rule in EVENT_RULES.items() if rule.is_terminal)


def is_terminal_event(event: str) -> bool:
    return event in TERMINAL_EVENTS


def terminal_events_for_flow(flow_prefix: str) -> list[str]:
    """Terminal events of one flow, e.g. 'PIX_CASH_IN' or 'BOLETO'."""
    return sorted(event for event in TERMINAL_EVENTS if event.startswith(flow_prefix))


def check_sequence(current: str | None, incoming: str) -> SequenceCheck:
    """
    Check whether ``incoming`` may be applied after ``current``.

    Args:
        current: Last event applied to the transaction, None if none yet
        incoming: Event carried by the webhook being processed

    Returns:
        SequenceCheck with a human-readable reason when not allowed
    """
    rule = EVENT_RULES.get(incoming)
    if rule is None:
        return SequenceCheck(allowed=True)

    if not current:
        if rule.allowed_previous:
            return SequenceCheck(
                allowed=False, reason=f"Event {incoming} requires a previous state"
            )
        return SequenceCheck(allowed=True)

    if is_terminal_event(current):
        return SequenceCheck(
            allowed=False,
            reason=f"Current state {current} is terminal, cannot process {incoming}",
        )

    if current in rule.allowed_previous:
        return SequenceCheck(allowed=True)

    return SequenceCheck(
        allowed=False, reason=f"Invalid transition from {current} to {incoming}"
    )


__all__ = [
    "EVENT_RULES",
    "EventRule",
    "SequenceCheck",
    "TERMINAL_EVENTS",
    "check_sequence",
    "is_terminal_event",
    "terminal_events_for_flow",
]
