"""Callback and order state machines enforced by the return flow."""

CALLBACK_TRANSITIONS: dict[str, set[str]] = {
    "RECEIVED": {"AUTH_CHECKED", "FAILED"},
    "AUTH_CHECKED": {"ORDER_NUMBER_CHECKED", "FAILED"},
    "ORDER_NUMBER_CHECKED": {"STATUS_RESOLVED", "FAILED"},
    "STATUS_RESOLVED": {"ACCEPTED", "AUTHORIZED", "FAILED"},
    "ACCEPTED": set(),
    "AUTHORIZED": set(),
    "FAILED": set(),
}

ORDER_TRANSITIONS: dict[str, set[str]] = {
    "authorized": {"paid", "error"},
    "paid": set(),
    "error": set(),
}


def validate_transition(current: str, new: str, transitions: dict[str, set[str]] = CALLBACK_TRANSITIONS) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in transitions.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")
