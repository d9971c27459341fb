"""Per-operation state machine enforced by the wallet orchestrator.

A wallet operation runs the machine once, front to back. Purchases pass
through every state; deposits and refunds skip the limit check and the usage
record. Any non-terminal state may fail, and a failed operation is still
audited and has its lock released. A commit that fails after the audit step
rolls the success entry back, so AUDITED may still move to FAILED.
"""

STARTED = "started"
LOCK_ACQUIRED = "lock_acquired"
LIMIT_CHECKED = "limit_checked"
BALANCE_MUTATED = "balance_mutated"
USAGE_RECORDED = "usage_recorded"
AUDITED = "audited"
LOCK_RELEASED = "lock_released"
FAILED = "failed"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    STARTED: {LOCK_ACQUIRED, FAILED},
    LOCK_ACQUIRED: {LIMIT_CHECKED, BALANCE_MUTATED, FAILED},
    LIMIT_CHECKED: {BALANCE_MUTATED, FAILED},
    BALANCE_MUTATED: {USAGE_RECORDED, AUDITED, FAILED},
    USAGE_RECORDED: {AUDITED, FAILED},
    FAILED: {AUDITED},
    AUDITED: {LOCK_RELEASED, FAILED},
    LOCK_RELEASED: set(),
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")


class OperationState:
    """Tracks one operation's progress through ALLOWED_TRANSITIONS."""

    def __init__(self) -> None:
        self.current = STARTED
        self.history: list[str] = [STARTED]

    def advance(self, new: str) -> None:
        validate_transition(self.current, new)
        self.current = new
        self.history.append(new)

    @property
    def failed(self) -> bool:
        return FAILED in self.history
