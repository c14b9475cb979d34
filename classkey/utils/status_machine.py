"""Legal status transitions for access codes.

PENDING is the only non-terminal state. A code leaves it exactly once:

* ACCEPTED when a single-redeemer invitation or join link is consumed,
* EXHAUSTED when a multi-use enrollment code reaches ``max_uses``,
* CANCELLED by an explicit issuer action.

Reaching ``max_uses`` is permanent. Raising ``max_uses`` afterwards does not
revive an EXHAUSTED code.
"""

from classkey.exceptions import InvalidStatusTransition
from classkey.models.access_code import CodeKind, CodeStatus

TERMINAL_STATUSES = frozenset({CodeStatus.ACCEPTED, CodeStatus.EXHAUSTED, CodeStatus.CANCELLED})

ALLOWED_TRANSITIONS: dict[CodeStatus, frozenset[CodeStatus]] = {
    CodeStatus.PENDING: frozenset({CodeStatus.ACCEPTED, CodeStatus.EXHAUSTED, CodeStatus.CANCELLED}),
    CodeStatus.ACCEPTED: frozenset(),
    CodeStatus.EXHAUSTED: frozenset(),
    CodeStatus.CANCELLED: frozenset(),
}


def is_terminal(status: CodeStatus | str) -> bool:
    return CodeStatus(status) in TERMINAL_STATUSES


def can_transition(current: CodeStatus | str, target: CodeStatus | str) -> bool:
    return CodeStatus(target) in ALLOWED_TRANSITIONS[CodeStatus(current)]


def ensure_transition(current: CodeStatus | str, target: CodeStatus | str) -> None:
    """Raise InvalidStatusTransition unless ``current -> target`` is legal."""
    if not can_transition(current, target):
        raise InvalidStatusTransition(CodeStatus(current).value, CodeStatus(target).value)


def terminal_status_for(kind: CodeKind | str) -> CodeStatus:
    """Status a code takes once its last use is consumed."""
    if CodeKind(kind).is_single_redeemer:
        return CodeStatus.ACCEPTED
    return CodeStatus.EXHAUSTED


def status_after_consumption(kind: CodeKind | str, max_uses: int | None, uses: int) -> CodeStatus:
    """Status of a PENDING code after its usage counter reached ``uses``."""
    if max_uses is not None and uses >= max_uses:
        return terminal_status_for(kind)
    return CodeStatus.PENDING
