import pytest

from classkey.exceptions import InvalidStatusTransition
from classkey.models.access_code import CodeKind, CodeStatus
from classkey.utils.status_machine import (
    can_transition,
    ensure_transition,
    is_terminal,
    status_after_consumption,
    terminal_status_for,
)


def test_only_pending_is_non_terminal():
    assert not is_terminal(CodeStatus.PENDING)
    assert is_terminal("ACCEPTED")
    assert is_terminal(CodeStatus.EXHAUSTED)
    assert is_terminal(CodeStatus.CANCELLED)


def test_pending_can_leave_to_every_terminal_status():
    for target in (CodeStatus.ACCEPTED, CodeStatus.EXHAUSTED, CodeStatus.CANCELLED):
        assert can_transition(CodeStatus.PENDING, target)


def test_terminal_statuses_never_move():
    for current in (CodeStatus.ACCEPTED, CodeStatus.EXHAUSTED, CodeStatus.CANCELLED):
        for target in CodeStatus:
            assert not can_transition(current, target)


def test_ensure_transition_raises_for_illegal_move():
    with pytest.raises(InvalidStatusTransition) as exc_info:
        ensure_transition("CANCELLED", "PENDING")
    assert exc_info.value.status_code == 409
    assert exc_info.value.current == "CANCELLED"


def test_terminal_status_depends_on_kind():
    assert terminal_status_for(CodeKind.SCHOOL_INVITATION) == CodeStatus.ACCEPTED
    assert terminal_status_for("TEACHER_JOIN") == CodeStatus.ACCEPTED
    assert terminal_status_for(CodeKind.COURSE_ENROLLMENT) == CodeStatus.EXHAUSTED


def test_status_after_consumption():
    assert status_after_consumption(CodeKind.COURSE_ENROLLMENT, 3, 2) == CodeStatus.PENDING
    assert status_after_consumption(CodeKind.COURSE_ENROLLMENT, 3, 3) == CodeStatus.EXHAUSTED
    assert status_after_consumption(CodeKind.COURSE_ENROLLMENT, None, 500) == CodeStatus.PENDING
    assert status_after_consumption(CodeKind.SCHOOL_INVITATION, 1, 1) == CodeStatus.ACCEPTED
