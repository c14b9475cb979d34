import uuid

import pytest

from classkey.exceptions import EmailMismatch, RoleMismatch, ScopeMismatch
from classkey.models.access_code import CodeKind
from classkey.schemas.access_code import CodeScope, RedemptionContext
from classkey.services.scope_validator import validate_scope

SCHOOL_ID = uuid.uuid4()


def invitation_scope(**overrides) -> CodeScope:
    values = {
        "kind": CodeKind.SCHOOL_INVITATION,
        "target_id": SCHOOL_ID,
        "required_role": "STUDENT",
        "required_email": "alice@greenfield.edu",
    }
    values.update(overrides)
    return CodeScope(**values)


def test_matching_context_passes():
    context = RedemptionContext(email="Alice@Greenfield.edu ", role="student", target_id=SCHOOL_ID)
    validate_scope(invitation_scope(), context)


def test_other_email_is_rejected():
    context = RedemptionContext(email="bob@greenfield.edu", role="STUDENT", target_id=SCHOOL_ID)
    with pytest.raises(EmailMismatch):
        validate_scope(invitation_scope(), context)


def test_missing_email_is_rejected_for_email_bound_code():
    context = RedemptionContext(redeemer_id=uuid.uuid4(), role="STUDENT", target_id=SCHOOL_ID)
    with pytest.raises(EmailMismatch):
        validate_scope(invitation_scope(), context)


def test_email_is_checked_before_role():
    context = RedemptionContext(email="bob@greenfield.edu", role="TEACHER", target_id=SCHOOL_ID)
    with pytest.raises(EmailMismatch):
        validate_scope(invitation_scope(), context)


def test_wrong_role_on_student_code():
    context = RedemptionContext(email="alice@greenfield.edu", role="TEACHER", target_id=SCHOOL_ID)
    with pytest.raises(RoleMismatch) as exc_info:
        validate_scope(invitation_scope(), context)
    assert exc_info.value.message == "Only students can use this code"


def test_wrong_role_on_teacher_link():
    scope = invitation_scope(kind=CodeKind.TEACHER_JOIN, required_role="TEACHER")
    context = RedemptionContext(email="alice@greenfield.edu", role="STUDENT", target_id=SCHOOL_ID)
    with pytest.raises(RoleMismatch) as exc_info:
        validate_scope(scope, context)
    assert exc_info.value.message == "This link is only for teachers"


def test_other_target_is_rejected():
    context = RedemptionContext(email="alice@greenfield.edu", role="STUDENT", target_id=uuid.uuid4())
    with pytest.raises(ScopeMismatch):
        validate_scope(invitation_scope(), context)


def test_open_code_accepts_any_email():
    scope = invitation_scope(kind=CodeKind.COURSE_ENROLLMENT, required_email=None)
    context = RedemptionContext(redeemer_id=uuid.uuid4(), role="STUDENT", target_id=SCHOOL_ID)
    validate_scope(scope, context)


def test_context_requires_an_identity():
    with pytest.raises(ValueError):
        RedemptionContext(role="STUDENT", target_id=SCHOOL_ID)


def test_redeemer_key_prefers_account_id():
    user_id = uuid.uuid4()
    context = RedemptionContext(redeemer_id=user_id, email="Alice@Greenfield.edu", target_id=SCHOOL_ID)
    assert context.redeemer_key == str(user_id)
    assert RedemptionContext(email="Alice@Greenfield.edu", target_id=SCHOOL_ID).redeemer_key == "alice@greenfield.edu"
