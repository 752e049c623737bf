from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from models.password_reset_code import PasswordResetCode
from models.user import User
from services.guest import GuestServiceError, RequestContext, confirm_password_reset, request_password_reset
from services.guest.common import utcnow, verify_password


def _request(session, email, *, settings, mailer, context=None):
    return request_password_reset(
        session, email=email, mailer=mailer, settings=settings, context=context or RequestContext()
    )


def _confirm(session, email, code, password, *, settings, context=None):
    return confirm_password_reset(
        session,
        email=email,
        code=code,
        password=password,
        settings=settings,
        context=context or RequestContext(),
    )


def _code_of(session: Session, user: User) -> PasswordResetCode:
    return session.execute(select(PasswordResetCode).where(PasswordResetCode.user_id == user.id)).scalars().one()


def test_request_emails_an_eight_digit_code(db_session: Session, settings, mailer, make_user) -> None:
    user = make_user("reset@example.com")

    result = _request(db_session, "reset@example.com", settings=settings, mailer=mailer)

    code = _code_of(db_session, user)
    assert len(code.id) == 8
    assert code.id.isdigit()
    assert result.email == "reset@example.com"
    assert mailer.sent[0]["subject"] == "User token for Guest library"
    assert code.id in mailer.sent[0]["body"]


def test_new_request_replaces_previous_code(db_session: Session, settings, mailer, make_user) -> None:
    user = make_user()
    _request(db_session, user.email, settings=settings, mailer=mailer)
    _request(db_session, user.email, settings=settings, mailer=mailer)

    codes = db_session.execute(select(PasswordResetCode)).scalars().all()
    assert len(codes) == 1
    assert codes[0].id in mailer.sent[-1]["body"]


def test_unknown_email_is_reported(db_session: Session, settings, mailer) -> None:
    with pytest.raises(GuestServiceError) as excinfo:
        _request(db_session, "unknown@example.com", settings=settings, mailer=mailer)

    assert excinfo.value.field == "email"
    assert str(excinfo.value) == "Invalid email."
    assert db_session.execute(select(User)).scalars().all() == []
    assert mailer.sent == []


def test_inactive_account_cannot_request(db_session: Session, settings, mailer, make_user) -> None:
    make_user("idle@example.com", active=False)

    with pytest.raises(GuestServiceError) as excinfo:
        _request(db_session, "idle@example.com", settings=settings, mailer=mailer)

    assert str(excinfo.value) == "User is not active and cannot update password."


def test_logged_user_cannot_request(db_session: Session, settings, mailer, make_user) -> None:
    user = make_user()

    with pytest.raises(GuestServiceError) as excinfo:
        _request(db_session, user.email, settings=settings, mailer=mailer, context=RequestContext(user=user))

    assert str(excinfo.value) == "A logged user cannot change the password with this method."


def test_code_generation_gives_up_after_bounded_attempts(
    db_session: Session, make_settings, mailer, make_user, monkeypatch: pytest.MonkeyPatch
) -> None:
    owner = make_user("owner@example.com")
    db_session.add(PasswordResetCode(id="11111111", user_id=owner.id))
    db_session.commit()
    user = make_user("unlucky@example.com")
    monkeypatch.setattr("services.guest.password_reset.secrets.choice", lambda _digits: "1")

    with pytest.raises(GuestServiceError) as excinfo:
        _request(db_session, user.email, settings=make_settings(reset_code_max_attempts=3), mailer=mailer)

    assert excinfo.value.status == "error"
    assert mailer.sent == []


def test_code_from_59_minutes_ago_is_accepted(db_session: Session, settings, mailer, make_user) -> None:
    user = make_user(password="old-secret")
    _request(db_session, user.email, settings=settings, mailer=mailer)
    code = _code_of(db_session, user)
    code.created_at = utcnow() - timedelta(minutes=59)
    db_session.commit()

    updated = _confirm(db_session, user.email, code.id, "new-secret", settings=settings)

    assert verify_password(updated.password_hash, "new-secret")
    assert db_session.execute(select(PasswordResetCode)).scalars().all() == []


def test_code_older_than_one_hour_is_rejected_and_removed(db_session: Session, settings, mailer, make_user) -> None:
    user = make_user(password="old-secret")
    _request(db_session, user.email, settings=settings, mailer=mailer)
    code = _code_of(db_session, user)
    code.created_at = utcnow() - timedelta(minutes=61)
    db_session.commit()

    with pytest.raises(GuestServiceError) as excinfo:
        _confirm(db_session, user.email, code.id, "new-secret", settings=settings)

    assert str(excinfo.value) == "Password token expired."
    assert excinfo.value.field == "token"
    assert db_session.execute(select(PasswordResetCode)).scalars().all() == []
    assert verify_password(user.password_hash, "old-secret")


def test_code_of_another_account_reads_as_invalid(db_session: Session, settings, mailer, make_user) -> None:
    victim = make_user("victim@example.com")
    attacker = make_user("attacker@example.com")
    _request(db_session, victim.email, settings=settings, mailer=mailer)
    code = _code_of(db_session, victim)

    with pytest.raises(GuestServiceError) as mismatch:
        _confirm(db_session, attacker.email, code.id, "new-secret", settings=settings)
    with pytest.raises(GuestServiceError) as missing:
        _confirm(db_session, attacker.email, "00000000", "new-secret", settings=settings)

    assert str(mismatch.value) == str(missing.value) == "Invalid token."
    assert db_session.get(PasswordResetCode, code.id) is not None


def test_password_length_five_rejected_six_accepted(db_session: Session, settings, mailer, make_user) -> None:
    user = make_user()
    _request(db_session, user.email, settings=settings, mailer=mailer)
    code = _code_of(db_session, user)

    with pytest.raises(GuestServiceError) as excinfo:
        _confirm(db_session, user.email, code.id, "12345", settings=settings)
    assert str(excinfo.value) == "New password should have 6 characters or more."

    updated = _confirm(db_session, user.email, code.id, "123456", settings=settings)
    assert verify_password(updated.password_hash, "123456")


def test_missing_password_is_required(db_session: Session, settings, mailer, make_user) -> None:
    user = make_user()
    _request(db_session, user.email, settings=settings, mailer=mailer)
    code = _code_of(db_session, user)

    with pytest.raises(GuestServiceError) as excinfo:
        _confirm(db_session, user.email, code.id, None, settings=settings)

    assert str(excinfo.value) == "Password is required."
