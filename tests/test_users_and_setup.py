from datetime import datetime, timedelta

import pytest

from cfp.config import settings
from cfp.core.exceptions import (
    AccountLockedError,
    AuthenticationError,
    BusinessLogicError,
    DuplicateEmailError,
    InvalidCredentialsError,
    LastAdminError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
)
from cfp.core.encryption import is_encrypted
from cfp.models.site import SiteSettings
from cfp.models.user import User, UserInvitation
from cfp.services.invitation_service import invitation_service
from cfp.services.setup_service import setup_service
from cfp.services.user_service import UserService, user_service


def _setup(db, **overrides):
    values = {
        "email": "admin@example.com",
        "password": "Password123",
        "name": "Ada Admin",
        "site_name": "Local CFP",
    }
    values.update(overrides)
    return setup_service.complete_setup(db, **values)


def test_setup_creates_first_admin_and_site(db):
    assert setup_service.is_setup_complete(db) is False

    admin = _setup(db, site_description="Talks welcome")

    assert admin.role == "ADMIN"
    assert is_encrypted(admin.name)
    assert admin.display_name == "Ada Admin"
    site = db.query(SiteSettings).one()
    assert (site.name, site.description) == ("Local CFP", "Talks welcome")
    assert setup_service.is_setup_complete(db) is True


def test_setup_runs_only_once(db):
    _setup(db)
    with pytest.raises(BusinessLogicError):
        _setup(db, email="second@example.com")
    assert db.query(User).filter(User.role == "ADMIN").count() == 1


def test_setup_token_is_enforced(db, monkeypatch):
    monkeypatch.setattr(settings, "SETUP_TOKEN", "let-me-in")
    with pytest.raises(AuthenticationError):
        _setup(db, setup_token="wrong")
    assert _setup(db, setup_token="let-me-in").role == "ADMIN"


def test_register_and_authenticate(db):
    user = user_service.register_user(db, "speaker@example.com", "Password123", name="Sam")
    assert user.role == "USER"

    with pytest.raises(DuplicateEmailError):
        user_service.register_user(db, "speaker@example.com", "Password123")

    assert user_service.authenticate_user(db, "speaker@example.com", "Password123").id == user.id
    assert user.last_login is not None


def test_lockout_after_repeated_failures(db, make_user):
    make_user("victim@example.com")

    for _ in range(UserService.MAX_FAILED_ATTEMPTS - 1):
        with pytest.raises(InvalidCredentialsError):
            user_service.authenticate_user(db, "victim@example.com", "wrong")
    with pytest.raises(AccountLockedError):
        user_service.authenticate_user(db, "victim@example.com", "wrong")
    # correct password is refused while locked
    with pytest.raises(AccountLockedError):
        user_service.authenticate_user(db, "victim@example.com", "Password123")


def test_service_accounts_cannot_log_in(db):
    db.add(User(email="bot@plugin.system", role="REVIEWER", is_service_account=True))
    db.commit()
    with pytest.raises(InvalidCredentialsError):
        user_service.authenticate_user(db, "bot@plugin.system", "")


def test_last_admin_is_protected(db, make_user):
    admin = make_user("admin@example.com", role="ADMIN")

    with pytest.raises(LastAdminError):
        user_service.change_role(db, admin.id, "ORGANIZER")
    with pytest.raises(LastAdminError):
        user_service.delete_user(db, admin.id)

    second = make_user("admin2@example.com", role="ADMIN")
    assert user_service.change_role(db, admin.id, "ORGANIZER", changed_by=second.id).role == "ORGANIZER"


def test_cannot_deactivate_self(db, make_user):
    admin = make_user("admin@example.com", role="ADMIN")
    other = make_user("other@example.com")

    with pytest.raises(BusinessLogicError):
        user_service.set_active(db, admin.id, False, acting_user_id=admin.id)
    assert user_service.set_active(db, other.id, False, acting_user_id=admin.id).is_active is False


def test_invalid_role_is_rejected(db, make_user):
    user = make_user("someone@example.com")
    with pytest.raises(BusinessLogicError):
        user_service.change_role(db, user.id, "OVERLORD")


def test_invitation_lifecycle(db, make_user):
    admin = make_user("admin@example.com", role="ADMIN")

    invitation = invitation_service.create_invitation(db, "reviewer@example.com", "REVIEWER", admin)
    assert invitation_service.validate_token(db, invitation.token).id == invitation.id
    assert [i.id for i in invitation_service.list_pending(db)] == [invitation.id]

    with pytest.raises(ResourceAlreadyExistsError):
        invitation_service.create_invitation(db, "reviewer@example.com", "REVIEWER", admin)

    user = invitation_service.accept(db, invitation.token, "Password123", name="Rita")
    assert user.role == "REVIEWER"
    assert user.display_name == "Rita"

    with pytest.raises(BusinessLogicError):
        invitation_service.accept(db, invitation.token, "Password123")


def test_expired_invitation_is_refused(db, make_user):
    admin = make_user("admin@example.com", role="ADMIN")
    invitation = invitation_service.create_invitation(db, "late@example.com", "USER", admin)
    invitation.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(BusinessLogicError):
        invitation_service.validate_token(db, invitation.token)


def test_invitation_for_existing_user_is_refused(db, make_user):
    admin = make_user("admin@example.com", role="ADMIN")
    with pytest.raises(ResourceAlreadyExistsError):
        invitation_service.create_invitation(db, "admin@example.com", "USER", admin)


def test_revoke_and_unknown_token(db, make_user):
    admin = make_user("admin@example.com", role="ADMIN")
    invitation = invitation_service.create_invitation(db, "maybe@example.com", "USER", admin)

    invitation_service.revoke(db, invitation.id)

    assert db.query(UserInvitation).count() == 0
    with pytest.raises(ResourceNotFoundError):
        invitation_service.validate_token(db, "no-such-token")
