"""First-run setup: create the initial administrator and site settings"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from cfp.config import settings
from cfp.core.database import serializable
from cfp.core.encryption import encrypt_string
from cfp.core.exceptions import AuthenticationError, BusinessLogicError
from cfp.core.security import constant_time_equals, get_password_hash
from cfp.models.site import SiteSettings, SITE_SETTINGS_ID
from cfp.models.user import User

logger = logging.getLogger(__name__)


class SetupService:

    @staticmethod
    def is_setup_complete(db: Session) -> bool:
        return db.query(User.id).filter(User.role == "ADMIN").first() is not None

    @staticmethod
    def check_setup_token(provided: Optional[str]) -> None:
        """When SETUP_TOKEN is configured the caller must present it"""
        expected = settings.SETUP_TOKEN
        if not expected:
            return
        if not provided or not constant_time_equals(provided, expected):
            raise AuthenticationError("Invalid or missing setup token")

    @staticmethod
    def complete_setup(
        db: Session,
        *,
        email: str,
        password: str,
        name: str,
        site_name: str,
        site_description: Optional[str] = None,
        site_website: Optional[str] = None,
        setup_token: Optional[str] = None,
    ) -> User:
        """
        Create the first admin

        The admin check and insert run in one SERIALIZABLE transaction so two
        concurrent setup requests cannot both create an administrator.

        Returns:
            The new admin user
        """
        SetupService.check_setup_token(setup_token)
        password_hash = get_password_hash(password)

        with serializable(db):
            if db.query(User.id).filter(User.role == "ADMIN").first() is not None:
                raise BusinessLogicError("Setup already complete. An admin account exists.")
            if db.query(User.id).filter(User.email == email).first() is not None:
                raise BusinessLogicError("An account with this email already exists")

            admin = User(
                email=email,
                password_hash=password_hash,
                name=encrypt_string(name),
                role="ADMIN",
            )
            db.add(admin)

            site = db.query(SiteSettings).filter(SiteSettings.id == SITE_SETTINGS_ID).first()
            if site is None:
                site = SiteSettings(id=SITE_SETTINGS_ID)
                db.add(site)
            site.name = site_name
            site.description = site_description
            site.website_url = site_website

        db.refresh(admin)
        logger.info(f"Initial setup complete; admin {admin.email} created")
        return admin


setup_service = SetupService()
