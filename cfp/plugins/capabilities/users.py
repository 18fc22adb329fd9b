"""User access for plugins. Password hashes never leave this module."""

from typing import List, Optional

from cfp.core.encryption import encrypt_string
from cfp.models.user import User
from cfp.plugins.capabilities.base import Capability

SERVICE_ACCOUNT_DOMAIN = "plugin.system"


class UserCapability(Capability):

    def get(self, user_id: int) -> Optional[dict]:
        self._require("users:read")
        with self._session() as db:
            user = db.query(User).filter(User.id == user_id).first()
            return user.to_dict() if user else None

    def list(self, role: Optional[str] = None) -> List[dict]:
        self._require("users:read")
        with self._session() as db:
            query = db.query(User)
            if role:
                query = query.filter(User.role == role)
            return [u.to_dict() for u in query.order_by(User.id).all()]

    def get_by_email(self, email: str) -> Optional[dict]:
        self._require("users:read")
        with self._session() as db:
            user = db.query(User).filter(User.email == email.strip().lower()).first()
            return user.to_dict() if user else None

    def create_service_account(self, display_name: Optional[str] = None) -> dict:
        """Reviewer account owned by this plugin; returns the existing one on repeat calls."""
        self._require("users:manage")
        email = f"{self._ctx.plugin_name}@{SERVICE_ACCOUNT_DOMAIN}"
        with self._session() as db:
            user = db.query(User).filter(User.email == email).first()
            if user is None:
                user = User(
                    email=email,
                    name=encrypt_string(display_name or self._ctx.plugin_name),
                    role="REVIEWER",
                    is_service_account=True,
                    password_hash=None,
                )
                db.add(user)
                db.commit()
                db.refresh(user)
                self._ctx.logger.info("Created service account", {"user_id": user.id})
            return user.to_dict()
