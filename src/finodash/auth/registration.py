"""Registration flow.

The registrar is the caller that owns uniqueness: it refuses an email or
phone that is already registered before asking the reactive store to create
the entity. The store's handler returns only after the durable write, so the
session established afterwards always sees the new record.
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel

from finodash.auth.credentials import AuthResult, member_identity, merchant_identity
from finodash.auth.session import Role
from finodash.config import Settings
from finodash.data.store import ReactiveStore
from finodash.ids import new_id

logger = structlog.get_logger()


class RegistrationData(BaseModel):
    role: Role
    password: str = ""
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    admin_code: str | None = None
    store_name: str | None = None
    owner: str | None = None


def validate_registration(data: RegistrationData, settings: Settings) -> str | None:
    """Return an error message, or None when the role's required fields are present."""
    if not data.password:
        return "Password is required"

    if data.role is Role.ADMIN:
        if not data.email or not data.admin_code:
            return "Email and admin code are required for admin registration"
        if data.admin_code != settings.admin_registration_code:
            return f"Invalid admin code. Use {settings.admin_registration_code} for demo."
    elif data.role is Role.MERCHANT:
        if not data.email or not data.store_name or not data.owner:
            return "Email, store name, and owner name are required for merchant registration"
    elif not data.name or not (data.email or data.phone):
        return "Name and either email or phone are required for member registration"
    return None


class Registrar:
    """Creates the entity for a registration and returns the new identity."""

    def __init__(self, store: ReactiveStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings

    def _conflict(self, data: RegistrationData) -> str | None:
        if data.role is Role.MERCHANT:
            if self.store.find_merchant_by_email(data.email or ""):
                return "A merchant with this email already exists"
            return None
        if data.role is Role.MEMBER:
            for identifier in (data.email, data.phone):
                if identifier and self.store.find_user_by_identifier(identifier):
                    return "A member with this email or phone already exists"
        return None

    async def __call__(self, data: RegistrationData) -> AuthResult:
        error = validate_registration(data, self.settings) or self._conflict(data)
        if error:
            return AuthResult.failure(error)

        if data.role is Role.ADMIN:
            identity = {
                "id": new_id("admin-"),
                "name": data.name or data.email.split("@")[0],
                "email": data.email,
                "role": Role.ADMIN.value,
            }
        elif data.role is Role.MERCHANT:
            merchant = await self.store.add_merchant(
                store_name=data.store_name,
                owner=data.owner,
                email=data.email,
                password=data.password,
            )
            identity = merchant_identity(merchant)
        else:
            user = await self.store.add_user(
                name=data.name,
                password=data.password,
                email=data.email,
                phone=data.phone,
            )
            identity = member_identity(user)

        logger.info("registration_completed", role=data.role.value, identity_id=identity["id"])
        return AuthResult(success=True, identity=identity, role=data.role)
