"""Credential checks for the three roles.

``check_credentials`` is a pure function of the submitted credentials, the
directory of known users/merchants and the settings. It never raises for bad
input; missing or wrong fields produce a failed ``AuthResult`` with a message.

Admin:    configured email + password
Merchant: email + password of a registered merchant
Member:   phone + one-time code (fixed demo code), or email/phone + password
"""

from __future__ import annotations

from typing import Any, Protocol

from pydantic import BaseModel

from finodash.auth.session import Role
from finodash.config import Settings
from finodash.data.schemas import Merchant, User


class Credentials(BaseModel):
    role: Role
    email: str | None = None
    phone: str | None = None
    password: str | None = None
    otp: str | None = None


class AuthResult(BaseModel):
    success: bool
    identity: dict[str, Any] | None = None
    role: Role | None = None
    message: str | None = None

    @classmethod
    def failure(cls, message: str) -> AuthResult:
        return cls(success=False, message=message)


class Directory(Protocol):
    def find_user_by_identifier(self, identifier: str) -> User | None: ...

    def find_merchant_by_email(self, email: str) -> Merchant | None: ...


def member_identity(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "points": user.points,
        "role": Role.MEMBER.value,
    }


def merchant_identity(merchant: Merchant) -> dict[str, Any]:
    return {
        "id": merchant.id,
        "email": merchant.email,
        "storeName": merchant.store_name,
        "owner": merchant.owner,
        "role": Role.MERCHANT.value,
    }


def authenticate_admin(email: str, password: str, settings: Settings) -> AuthResult:
    if email == settings.admin_email and password == settings.admin_password:
        return AuthResult(
            success=True,
            identity={"id": "admin", "email": settings.admin_email, "role": Role.ADMIN.value},
            role=Role.ADMIN,
        )
    return AuthResult.failure("Invalid admin credentials")


def authenticate_merchant(email: str, password: str, directory: Directory) -> AuthResult:
    merchant = directory.find_merchant_by_email(email)
    if merchant is not None and merchant.password == password:
        return AuthResult(success=True, identity=merchant_identity(merchant), role=Role.MERCHANT)
    return AuthResult.failure("Invalid merchant credentials")


def check_member_phone(phone: str, directory: Directory) -> AuthResult:
    """First step of the one-time-code flow."""
    user = directory.find_user_by_identifier(phone)
    if user is None:
        return AuthResult.failure("Phone number not found")
    return AuthResult(success=True, identity=member_identity(user), role=Role.MEMBER)


def verify_member_otp(phone: str, otp: str, directory: Directory, settings: Settings) -> AuthResult:
    result = check_member_phone(phone, directory)
    if not result.success:
        return result
    if otp != settings.member_otp_code:
        return AuthResult.failure(f"Invalid OTP code. Please use {settings.member_otp_code} for demo.")
    return result


def authenticate_member(identifier: str, password: str, directory: Directory) -> AuthResult:
    user = directory.find_user_by_identifier(identifier)
    if user is None:
        return AuthResult.failure("Member not found")
    if user.password and user.password != password:
        return AuthResult.failure("Invalid member credentials")
    return AuthResult(success=True, identity=member_identity(user), role=Role.MEMBER)


def check_credentials(credentials: Credentials, directory: Directory, settings: Settings) -> AuthResult:
    """Dispatch on role and run the matching check."""
    if credentials.role is Role.ADMIN:
        if not credentials.email or not credentials.password:
            return AuthResult.failure("Email and password are required for admin login")
        return authenticate_admin(credentials.email, credentials.password, settings)

    if credentials.role is Role.MERCHANT:
        if not credentials.email or not credentials.password:
            return AuthResult.failure("Email and password are required for merchant login")
        return authenticate_merchant(credentials.email, credentials.password, directory)

    if credentials.otp:
        if not credentials.phone:
            return AuthResult.failure("Phone number is required for OTP login")
        return verify_member_otp(credentials.phone, credentials.otp, directory, settings)

    identifier = credentials.email or credentials.phone
    if not identifier:
        return AuthResult.failure("Email or phone number is required for member login")
    if not credentials.password:
        return AuthResult.failure("Password is required for member login")
    return authenticate_member(identifier, credentials.password, directory)
