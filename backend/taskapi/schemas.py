from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


def _normalize_email(v: str) -> str:
    v = v.strip().lower()
    if "@" not in v or "." not in v.split("@")[-1]:
        raise ValueError("invalid email")
    return v


class EmailIn(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _normalize_email(v)


class RegisterIn(EmailIn):
    password: str = Field(min_length=6)


class LoginIn(EmailIn):
    password: str = Field(min_length=1)


class VerifyOtpIn(EmailIn):
    otp: str = Field(pattern=r"^\s*\d{6}\s*$")


class ResendOtpIn(EmailIn):
    pass


class ForgotPasswordIn(EmailIn):
    pass


class ResetPasswordIn(BaseModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


class RefreshIn(BaseModel):
    refresh_token: str = Field(min_length=1)


class LogoutIn(BaseModel):
    refresh_token: str | None = None


class GoogleAuthIn(BaseModel):
    token: str = Field(min_length=1)


class MessageOut(BaseModel):
    message: str


class AccountOut(BaseModel):
    id: int
    email: str
    email_verified: bool


class RegisterOut(MessageOut):
    email: str
    requires_verification: bool = True


class VerifyOtpOut(MessageOut):
    verified: bool


class ResendOtpOut(MessageOut):
    email: str


class TokensOut(MessageOut):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginOut(TokensOut):
    user: AccountOut
