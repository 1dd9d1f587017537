from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(BigInteger, nullable=False)  # unix seconds

    # single active session: sha256 of the last issued refresh token
    refresh_token_hash = Column(String(64), nullable=True)

    # password reset link (sha256 of the emailed token)
    reset_token_hash = Column(String(64), nullable=True, index=True)
    reset_token_expires_at = Column(BigInteger, nullable=True)  # unix seconds

    # email verification
    email_verified = Column(Boolean, nullable=False, default=False)
    otp_hash = Column(String(255), nullable=True)
    otp_expires_at = Column(BigInteger, nullable=True)  # unix seconds

    tasks = relationship("Task", back_populates="account", cascade="all, delete-orphan")


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    due_at = Column(BigInteger, nullable=False)  # unix seconds
    done = Column(Boolean, nullable=False, default=False)
    created_at = Column(BigInteger, nullable=False)  # unix seconds
    deleted_at = Column(BigInteger, nullable=True)  # soft delete marker

    account = relationship("Account", back_populates="tasks")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
