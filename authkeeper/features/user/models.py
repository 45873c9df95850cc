"""Account domain models."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from authkeeper.database.base import Base, TimestampMixin, UTCDateTime, utcnow

ADMIN_PERMISSION = "admin"


class User(Base, TimestampMixin):
    """Account model for authentication and authorization.

    Accounts are never hard-deleted; ``is_active`` is the soft-deactivation
    switch.
    """

    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("phone_prefix", "phone_number", name="uq_users_phone"),)

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity (globally unique)
    username: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone_prefix: Mapped[str] = mapped_column(String(5), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(15), nullable=False)
    full_name: Mapped[str] = mapped_column(String(30), nullable=False)
    full_surname: Mapped[str] = mapped_column(String(30), nullable=False)

    # Authentication
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    password_changed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Authorization (flat permission list)
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1", index=True)

    # Lockout
    account_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    lock_until: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    failed_login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    # Audit
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def is_locked(self, now: datetime | None = None) -> bool:
        """Check if account is locked.

        A lock with no expiry is a manual lock and never lapses on its own.
        """
        if not self.account_locked:
            return False
        if self.lock_until is None:
            return True
        return self.lock_until > (now or utcnow())

    def lock_seconds_remaining(self, now: datetime | None = None) -> int | None:
        """Seconds until the lock lapses, None for manual or no lock."""
        if not self.is_locked(now) or self.lock_until is None:
            return None
        remaining = (self.lock_until - (now or utcnow())).total_seconds()
        return max(int(remaining), 1)
