"""Account service layer."""

import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authkeeper.database.base import utcnow
from authkeeper.shared.validators.identity import normalize_phone

from .exceptions import UserAlreadyExists, UserNotFound
from .models import User
from .schemas import UserRegisterRequest

logger = logging.getLogger(__name__)


class UserService:
    """Service for account operations."""

    @staticmethod
    async def register_user(session: AsyncSession, data: UserRegisterRequest, hashed_password: str) -> User:
        """Insert a new account.

        Uniqueness of username, email and phone is left to the database
        constraints so concurrent registrations cannot both succeed.

        Args:
            session: Database session (caller commits)
            data: Validated registration data
            hashed_password: Argon2 hash of ``data.password``

        Returns:
            The flushed User, with ``id`` populated

        Raises:
            UserAlreadyExists: If username, email or phone is taken

        """
        user = User(
            username=data.username,
            email=data.email.lower(),
            phone_prefix=data.phone_prefix,
            phone_number=data.phone_number,
            full_name=data.full_name,
            full_surname=data.full_surname,
            hashed_password=hashed_password,
            permissions=[],
            is_active=True,
            password_changed_at=utcnow(),
        )
        session.add(user)

        try:
            await session.flush()
        except IntegrityError as err:
            await session.rollback()
            logger.info(f"Registration rejected, identity already taken: {data.username}")
            raise UserAlreadyExists() from err

        logger.info(f"New user registered: {user.username} (id={user.id})")
        return user

    @staticmethod
    async def get_user(session: AsyncSession, user_id: int) -> User | None:
        """Get user by ID."""
        stmt = select(User).where(User.id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_or_404(session: AsyncSession, user_id: int) -> User:
        user = await UserService.get_user(session, user_id)
        if user is None:
            raise UserNotFound()
        return user

    @staticmethod
    async def get_by_identifier(session: AsyncSession, identifier: str) -> User | None:
        """Resolve an active account from a username, email or phone number.

        Emails match case-insensitively; phones match on the normalized
        ``+<prefix><number>`` form.
        """
        identifier = identifier.strip()
        stmt = (
            select(User)
            .where(
                User.is_active.is_(True),
                or_(
                    User.username == identifier,
                    User.email == identifier.lower(),
                    (User.phone_prefix + User.phone_number) == normalize_phone(identifier),
                ),
            )
            .order_by(User.id)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def assign_permissions(user: User, permissions: list[str]) -> User:
        """Replace a user's permission list.

        Takes effect for access tokens minted after the change (on the next
        refresh or login).
        """
        user.permissions = list(permissions)
        user.updated_at = utcnow()
        logger.info(f"Permissions assigned to user {user.username}: {permissions}")
        return user
