"""
User registration and lookup. Users are referenced by events and requests;
editing and deleting them is not part of this service.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.exceptions import ConflictError, NotFoundError
from eventhub.core.logging import get_logger
from eventhub.models.user import User
from eventhub.schemas.user import UserCreate

logger = get_logger(__name__)


async def create_user(db: AsyncSession, user_data: UserCreate) -> User:
    """Register a new user. Raises ConflictError if the email is taken."""
    result = await db.execute(select(User.id).where(User.email == user_data.email))
    if result.scalar_one_or_none() is not None:
        logger.warning("user_create_failed", reason="email_exists", email=user_data.email)
        raise ConflictError(f"User with email={user_data.email} already exists")

    user = User(name=user_data.name, email=user_data.email)
    db.add(user)
    await db.flush()

    logger.info("user_created", user_id=user.id, email=user.email)
    return user


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User with id={user_id} was not found")
    return user
