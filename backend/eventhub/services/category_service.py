from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.exceptions import ConflictError, NotFoundError
from eventhub.core.logging import get_logger
from eventhub.models.category import Category
from eventhub.schemas.category import CategoryCreate

logger = get_logger(__name__)


async def create_category(db: AsyncSession, category_data: CategoryCreate) -> Category:
    result = await db.execute(select(Category.id).where(Category.name == category_data.name))
    if result.scalar_one_or_none() is not None:
        logger.warning("category_create_failed", reason="name_exists", name=category_data.name)
        raise ConflictError(f"Category with name={category_data.name} already exists")

    category = Category(name=category_data.name)
    db.add(category)
    await db.flush()

    logger.info("category_created", category_id=category.id, name=category.name)
    return category


async def get_category(db: AsyncSession, category_id: int) -> Category:
    category = await db.get(Category, category_id)
    if category is None:
        raise NotFoundError(f"Category with id={category_id} was not found")
    return category
