import uuid
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskmind.models.task import Task


async def get_tasks(
    db: AsyncSession,
    user_id: uuid.UUID,
    status: str | None = None,
) -> list[Task]:
    query = select(Task).where(Task.assigned_to == user_id)
    if status is not None:
        query = query.where(Task.status == status)
    query = query.order_by(Task.created_at.desc())
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_task(db: AsyncSession, user_id: uuid.UUID, task_id: uuid.UUID) -> Task | None:
    """A task the user is assigned to or created, else None."""
    result = await db.execute(
        select(Task).where(
            Task.id == task_id,
            or_(Task.assigned_to == user_id, Task.created_by == user_id),
        )
    )
    return result.scalar_one_or_none()


async def create_task(db: AsyncSession, user_id: uuid.UUID, data: dict) -> Task:
    if data.get("assigned_to") is None:
        data["assigned_to"] = user_id
    task = Task(created_by=user_id, **data)
    db.add(task)
    await db.flush()
    await db.refresh(task)
    return task


async def update_task(
    db: AsyncSession, user_id: uuid.UUID, task_id: uuid.UUID, data: dict
) -> Task | None:
    task = await get_task(db, user_id, task_id)
    if task is None:
        return None

    for key, value in data.items():
        if value is not None:
            setattr(task, key, value)
    task.updated_at = datetime.now(timezone.utc)

    await db.flush()
    await db.refresh(task)
    return task


async def delete_task(db: AsyncSession, user_id: uuid.UUID, task_id: uuid.UUID) -> bool:
    task = await get_task(db, user_id, task_id)
    if task is None:
        return False

    await db.delete(task)
    await db.flush()
    return True
