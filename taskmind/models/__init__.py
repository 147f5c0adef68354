from taskmind.models.base import Base
from taskmind.models.task import Task
from taskmind.models.user import User

__all__ = [
    "Base",
    "Task",
    "User",
]
