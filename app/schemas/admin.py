# app/schemas/admin.py
from pydantic import BaseModel


class TaskInfo(BaseModel):
    """One background task available for a manual run."""
    task_name: str
    description: str


class TaskRunRequest(BaseModel):
    # "all" or a key of app.tasks_registry.TASKS
    task_name: str
