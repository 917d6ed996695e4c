# app/tasks_registry.py

from app.services import points_expiration


async def run_expire_points():
    await points_expiration.process_expirations()

async def run_notify_expiring_points():
    await points_expiration.notify_expiring_points_task()


# Registry of tasks that can be started by hand.
# The key is the task name used by the API and scripts.
TASKS = {
    "expire_points": {
        "function": run_expire_points,
        "description": "Expires matured order points and warns users about points expiring within a week.",
        "is_async": True,
    },
    "notify_expiring_points": {
        "function": run_notify_expiring_points,
        "description": "Only sends the expiring-soon warnings, without expiring anything.",
        "is_async": True,
    },
}

def get_tasks_list():
    return [
        {"task_name": name, "description": data["description"]}
        for name, data in TASKS.items()
    ]
