# run_tasks_manually.py
import asyncio
import logging
import sys
import os

# Make `app` importable when run from the repo root
sys.path.append(os.getcwd())

from app.tasks_registry import TASKS


async def main(task_names):
    """
    Runs the selected background tasks one after another.
    Without arguments every registered task is run.
    """
    print("--- Manual Task Runner ---")
    unknown = [name for name in task_names if name not in TASKS]
    if unknown:
        print(f"Unknown task(s): {', '.join(unknown)}. Available: {', '.join(TASKS)}")
        return 1

    selected = task_names or list(TASKS)
    for index, name in enumerate(selected, start=1):
        print(f"\n[{index}/{len(selected)}] Running: {name}...")
        task = TASKS[name]
        if task["is_async"]:
            await task["function"]()
        else:
            await asyncio.to_thread(task["function"])
        print("Done.")

    print("\n--- All tasks completed! ---")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, stream=sys.stdout, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    try:
        sys.exit(asyncio.run(main(sys.argv[1:])))
    except KeyboardInterrupt:
        print("\nScript interrupted by user.")
