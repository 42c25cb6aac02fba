"""Run the Habit Mindmap HTTP service."""
import os
import sys
from pathlib import Path

import uvicorn

PROJECT_ROOT = Path(__file__).parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from core.logger import setup_logging  # noqa: E402


def _env_flag(name: str) -> bool:
    return os.getenv(name, "0").lower() in {"1", "true", "yes"}


def main():
    setup_logging()

    reload_enabled = _env_flag("HABIT_MINDMAP_RELOAD")
    uvicorn.run(
        "web.backend.app:create_app",
        factory=True,
        host=os.getenv("HABIT_MINDMAP_HOST", "127.0.0.1"),
        port=int(os.getenv("HABIT_MINDMAP_PORT", "8010")),
        reload=reload_enabled,
        reload_dirs=["web", "core"] if reload_enabled else None,
    )


if __name__ == "__main__":
    main()
