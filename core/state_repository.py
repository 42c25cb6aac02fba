"""
StateRepository: JSON persistence of the goal/habit state.

Path: <data dir>/mindmap_state.json. The goal store itself never touches
disk; this collaborator loads the full state tree before the first command
and saves it after each change.
"""
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from core.exceptions import StateError
from core.goal_store import LOAD_STATE, apply_command, state_to_payload
from core.logger import get_logger, log_corruption
from core.models import get_initial_state

PROJECT_ROOT = Path(__file__).parent.parent

logger = get_logger("state_repository")


def get_data_dir() -> Path:
    """
    Return runtime data directory.

    Priority:
    1. HABIT_MINDMAP_DATA_DIR env var
    2. <project_root>/data
    """
    raw = os.getenv("HABIT_MINDMAP_DATA_DIR", "").strip()
    if raw:
        return Path(raw).expanduser()
    return PROJECT_ROOT / "data"


STATE_PATH = get_data_dir() / "mindmap_state.json"


class StateRepository:
    """Loads and saves the whole state at STATE_PATH."""

    def __init__(self, path: Optional[Path] = None):
        self._path = path if path is not None else STATE_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Dict[str, Any]:
        if not self._path.exists():
            return get_initial_state()

        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Cannot read {self._path}: {e}")
            return get_initial_state()

        try:
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise StateError("top-level JSON value must be an object", raw[:200])
        except json.JSONDecodeError as e:
            log_corruption(str(self._path), raw, f"invalid JSON: {e}")
            return get_initial_state()
        except StateError as e:
            log_corruption(str(self._path), raw, e.message)
            return get_initial_state()

        state = apply_command(get_initial_state(), {"type": LOAD_STATE, "payload": payload})
        logger.info(
            f"Loaded {len(state['goals'])} goal(s) and {len(state['habits'])} habit(s) from {self._path}"
        )
        return state

    def save(self, state: Dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(state_to_payload(state), f, ensure_ascii=False, indent=2)
