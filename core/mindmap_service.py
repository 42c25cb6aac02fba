"""
Mind map application service.

Owns the current state snapshot, routes commands through the goal store,
persists each change and serves layouts for the rendering layer.
"""
from typing import Any, Dict, List, Optional

from core.exceptions import StateError
from core.goal_store import LOAD_STATE, apply_command, find_root_goal_ids, state_to_payload
from core.ids import IdFactory, new_id
from core.interaction import InteractionController
from core.layout import TreeLayoutEngine
from core.logger import get_logger
from core.models import Goal, LayoutResult
from core.state_repository import StateRepository

logger = get_logger("mindmap_service")


class MindMapService:
    """Single-writer front door to the goal store."""

    def __init__(
        self,
        repository: Optional[StateRepository] = None,
        layout_engine: Optional[TreeLayoutEngine] = None,
        id_factory: IdFactory = new_id,
        interaction: Optional[InteractionController] = None,
    ):
        self.repository = repository or StateRepository()
        self.layout_engine = layout_engine or TreeLayoutEngine()
        self.interaction = interaction or InteractionController()
        self.id_factory = id_factory
        self.state = self.repository.load()

    # ---------------------------------------------------------------------
    # Commands
    # ---------------------------------------------------------------------
    def dispatch(self, command: Dict[str, Any]) -> bool:
        """
        Apply one command.

        Returns:
            True when the state changed (and was saved)
        """
        new_state = apply_command(self.state, command, id_factory=self.id_factory)
        if new_state is self.state:
            return False
        self.state = new_state
        self.repository.save(new_state)
        return True

    def load_state(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            raise StateError("state payload must be an object", repr(payload)[:200])
        self.dispatch({"type": LOAD_STATE, "payload": payload})

    # ---------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------
    def list_goals(self) -> List[Goal]:
        return list(self.state["goals"].values())

    def root_goal_ids(self) -> List[str]:
        return find_root_goal_ids(self.state["goals"])

    def export_state(self) -> Dict[str, Any]:
        return state_to_payload(self.state)

    def get_layout(self, viewport_width: Optional[float] = None) -> LayoutResult:
        """Current layout; a fresh relayout drops the focus/edit selection."""
        previous = self.layout_engine.result
        result = self.layout_engine.compute(
            self.state["goals"], self.state["habits"], viewport_width=viewport_width
        )
        if result is not previous:
            self.interaction.on_layout_changed(empty=not result.nodes)
        return result

    def report_measured_height(self, node_id: str, height: float) -> bool:
        changed = self.layout_engine.report_measured_height(node_id, height)
        if changed:
            logger.debug(f"Patched measured height of {node_id} to {height}")
        return changed

    # ---------------------------------------------------------------------
    # Interaction
    # ---------------------------------------------------------------------
    def selection(self) -> Dict[str, Any]:
        transform = self.interaction.transform
        return {
            "focusedId": self.interaction.focused_id,
            "editingId": self.interaction.editing_id,
            "transform": {
                "scale": transform.scale,
                "translateX": transform.translate_x,
                "translateY": transform.translate_y,
            },
        }

    def focus(self, node_id: str) -> bool:
        """Focus a goal node; habit leaves and unknown ids are ignored."""
        if node_id not in self.state["goals"]:
            return False
        self.interaction.focus(node_id)
        return self.interaction.focused_id == node_id

    def toggle_edit(self) -> None:
        self.interaction.toggle_edit()

    def tap_outside(self) -> None:
        self.interaction.tap_outside()

    def toggle_focused_enabled(self) -> bool:
        goal = self._focused_goal()
        if goal is None:
            return False
        command = self.interaction.toggle_enabled_command(goal)
        return self.dispatch(command) if command else False

    def delete_focused(self) -> bool:
        if self._focused_goal() is None:
            return False
        return self.dispatch(self.interaction.delete_command())

    def complete_edit(self, goal_id: str, title: str, color: str) -> bool:
        return self.dispatch(self.interaction.edit_command(goal_id, title, color))

    def add_action(self, goal_id: str) -> Optional[str]:
        goal = self.state["goals"].get(goal_id)
        return self.interaction.add_action(goal) if goal else None

    def _focused_goal(self) -> Optional[Goal]:
        focused_id = self.interaction.focused_id
        return self.state["goals"].get(focused_id) if focused_id else None
