"""
Interaction Controller for the mind map surface.

Holds focus/edit selection and the pan/zoom transform. It never touches goal
data directly: user intents become goal-store commands that the caller
dispatches.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.config_manager import config
from core.goal_store import DELETE_GOAL, TOGGLE_GOAL_ENABLED, UPDATE_GOAL
from core.models import Goal, is_habit_node_id

ADD_HABIT_ACTION = "habit"
ADD_SUBGOAL_ACTION = "subgoal"
CHOOSE_ACTION = "choose"


@dataclass
class ViewTransform:
    """Translation plus uniform scale; scale stays within [min_scale, max_scale]."""
    min_scale: float = 0.5
    max_scale: float = 3.0
    scale: float = 1.0
    translate_x: float = 0.0
    translate_y: float = 0.0
    _saved_scale: float = 1.0
    _saved_x: float = 0.0
    _saved_y: float = 0.0

    @classmethod
    def from_config(cls) -> "ViewTransform":
        return cls(min_scale=config.MIN_SCALE, max_scale=config.MAX_SCALE)

    def begin_pinch(self) -> None:
        self._saved_scale = self.scale

    def update_pinch(self, gesture_scale: float) -> float:
        self.scale = max(self.min_scale, min(self._saved_scale * gesture_scale, self.max_scale))
        return self.scale

    def begin_pan(self) -> None:
        self._saved_x = self.translate_x
        self._saved_y = self.translate_y

    def update_pan(self, dx: float, dy: float) -> None:
        self.translate_x = self._saved_x + dx
        self.translate_y = self._saved_y + dy

    def reset(self) -> None:
        self.scale = self._saved_scale = 1.0
        self.translate_x = self._saved_x = 0.0
        self.translate_y = self._saved_y = 0.0


class InteractionController:
    """At most one focused node and at most one editing node (always the focused one)."""

    def __init__(self, transform: Optional[ViewTransform] = None):
        self.focused_id: Optional[str] = None
        self.editing_id: Optional[str] = None
        self.transform = transform or ViewTransform.from_config()

    # --- selection ---

    def focus(self, node_id: str) -> None:
        if is_habit_node_id(node_id):
            return
        if self.focused_id != node_id:
            self.editing_id = None
            self.focused_id = node_id

    def toggle_edit(self) -> None:
        if self.editing_id:
            self.editing_id = None
        elif self.focused_id:
            self.editing_id = self.focused_id

    def complete_edit(self) -> None:
        self.editing_id = None

    def tap_outside(self) -> None:
        self.focused_id = None
        self.editing_id = None

    def on_layout_changed(self, empty: bool = False) -> None:
        """Relayout drops the selection; an empty tree also resets the view."""
        self.tap_outside()
        if empty:
            self.transform.reset()

    # --- intents ---

    @staticmethod
    def add_action(goal: Goal) -> str:
        """What "add" means on a goal: more habits, more subgoals, or ask."""
        if goal.has_habits():
            return ADD_HABIT_ACTION
        if goal.has_subgoals():
            return ADD_SUBGOAL_ACTION
        return CHOOSE_ACTION

    def toggle_enabled_command(self, goal: Goal) -> Optional[Dict[str, Any]]:
        if goal.id != self.focused_id:
            return None
        return {
            "type": TOGGLE_GOAL_ENABLED,
            "payload": {"goalId": goal.id, "enabled": not goal.enabled},
        }

    def delete_command(self) -> Optional[Dict[str, Any]]:
        if not self.focused_id:
            return None
        command = {"type": DELETE_GOAL, "payload": {"id": self.focused_id}}
        self.tap_outside()
        return command

    def edit_command(self, goal_id: str, title: str, color: str) -> Dict[str, Any]:
        self.complete_edit()
        return {"type": UPDATE_GOAL, "payload": {"id": goal_id, "title": title, "color": color}}
