"""
Core Data Models for Habit Mindmap.

Goals form a flat arena (id -> Goal) with child pointers by id; habits are
external entities referenced by id only. Layout types describe the geometry
handed to the rendering layer.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.exceptions import StateError

HABIT_NODE_PREFIX = "habit-"


def _id_list(value: Any, field_name: str, owner: str) -> Optional[List[str]]:
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        raise StateError(f"{owner}: '{field_name}' must be a list of ids", repr(value))
    ids = [str(item) for item in value if item is not None and item != ""]
    return ids or None


@dataclass
class Goal:
    """
    Goal node.

    A goal owns either subgoals or habit links, never both. Empty lists are
    stored as None so "has no children" has a single representation.
    """
    id: str
    title: str = ""
    color: str = ""
    enabled: bool = True
    subgoals: Optional[List[str]] = None
    habits_ids: Optional[List[str]] = None

    def has_subgoals(self) -> bool:
        return bool(self.subgoals)

    def has_habits(self) -> bool:
        return bool(self.habits_ids)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "color": self.color,
            "enabled": self.enabled,
        }
        if self.subgoals:
            data["subgoals"] = list(self.subgoals)
        if self.habits_ids:
            data["habitsIds"] = list(self.habits_ids)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Goal":
        if not isinstance(data, dict):
            raise StateError("goal record must be an object", repr(data)[:200])
        goal_id = data.get("id")
        if not goal_id:
            raise StateError("goal record without id", repr(data)[:200])
        owner = f"goal {goal_id}"
        habits_ids = data.get("habitsIds", data.get("habits_ids"))
        return cls(
            id=str(goal_id),
            title=str(data.get("title", "")),
            color=str(data.get("color", "")),
            enabled=bool(data.get("enabled", True)),
            subgoals=_id_list(data.get("subgoals"), "subgoals", owner),
            habits_ids=_id_list(habits_ids, "habitsIds", owner),
        )


@dataclass
class Habit:
    """
    Snapshot of an externally owned habit.

    Scheduling, logs and streaks belong to other collaborators; their fields
    ride along untouched in ``extra``.
    """
    id: str
    title: str = ""
    color: str = ""
    icon: Optional[str] = None
    enabled: bool = True
    goal_id: Optional[str] = None
    time_module_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _KNOWN_KEYS = ("id", "title", "color", "icon", "enabled", "goalId", "timeModuleId")

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "title": self.title,
            "color": self.color,
            "enabled": self.enabled,
        })
        if self.icon is not None:
            data["icon"] = self.icon
        if self.goal_id is not None:
            data["goalId"] = self.goal_id
        if self.time_module_id is not None:
            data["timeModuleId"] = self.time_module_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Habit":
        if not isinstance(data, dict):
            raise StateError("habit record must be an object", repr(data)[:200])
        habit_id = data.get("id")
        if not habit_id:
            raise StateError("habit record without id", repr(data)[:200])
        return cls(
            id=str(habit_id),
            title=str(data.get("title", "")),
            color=str(data.get("color", "")),
            icon=data.get("icon"),
            enabled=bool(data.get("enabled", True)),
            goal_id=data.get("goalId"),
            time_module_id=data.get("timeModuleId"),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN_KEYS},
        )


@dataclass
class NodeLayout:
    """Placed rectangle for one goal or habit node."""
    id: str
    x: float
    y: float
    width: float
    height: float
    parent_id: Optional[str]
    level: int
    goal: Goal  # the goal itself, or the owning goal for habit nodes
    habit: Optional[Habit] = None
    is_habit_node: bool = False

    @property
    def payload(self):
        if self.is_habit_node:
            return self.habit
        return self.goal

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "parentId": self.parent_id,
            "level": self.level,
            "isHabitNode": self.is_habit_node,
            "payload": self.payload.to_dict(),
        }


@dataclass
class Connector:
    """Cubic curve from a parent's bottom-center to a child's top-center."""
    parent_id: str
    child_id: str
    start: tuple
    control1: tuple
    control2: tuple
    end: tuple
    is_habit: bool = False

    @property
    def path_data(self) -> str:
        (x1, y1), (c1x, c1y), (c2x, c2y), (x2, y2) = (
            self.start, self.control1, self.control2, self.end
        )
        return f"M {x1} {y1} C {c1x} {c1y}, {c2x} {c2y}, {x2} {y2}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parentId": self.parent_id,
            "childId": self.child_id,
            "isHabit": self.is_habit,
            "path": self.path_data,
        }


@dataclass
class LayoutResult:
    nodes: Dict[str, NodeLayout] = field(default_factory=dict)
    canvas_width: float = 0
    canvas_height: float = 0
    connectors: List[Connector] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes.values()],
            "canvasWidth": self.canvas_width,
            "canvasHeight": self.canvas_height,
            "connectors": [c.to_dict() for c in self.connectors],
        }


def habit_node_id(habit_id: str) -> str:
    return f"{HABIT_NODE_PREFIX}{habit_id}"


def is_habit_node_id(node_id: str) -> bool:
    return node_id.startswith(HABIT_NODE_PREFIX)


def get_initial_state() -> Dict[str, Any]:
    """
    Return the empty app state.

    goals/habits are insertion-ordered id -> record maps; order is the
    display order of root goals.
    """
    return {
        "goals": {},  # Dict[str, Goal]
        "habits": {},  # Dict[str, Habit]
    }
