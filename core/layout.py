"""
Tree Layout Engine.

Turns the goal forest plus habit lookups into non-overlapping node rectangles.
Block widths are aggregated bottom-up, then each sibling group is placed left
to right top-down, without recursion. Every goal sits centered over its own
block and its children are centered under it. Habit leaves form a single row
under the goal that owns them.

The layout is a pure function of (goals, habits, roots, viewport, config).
TreeLayoutEngine adds the cache and the measured-height patch used by the
rendering layer.
"""
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Set

from core.config_manager import SystemConfig, config as system_config
from core.goal_store import GoalMap, HabitMap, find_root_goal_ids
from core.logger import get_logger
from core.models import Connector, Goal, Habit, LayoutResult, NodeLayout, habit_node_id

logger = get_logger("layout")

GOAL_CURVE_FACTOR = 0.4
HABIT_CURVE_FACTOR = 0.3


@dataclass(frozen=True)
class LayoutConfig:
    """Sizes and spacing for one layout pass; passed explicitly, never global."""
    node_width: float = 150
    node_base_height: float = 40
    vertical_spacing: float = 70
    horizontal_spacing: float = 30
    habit_node_width: float = 120
    habit_node_height: float = 30
    habit_spacing: float = 15
    initial_y: float = 50
    min_margin: float = 50
    bottom_margin: float = 100
    empty_canvas_height: float = 200
    default_viewport_width: float = 390

    @classmethod
    def from_system_config(cls, cfg: Optional[SystemConfig] = None) -> "LayoutConfig":
        cfg = cfg or system_config
        return cls(
            node_width=cfg.NODE_WIDTH,
            node_base_height=cfg.NODE_BASE_HEIGHT,
            vertical_spacing=cfg.NODE_VERTICAL_SPACING,
            horizontal_spacing=cfg.NODE_HORIZONTAL_SPACING,
            habit_node_width=cfg.HABIT_NODE_WIDTH,
            habit_node_height=cfg.HABIT_NODE_HEIGHT,
            habit_spacing=cfg.HABIT_HORIZONTAL_SPACING,
            initial_y=cfg.INITIAL_Y,
            min_margin=cfg.MIN_MARGIN,
            bottom_margin=cfg.BOTTOM_MARGIN,
            empty_canvas_height=cfg.EMPTY_CANVAS_HEIGHT,
            default_viewport_width=cfg.DEFAULT_VIEWPORT_WIDTH,
        )


class _LayoutPass:
    """
    State of a single compute_layout call.

    Three iterative passes over the forest: collect (pre-order, each goal
    placed once), measure (children before parents) and place (parents
    before children).
    """

    def __init__(self, goals: GoalMap, habits: HabitMap, cfg: LayoutConfig):
        self.goals = goals
        self.habits = habits
        self.cfg = cfg
        self.order: List[str] = []
        self.roots: List[str] = []
        self.parent: Dict[str, Optional[str]] = {}
        self.level: Dict[str, int] = {}
        self.y: Dict[str, float] = {}
        self.kids: Dict[str, List[str]] = {}
        self.habit_rows: Dict[str, List[Habit]] = {}
        self.row_width: Dict[str, float] = {}
        self.block_width: Dict[str, float] = {}
        self.bottom: Dict[str, float] = {}

    def collect(self, root_goal_ids: List[str]) -> None:
        cfg = self.cfg
        placed: Set[str] = set()
        stack = [(goal_id, None, 0, cfg.initial_y) for goal_id in reversed(root_goal_ids)]
        while stack:
            goal_id, parent_id, level, y = stack.pop()
            goal = self.goals.get(goal_id)
            if goal is None:
                continue
            if goal_id in placed:
                logger.warning(f"Goal {goal_id} reached twice during layout (cycle or shared parent); skipping")
                continue
            placed.add(goal_id)

            self.order.append(goal_id)
            self.parent[goal_id] = parent_id
            self.level[goal_id] = level
            self.y[goal_id] = y
            self.kids[goal_id] = []
            if parent_id is None:
                self.roots.append(goal_id)
            else:
                self.kids[parent_id].append(goal_id)

            child_y = y + cfg.node_base_height + cfg.vertical_spacing
            if goal.has_subgoals():
                stack.extend((sid, goal_id, level + 1, child_y) for sid in reversed(goal.subgoals))
            elif goal.has_habits():
                self.habit_rows[goal_id] = [self.habits[h] for h in goal.habits_ids if h in self.habits]

    def measure(self) -> None:
        cfg = self.cfg
        for goal_id in reversed(self.order):
            bottom = self.y[goal_id] + cfg.node_base_height
            kids = self.kids[goal_id]
            row = self.habit_rows.get(goal_id)
            if kids:
                width = self._row_of_blocks(kids)
                bottom = max(bottom, max(self.bottom[k] for k in kids))
            elif row:
                width = len(row) * (cfg.habit_node_width + cfg.habit_spacing) - cfg.habit_spacing
                row_y = self.y[goal_id] + cfg.node_base_height + cfg.vertical_spacing
                bottom = max(bottom, row_y + cfg.habit_node_height)
            else:
                width = 0
            self.row_width[goal_id] = width
            self.block_width[goal_id] = max(cfg.node_width, width)
            self.bottom[goal_id] = bottom

    def place(self, left: float) -> Dict[str, NodeLayout]:
        cfg = self.cfg
        block_left: Dict[str, float] = {}
        self._line_up(self.roots, left, block_left)

        nodes: Dict[str, NodeLayout] = {}
        for goal_id in self.order:
            goal = self.goals[goal_id]
            node_x = block_left[goal_id] + self.block_width[goal_id] / 2 - cfg.node_width / 2
            nodes[goal_id] = NodeLayout(
                id=goal_id,
                x=node_x,
                y=self.y[goal_id],
                width=cfg.node_width,
                height=cfg.node_base_height,
                parent_id=self.parent[goal_id],
                level=self.level[goal_id],
                goal=goal,
            )

            # children are centered under the parent node
            child_x = node_x + cfg.node_width / 2 - self.row_width[goal_id] / 2
            if self.kids[goal_id]:
                self._line_up(self.kids[goal_id], child_x, block_left)
            else:
                self._place_habit_row(goal, child_x, nodes)
        return nodes

    @property
    def total_width(self) -> float:
        return self._row_of_blocks(self.roots)

    @property
    def max_y(self) -> float:
        if not self.roots:
            return self.cfg.initial_y + self.cfg.node_base_height
        return max(self.bottom[r] for r in self.roots)

    def _row_of_blocks(self, goal_ids: List[str]) -> float:
        if not goal_ids:
            return 0
        widths = sum(self.block_width[g] for g in goal_ids)
        return widths + self.cfg.horizontal_spacing * (len(goal_ids) - 1)

    def _line_up(self, goal_ids: List[str], start_x: float, block_left: Dict[str, float]) -> None:
        x = start_x
        for goal_id in goal_ids:
            block_left[goal_id] = x
            x += self.block_width[goal_id] + self.cfg.horizontal_spacing

    def _place_habit_row(self, goal: Goal, start_x: float, nodes: Dict[str, NodeLayout]) -> None:
        cfg = self.cfg
        row_y = self.y[goal.id] + cfg.node_base_height + cfg.vertical_spacing
        habit_x = start_x
        for habit in self.habit_rows.get(goal.id, []):
            node_id = habit_node_id(habit.id)
            nodes[node_id] = NodeLayout(
                id=node_id,
                x=habit_x,
                y=row_y,
                width=cfg.habit_node_width,
                height=cfg.habit_node_height,
                parent_id=goal.id,
                level=self.level[goal.id] + 1,
                goal=goal,
                habit=habit,
                is_habit_node=True,
            )
            habit_x += cfg.habit_node_width + cfg.habit_spacing


def build_connectors(nodes: Dict[str, NodeLayout]) -> List[Connector]:
    """Edge geometry from each parent's bottom-center to each child's top-center."""
    connectors = []
    for child in nodes.values():
        if not child.parent_id:
            continue
        parent = nodes.get(child.parent_id)
        if parent is None:
            continue
        x1, y1 = parent.center_x, parent.y + parent.height
        x2, y2 = child.center_x, child.y
        factor = HABIT_CURVE_FACTOR if child.is_habit_node else GOAL_CURVE_FACTOR
        bend = abs(y2 - y1) * factor
        connectors.append(Connector(
            parent_id=parent.id,
            child_id=child.id,
            start=(x1, y1),
            control1=(x1, y1 + bend),
            control2=(x2, y2 - bend),
            end=(x2, y2),
            is_habit=child.is_habit_node,
        ))
    return connectors


def compute_layout(
    goals: GoalMap,
    habits: HabitMap,
    root_goal_ids: Optional[List[str]] = None,
    viewport_width: Optional[float] = None,
    config: Optional[LayoutConfig] = None,
) -> LayoutResult:
    """
    Place every goal and displayed habit leaf.

    Args:
        goals: goal arena
        habits: habit lookup
        root_goal_ids: forest roots; defaults to goals nobody references
        viewport_width: visible width the tree is centered in
        config: sizes and spacing

    Returns:
        LayoutResult with absolute node positions and canvas size
    """
    cfg = config or LayoutConfig.from_system_config()
    if viewport_width is None:
        viewport_width = cfg.default_viewport_width

    if not goals:
        return LayoutResult({}, viewport_width, cfg.empty_canvas_height, [])

    if root_goal_ids is None:
        root_goal_ids = find_root_goal_ids(goals)

    tree = _LayoutPass(goals, habits, cfg)
    tree.collect(list(root_goal_ids))
    tree.measure()

    offset = max(cfg.min_margin, (viewport_width - tree.total_width) / 2)
    nodes = tree.place(offset)

    return LayoutResult(
        nodes=nodes,
        canvas_width=max(viewport_width, tree.total_width + offset * 2),
        canvas_height=tree.max_y + cfg.bottom_margin,
        connectors=build_connectors(nodes),
    )


class TreeLayoutEngine:
    """
    Keeps the current layout for a rendering surface.

    The layout is recomputed from scratch whenever the goal or habit
    collection object (or the viewport) changes. Measured heights only patch
    the affected node; neighbours are not shifted.
    """

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig.from_system_config()
        self._goals: Optional[GoalMap] = None
        self._habits: Optional[HabitMap] = None
        self._viewport_width: Optional[float] = None
        self._root_goal_ids: Optional[List[str]] = None
        self._result: Optional[LayoutResult] = None

    @property
    def result(self) -> Optional[LayoutResult]:
        return self._result

    def compute(
        self,
        goals: GoalMap,
        habits: HabitMap,
        viewport_width: Optional[float] = None,
        root_goal_ids: Optional[List[str]] = None,
    ) -> LayoutResult:
        if (
            self._result is not None
            and goals is self._goals
            and habits is self._habits
            and viewport_width == self._viewport_width
            and root_goal_ids == self._root_goal_ids
        ):
            return self._result

        self._result = compute_layout(goals, habits, root_goal_ids, viewport_width, self.config)
        self._goals = goals
        self._habits = habits
        self._viewport_width = viewport_width
        self._root_goal_ids = root_goal_ids
        logger.debug(f"Layout recomputed: {len(self._result.nodes)} node(s)")
        return self._result

    def invalidate(self) -> None:
        self._result = None

    def report_measured_height(self, node_id: str, height: float) -> bool:
        """
        Patch one node's height with the rendered value.

        Returns:
            True when the stored layout changed
        """
        if self._result is None or height is None or height <= 0:
            return False
        node = self._result.nodes.get(node_id)
        if node is None or node.height == height:
            return False

        self._result.nodes[node_id] = replace(node, height=height)
        self._result.connectors = build_connectors(self._result.nodes)
        return True
