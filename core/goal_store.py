"""
Goal Store: the goal-hierarchy state machine.

Every operation takes the current collections and returns new ones; nothing is
mutated in place and nothing raises. A rejected command logs a diagnostic and
returns the input object unchanged, so callers can detect "no change" with
``is``.

Invariants kept across all commands:
- a goal owns subgoals or habit links, never both
- subgoal ids reference goals in the same collection
- a habit id is linked from at most one goal
- subgoal traversal never loops (cycles reject the mutating command)
"""
from dataclasses import replace
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from core.config_manager import config
from core.exceptions import StateError
from core.ids import IdFactory, new_id
from core.logger import get_logger
from core.models import HABIT_NODE_PREFIX, Goal, Habit, get_initial_state, is_habit_node_id

logger = get_logger("goal_store")

GoalMap = Dict[str, Goal]
HabitMap = Dict[str, Habit]

# --- Command tags ---

ADD_GOAL = "ADD_GOAL"
ADD_SUBGOAL = "ADD_SUBGOAL"
UPDATE_GOAL = "UPDATE_GOAL"
TOGGLE_GOAL_ENABLED = "TOGGLE_GOAL_ENABLED"
DELETE_GOAL = "DELETE_GOAL"
LINK_HABIT_TO_GOAL = "LINK_HABIT_TO_GOAL"
LOAD_STATE = "LOAD_STATE"
RESET_STATE = "RESET_STATE"

COMMAND_TYPES = (
    ADD_GOAL,
    ADD_SUBGOAL,
    UPDATE_GOAL,
    TOGGLE_GOAL_ENABLED,
    DELETE_GOAL,
    LINK_HABIT_TO_GOAL,
    LOAD_STATE,
    RESET_STATE,
)

# Fields a new goal may be created with; structure is only changed by commands.
GOAL_FIELDS = ("title", "color", "enabled")


# Payload keys that carry a goal or habit id.
ID_KEYS = ("id", "goalId", "parentGoalId", "habitId")

_DONE = object()


# --- Queries ---

def find_root_goal_ids(goals: GoalMap) -> List[str]:
    """Goals not referenced from any other goal's subgoals, in collection order."""
    referenced: Set[str] = set()
    for goal in goals.values():
        if goal.subgoals:
            referenced.update(goal.subgoals)
    return [goal_id for goal_id in goals if goal_id not in referenced]


def find_parent_id(goals: GoalMap, goal_id: str) -> Optional[str]:
    for goal in goals.values():
        if goal.subgoals and goal_id in goal.subgoals:
            return goal.id
    return None


def collect_descendants(goals: GoalMap, goal_id: str) -> Optional[List[str]]:
    """
    Depth-first collection of a goal and all its transitive subgoals.

    Uses an explicit stack, so arbitrarily deep hierarchies are fine.

    Args:
        goals: goal arena
        goal_id: start of the traversal (included even if it does not exist)

    Returns:
        ids in pre-order, or None when a cycle is reachable from goal_id
    """
    def children(current: str) -> Iterator[str]:
        goal = goals.get(current)
        return iter(goal.subgoals or []) if goal else iter(())

    order: List[str] = [goal_id]
    visited: Set[str] = {goal_id}
    on_path: Set[str] = {goal_id}
    stack = [(goal_id, children(goal_id))]

    while stack:
        current, pending = stack[-1]
        child_id = next(pending, _DONE)
        if child_id is _DONE:
            stack.pop()
            on_path.discard(current)
            continue
        if child_id in on_path:
            logger.error(f"Cycle detected under goal {goal_id} (at {child_id})")
            return None
        if child_id in visited:
            continue
        visited.add(child_id)
        on_path.add(child_id)
        order.append(child_id)
        stack.append((child_id, children(child_id)))
    return order


# --- Helpers ---

def _is_id(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _dedupe(ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(ids))


def _new_goal_fields(fields: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    fields = fields or {}
    ignored = [k for k in fields if k not in GOAL_FIELDS and k != "id"]
    if ignored:
        logger.warning(f"Ignoring fields on new goal: {', '.join(sorted(ignored))}")
    return {k: fields[k] for k in GOAL_FIELDS if k in fields}


# --- Operations ---

def add_goal(
    goals: GoalMap,
    fields: Optional[Dict[str, Any]] = None,
    id_factory: IdFactory = new_id,
) -> GoalMap:
    """Append a new root goal with a fresh id."""
    goal = Goal(id=id_factory(), **_new_goal_fields(fields))
    updated = dict(goals)
    updated[goal.id] = goal
    logger.info(f"Added goal {goal.id}")
    return updated


def add_subgoal(
    goals: GoalMap,
    parent_id: str,
    fields: Optional[Dict[str, Any]] = None,
    id_factory: IdFactory = new_id,
    strict: Optional[bool] = None,
) -> GoalMap:
    """
    Create a goal and register it under parent_id.

    When the parent owns habit links (or does not exist) the linkage is
    skipped. In non-strict mode the new goal is still appended as a root,
    which is the historical behaviour; strict mode rejects the command.
    """
    if strict is None:
        strict = config.STRICT_SUBGOAL_LINKING

    parent = goals.get(parent_id)
    link_parent = True
    if parent is None:
        logger.warning(f"Cannot add subgoal: parent goal {parent_id} not found.")
        link_parent = False
    elif parent.has_habits():
        logger.warning(f"Cannot add subgoal to goal {parent_id} which has habits.")
        link_parent = False

    if not link_parent and strict:
        return goals

    subgoal = Goal(id=id_factory(), **_new_goal_fields(fields))
    updated = dict(goals)
    if link_parent:
        updated[parent_id] = replace(parent, subgoals=[*(parent.subgoals or []), subgoal.id])
    updated[subgoal.id] = subgoal
    logger.info(f"Added goal {subgoal.id} under {parent_id if link_parent else 'no parent'}")
    return updated


def update_goal(goals: GoalMap, goal_id: str, changes: Optional[Dict[str, Any]] = None) -> GoalMap:
    """
    Shallow-merge fields into a goal.

    Structural fields (subgoals, habitsIds) are accepted but the merged goal
    must keep every store invariant, otherwise the update is rejected.
    """
    goal = goals.get(goal_id)
    if goal is None:
        return goals

    changes = dict(changes or {})
    changes.pop("id", None)
    if "habitsIds" in changes:
        changes["habits_ids"] = changes.pop("habitsIds")

    allowed = set(GOAL_FIELDS) | {"subgoals", "habits_ids"}
    ignored = sorted(k for k in changes if k not in allowed)
    if ignored:
        logger.warning(f"Ignoring unknown goal fields on {goal_id}: {', '.join(ignored)}")
        for key in ignored:
            changes.pop(key)

    for key in ("subgoals", "habits_ids"):
        if key in changes:
            value = changes[key]
            if value is not None and not isinstance(value, (list, tuple)):
                logger.warning(f"Rejected update of goal {goal_id}: {key} must be a list")
                return goals
            ids = _dedupe(str(v) for v in value or [] if v is not None and v != "")
            changes[key] = ids or None

    if not changes:
        return goals

    merged = replace(goal, **changes)
    if merged == goal:
        return goals

    if merged.has_subgoals() and merged.has_habits():
        logger.warning(f"Rejected update of goal {goal_id}: a goal cannot own both subgoals and habits.")
        return goals

    updated = dict(goals)
    updated[goal_id] = merged

    if "subgoals" in changes and merged.subgoals:
        missing = [sid for sid in merged.subgoals if sid not in goals]
        if missing:
            logger.warning(f"Rejected update of goal {goal_id}: unknown subgoals {missing}")
            return goals
        for sid in merged.subgoals:
            other_parent = find_parent_id(goals, sid)
            if other_parent is not None and other_parent != goal_id:
                logger.warning(
                    f"Rejected update of goal {goal_id}: subgoal {sid} already belongs to {other_parent}"
                )
                return goals
        if collect_descendants(updated, goal_id) is None:
            logger.warning(f"Rejected update of goal {goal_id}: subgoals would create a cycle")
            return goals

    if "habits_ids" in changes and merged.habits_ids:
        # exclusive ownership: the updated goal takes the habits over
        taken = set(merged.habits_ids)
        for other_id, other in goals.items():
            if other_id != goal_id and other.habits_ids and taken.intersection(other.habits_ids):
                remaining = [h for h in other.habits_ids if h not in taken]
                updated[other_id] = replace(other, habits_ids=remaining or None)

    return updated


def toggle_goal_enabled(
    goals: GoalMap,
    habits: HabitMap,
    goal_id: str,
    enabled: bool,
) -> Tuple[GoalMap, HabitMap]:
    """
    Set enabled on a goal, every descendant goal, and every habit linked
    anywhere in that subtree.
    """
    if goal_id not in goals:
        return goals, habits

    affected = collect_descendants(goals, goal_id)
    if affected is None:
        logger.error(f"Rejected TOGGLE_GOAL_ENABLED on {goal_id}: goal hierarchy contains a cycle")
        return goals, habits

    enabled = bool(enabled)
    updated_goals = dict(goals)
    affected_habits: List[str] = []
    for affected_id in affected:
        goal = goals.get(affected_id)
        if goal is None:
            continue
        if goal.enabled != enabled:
            updated_goals[affected_id] = replace(goal, enabled=enabled)
        affected_habits.extend(goal.habits_ids or [])

    updated_habits = dict(habits)
    for habit_id in affected_habits:
        habit = habits.get(habit_id)
        if habit is not None and habit.enabled != enabled:
            updated_habits[habit_id] = replace(habit, enabled=enabled)

    if updated_goals == goals and updated_habits == habits:
        return goals, habits
    logger.info(
        f"Set enabled={enabled} on {len(affected)} goal(s) and {len(affected_habits)} habit(s) from {goal_id}"
    )
    return updated_goals, updated_habits


def delete_goal(goals: GoalMap, goal_id: str) -> GoalMap:
    """
    Remove a goal and its whole subtree, then prune every surviving
    reference into the deleted set.
    """
    if goal_id not in goals:
        return goals

    doomed_order = collect_descendants(goals, goal_id)
    if doomed_order is None:
        logger.error(f"Rejected DELETE_GOAL on {goal_id}: goal hierarchy contains a cycle")
        return goals
    doomed = set(doomed_order)

    updated: GoalMap = {}
    for gid, goal in goals.items():
        if gid in doomed:
            continue
        if goal.subgoals and doomed.intersection(goal.subgoals):
            remaining = [sid for sid in goal.subgoals if sid not in doomed]
            goal = replace(goal, subgoals=remaining or None)
        updated[gid] = goal

    logger.info(f"Deleted goal {goal_id} with {len(doomed) - 1} descendant(s)")
    return updated


def link_habit_to_goal(goals: GoalMap, goal_id: str, habit_id: str) -> GoalMap:
    """
    Link a habit to a goal, moving it away from any previous owner.
    """
    if not _is_id(goal_id) or not _is_id(habit_id):
        logger.warning(f"Cannot link habit {habit_id!r} to goal {goal_id!r}: both ids are required.")
        return goals

    target = goals.get(goal_id)
    if target is None:
        logger.warning(f"Goal with ID {goal_id} not found.")
        return goals

    if target.has_subgoals():
        logger.warning(f"Cannot link habit to goal {goal_id} which has subgoals.")
        return goals

    updated: GoalMap = {}
    for gid, goal in goals.items():
        if gid == goal_id:
            goal = replace(goal, habits_ids=_dedupe([*(goal.habits_ids or []), habit_id]))
        elif goal.habits_ids and habit_id in goal.habits_ids:
            remaining = [h for h in goal.habits_ids if h != habit_id]
            goal = replace(goal, habits_ids=remaining or None)
        updated[gid] = goal

    if updated == goals:
        return goals
    logger.info(f"Linked habit {habit_id} to goal {goal_id}")
    return updated


# --- State loading ---

def _records(raw: Any, kind: str) -> List[Any]:
    if raw is None:
        return []
    if isinstance(raw, dict):
        return list(raw.values())
    if isinstance(raw, list):
        return raw
    logger.warning(f"Ignoring {kind}: expected a list, got {type(raw).__name__}")
    return []


def normalize_goals(goals: Iterable[Goal]) -> GoalMap:
    """
    Repair a loaded goal collection so every store invariant holds.

    - duplicate ids: first record wins
    - dangling subgoal references are pruned
    - a goal owning both subgoals and habits keeps the subgoals
    - a habit linked from several goals stays with the first one
    - ids that collide with habit node ids are dropped
    """
    arena: GoalMap = {}
    for goal in goals:
        if is_habit_node_id(goal.id):
            logger.warning(f"Dropping goal {goal.id}: ids starting with '{HABIT_NODE_PREFIX}' are reserved")
            continue
        if goal.id in arena:
            logger.warning(f"Dropping duplicate goal {goal.id}")
            continue
        arena[goal.id] = goal

    owners: Dict[str, str] = {}
    repaired: GoalMap = {}
    for gid, goal in arena.items():
        subgoals = None
        if goal.subgoals:
            subgoals = [sid for sid in _dedupe(goal.subgoals) if sid in arena and sid != gid]
            if len(subgoals) != len(goal.subgoals):
                logger.warning(f"Pruned dangling subgoal references on goal {gid}")
            subgoals = subgoals or None

        habits_ids = None
        if goal.habits_ids:
            if subgoals:
                logger.warning(f"Goal {gid} had both subgoals and habits; dropping habit links")
            else:
                habits_ids = []
                for hid in _dedupe(goal.habits_ids):
                    if hid in owners:
                        logger.warning(f"Habit {hid} already linked to {owners[hid]}; unlinking from {gid}")
                        continue
                    owners[hid] = gid
                    habits_ids.append(hid)
                habits_ids = habits_ids or None

        if subgoals != goal.subgoals or habits_ids != goal.habits_ids:
            goal = replace(goal, subgoals=subgoals, habits_ids=habits_ids)
        repaired[gid] = goal
    return repaired


def state_from_payload(payload: Any) -> Dict[str, Any]:
    """
    Build a valid state from a persisted/imported payload.

    Malformed goal or habit records are dropped with a warning.

    Raises:
        StateError: the payload is not a mapping
    """
    if not isinstance(payload, dict):
        raise StateError("state payload must be an object", repr(payload)[:200])

    goals: List[Goal] = []
    for record in _records(payload.get("goals"), "goals"):
        try:
            goals.append(Goal.from_dict(record))
        except StateError as e:
            logger.warning(f"Dropping goal record: {e.message}")

    habits: HabitMap = {}
    for record in _records(payload.get("habits"), "habits"):
        try:
            habit = Habit.from_dict(record)
        except StateError as e:
            logger.warning(f"Dropping habit record: {e.message}")
            continue
        habits.setdefault(habit.id, habit)

    state = get_initial_state()
    state["goals"] = normalize_goals(goals)
    state["habits"] = sync_habit_owners(state["goals"], habits)
    return state


def state_to_payload(state: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "goals": [g.to_dict() for g in state["goals"].values()],
        "habits": [h.to_dict() for h in state["habits"].values()],
    }


def sync_habit_owners(goals: GoalMap, habits: HabitMap) -> HabitMap:
    """Mirror the authoritative goal -> habit links onto habit.goal_id."""
    owners: Dict[str, str] = {}
    for goal in goals.values():
        for hid in goal.habits_ids or []:
            owners[hid] = goal.id

    updated = None
    for hid, habit in habits.items():
        owner = owners.get(hid)
        if habit.goal_id != owner:
            if updated is None:
                updated = dict(habits)
            updated[hid] = replace(habit, goal_id=owner)
    return habits if updated is None else updated


# --- Dispatcher ---

def apply_command(
    state: Dict[str, Any],
    command: Dict[str, Any],
    id_factory: IdFactory = new_id,
    strict_subgoal_linking: Optional[bool] = None,
) -> Dict[str, Any]:
    """
    Pure function: apply one tagged command and return the new state.

    Args:
        state: {"goals": GoalMap, "habits": HabitMap, ...}
        command: {"type": TAG, "payload": {...}}
        id_factory: id generator for created goals
        strict_subgoal_linking: overrides config.STRICT_SUBGOAL_LINKING

    Returns:
        the new state, or the same object when nothing changed
    """
    command_type = command.get("type")
    payload = command.get("payload") or {}
    goals: GoalMap = state["goals"]
    habits: HabitMap = state["habits"]
    new_goals, new_habits = goals, habits

    if command_type not in (LOAD_STATE, RESET_STATE) and not isinstance(payload, dict):
        logger.warning(f"Ignoring {command_type}: payload must be an object")
        return state

    if command_type not in (LOAD_STATE, RESET_STATE):
        bad_keys = [k for k in ID_KEYS if payload.get(k) is not None and not isinstance(payload[k], str)]
        if bad_keys:
            logger.warning(f"Ignoring {command_type}: {', '.join(bad_keys)} must be string ids")
            return state

    if command_type == ADD_GOAL:
        new_goals = add_goal(goals, payload, id_factory)

    elif command_type == ADD_SUBGOAL:
        # payload: { "parentGoalId": "...", "newGoal": {...} }
        new_goals = add_subgoal(
            goals,
            payload.get("parentGoalId"),
            payload.get("newGoal"),
            id_factory,
            strict=strict_subgoal_linking,
        )

    elif command_type == UPDATE_GOAL:
        # payload: { "id": "...", <fields> }
        new_goals = update_goal(goals, payload.get("id"), payload)

    elif command_type == TOGGLE_GOAL_ENABLED:
        # payload: { "goalId": "...", "enabled": bool }
        new_goals, new_habits = toggle_goal_enabled(
            goals, habits, payload.get("goalId"), payload.get("enabled", True)
        )

    elif command_type == DELETE_GOAL:
        new_goals = delete_goal(goals, payload.get("id"))

    elif command_type == LINK_HABIT_TO_GOAL:
        # payload: { "goalId": "...", "habitId": "..." }
        new_goals = link_habit_to_goal(goals, payload.get("goalId"), payload.get("habitId"))

    elif command_type == LOAD_STATE:
        try:
            loaded = state_from_payload(command.get("payload"))
        except StateError as e:
            logger.error(f"LOAD_STATE failed, starting from an empty state: {e.message}")
            return {**state, **get_initial_state()}
        return {**state, **loaded}

    elif command_type == RESET_STATE:
        return {**state, **get_initial_state()}

    else:
        logger.debug(f"Unhandled command type: {command_type}")
        return state

    if new_goals is goals and new_habits is habits:
        return state

    if new_goals is not goals:
        new_habits = sync_habit_owners(new_goals, new_habits)
    return {**state, "goals": new_goals, "habits": new_habits}
