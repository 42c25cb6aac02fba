import itertools
import logging
import random

import pytest

from core.goal_store import (
    ADD_GOAL,
    ADD_SUBGOAL,
    DELETE_GOAL,
    LINK_HABIT_TO_GOAL,
    LOAD_STATE,
    RESET_STATE,
    TOGGLE_GOAL_ENABLED,
    UPDATE_GOAL,
    add_goal,
    add_subgoal,
    apply_command,
    collect_descendants,
    delete_goal,
    find_root_goal_ids,
    link_habit_to_goal,
    toggle_goal_enabled,
    update_goal,
)
from core.models import Goal, Habit, get_initial_state


def _ids(prefix: str = "g"):
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"


def _arena(*goals: Goal) -> dict:
    return {g.id: g for g in goals}


def _state(goals=(), habits=()) -> dict:
    state = get_initial_state()
    state["goals"] = {g.id: g for g in goals}
    state["habits"] = {h.id: h for h in habits}
    return state


def _chain() -> dict:
    # R -> [A, D], A -> B -> C
    return _arena(
        Goal(id="R", title="Root", subgoals=["A", "D"]),
        Goal(id="A", title="A", subgoals=["B"]),
        Goal(id="B", title="B", subgoals=["C"]),
        Goal(id="C", title="C", habits_ids=["h1"]),
        Goal(id="D", title="D"),
    )


# --- AddGoal / AddSubgoal ---

def test_add_goal_appends_without_touching_input():
    goals = _arena(Goal(id="x", title="Existing"))
    updated = add_goal(goals, {"title": "Read", "color": "#fff"}, id_factory=_ids())

    assert list(updated) == ["x", "g1"]
    assert updated["g1"] == Goal(id="g1", title="Read", color="#fff", enabled=True)
    assert list(goals) == ["x"]


def test_add_goal_ignores_structural_fields():
    updated = add_goal({}, {"title": "T", "subgoals": ["nope"], "habitsIds": ["h"]}, id_factory=_ids())
    assert updated["g1"].subgoals is None
    assert updated["g1"].habits_ids is None


def test_add_subgoal_links_parent():
    goals = _arena(Goal(id="p", title="Parent"))
    updated = add_subgoal(goals, "p", {"title": "Child"}, id_factory=_ids())

    assert updated["p"].subgoals == ["g1"]
    assert updated["g1"].title == "Child"
    assert goals["p"].subgoals is None
    assert find_root_goal_ids(updated) == ["p"]


def test_add_subgoal_to_habit_parent_keeps_orphan_by_default(caplog):
    goals = _arena(Goal(id="p", habits_ids=["h1"]))
    with caplog.at_level(logging.WARNING):
        updated = add_subgoal(goals, "p", {"title": "Child"}, id_factory=_ids(), strict=False)

    assert updated["p"] == goals["p"]
    assert "g1" in updated
    assert find_root_goal_ids(updated) == ["p", "g1"]
    assert "which has habits" in caplog.text


def test_add_subgoal_to_habit_parent_strict_rejects_whole_command():
    goals = _arena(Goal(id="p", habits_ids=["h1"]))
    assert add_subgoal(goals, "p", {"title": "Child"}, id_factory=_ids(), strict=True) is goals


def test_add_subgoal_strict_rejects_missing_parent():
    goals = _arena(Goal(id="p"))
    assert add_subgoal(goals, "missing", {"title": "Child"}, id_factory=_ids(), strict=True) is goals


# --- UpdateGoal ---

def test_update_goal_merges_fields():
    goals = _arena(Goal(id="a", title="Old", color="#000"))
    updated = update_goal(goals, "a", {"id": "a", "title": "New"})

    assert updated["a"].title == "New"
    assert updated["a"].color == "#000"
    assert goals["a"].title == "Old"


def test_update_goal_unknown_id_is_noop():
    goals = _arena(Goal(id="a"))
    assert update_goal(goals, "zzz", {"title": "x"}) is goals


def test_update_goal_rejects_both_subgoals_and_habits():
    goals = _arena(Goal(id="a", habits_ids=["h1"]), Goal(id="b"))
    assert update_goal(goals, "a", {"subgoals": ["b"]}) is goals


def test_update_goal_rejects_unknown_subgoals():
    goals = _arena(Goal(id="a"))
    assert update_goal(goals, "a", {"subgoals": ["ghost"]}) is goals


def test_update_goal_rejects_cycle():
    goals = _arena(Goal(id="a", subgoals=["b"]), Goal(id="b"))
    assert update_goal(goals, "b", {"subgoals": ["a"]}) is goals
    assert update_goal(goals, "b", {"subgoals": ["b"]}) is goals


def test_update_goal_rejects_second_parent():
    goals = _arena(Goal(id="a", subgoals=["c"]), Goal(id="b"), Goal(id="c"))
    assert update_goal(goals, "b", {"subgoals": ["c"]}) is goals


def test_update_goal_habits_take_over_ownership():
    goals = _arena(Goal(id="a", habits_ids=["h1", "h2"]), Goal(id="b"))
    updated = update_goal(goals, "b", {"habitsIds": ["h2"]})

    assert updated["b"].habits_ids == ["h2"]
    assert updated["a"].habits_ids == ["h1"]


# --- ToggleGoalEnabled ---

def test_toggle_disables_subtree_and_linked_habits():
    goals = _chain()
    goals["X"] = Goal(id="X", habits_ids=["h9"])
    habits = {"h1": Habit(id="h1"), "h9": Habit(id="h9")}

    new_goals, new_habits = toggle_goal_enabled(goals, habits, "A", False)

    assert [gid for gid, g in new_goals.items() if not g.enabled] == ["A", "B", "C"]
    assert new_goals["R"].enabled is True
    assert new_goals["X"].enabled is True
    assert new_habits["h1"].enabled is False
    assert new_habits["h9"].enabled is True
    assert habits["h1"].enabled is True


def test_toggle_missing_goal_is_noop():
    goals, habits = _chain(), {}
    assert toggle_goal_enabled(goals, habits, "nope", False) == (goals, habits)


def test_toggle_rejects_cycle(caplog):
    goals = _arena(Goal(id="a", subgoals=["b"]), Goal(id="b", subgoals=["a"]))
    with caplog.at_level(logging.ERROR):
        new_goals, _ = toggle_goal_enabled(goals, {}, "a", False)
    assert new_goals is goals
    assert "cycle" in caplog.text.lower()


# --- DeleteGoal ---

def test_delete_removes_whole_subtree_in_one_call():
    goals = _chain()
    updated = delete_goal(goals, "A")

    assert set(updated) == {"R", "D"}
    assert updated["R"].subgoals == ["D"]


def test_delete_drops_empty_subgoals_field():
    updated = delete_goal(delete_goal(_chain(), "A"), "D")

    assert updated["R"].subgoals is None
    assert "subgoals" not in updated["R"].to_dict()


def test_delete_missing_goal_is_noop():
    goals = _chain()
    assert delete_goal(goals, "nope") is goals


def test_delete_rejects_cycle():
    goals = _arena(Goal(id="a", subgoals=["b"]), Goal(id="b", subgoals=["a"]))
    assert delete_goal(goals, "a") is goals


def _deep_chain(depth: int) -> dict:
    goals = _arena(*(Goal(id=f"g{i}", subgoals=[f"g{i + 1}"]) for i in range(depth - 1)))
    leaf = Goal(id=f"g{depth - 1}", habits_ids=["h"])
    goals[leaf.id] = leaf
    return goals


def test_deep_hierarchy_toggle_delete_and_update():
    goals = _deep_chain(2000)
    state = _state(goals.values(), [Habit(id="h")])

    assert len(collect_descendants(goals, "g0")) == 2000

    toggled = apply_command(state, {"type": TOGGLE_GOAL_ENABLED, "payload": {"goalId": "g0", "enabled": False}})
    assert toggled["goals"]["g1999"].enabled is False
    assert toggled["habits"]["h"].enabled is False

    # g1998 -> g0 would close a loop through the whole chain
    updated = apply_command(state, {"type": UPDATE_GOAL, "payload": {"id": "g1998", "subgoals": ["g1999", "g0"]}})
    assert updated is state

    deleted = apply_command(state, {"type": DELETE_GOAL, "payload": {"id": "g0"}})
    assert deleted["goals"] == {}


def test_collect_descendants_preorder():
    assert collect_descendants(_chain(), "R") == ["R", "A", "B", "C", "D"]


# --- LinkHabitToGoal ---

def test_relinking_moves_habit_to_new_owner():
    goals = _arena(Goal(id="goalX"), Goal(id="goalY"))
    goals = link_habit_to_goal(goals, "goalX", "h1")
    goals = link_habit_to_goal(goals, "goalY", "h1")

    assert goals["goalX"].habits_ids is None
    assert goals["goalY"].habits_ids == ["h1"]


def test_link_is_deduplicated():
    goals = _arena(Goal(id="a", habits_ids=["h1"]))
    assert link_habit_to_goal(goals, "a", "h1") is goals


def test_link_to_goal_with_subgoals_is_rejected(caplog):
    goals = _arena(Goal(id="a", subgoals=["b"]), Goal(id="b"))
    with caplog.at_level(logging.WARNING):
        assert link_habit_to_goal(goals, "a", "h1") is goals
    assert "which has subgoals" in caplog.text


def test_link_to_missing_goal_is_noop():
    goals = _arena(Goal(id="a"))
    assert link_habit_to_goal(goals, "nope", "h1") is goals


@pytest.mark.parametrize(
    "payload",
    [
        {"goalId": "a"},
        {"goalId": "a", "habitId": ""},
        {"habitId": "h1"},
        {"goalId": "a", "habitId": 7},
        {"goalId": ["a"], "habitId": "h1"},
    ],
)
def test_link_without_usable_ids_is_rejected(payload):
    state = _state([Goal(id="a")], [Habit(id="h1")])
    assert apply_command(state, {"type": LINK_HABIT_TO_GOAL, "payload": payload}) is state


def test_non_string_ids_are_rejected_for_every_command():
    state = _state([Goal(id="a")])
    assert apply_command(state, {"type": DELETE_GOAL, "payload": {"id": ["a"]}}) is state
    assert apply_command(state, {"type": UPDATE_GOAL, "payload": {"id": {"x": 1}, "title": "T"}}) is state


# --- Dispatcher ---

def test_apply_command_unknown_type_returns_same_state():
    state = _state([Goal(id="a")])
    assert apply_command(state, {"type": "DANCE", "payload": {}}) is state


def test_apply_command_rejects_non_object_payload():
    state = _state([Goal(id="a")])
    assert apply_command(state, {"type": ADD_GOAL, "payload": ["x"]}) is state


def test_apply_command_flow_and_habit_owner_sync():
    ids = _ids()
    state = _state(habits=[Habit(id="h1")])
    state = apply_command(state, {"type": ADD_GOAL, "payload": {"title": "Health"}}, id_factory=ids)
    state = apply_command(
        state,
        {"type": ADD_SUBGOAL, "payload": {"parentGoalId": "g1", "newGoal": {"title": "Run"}}},
        id_factory=ids,
    )
    state = apply_command(state, {"type": LINK_HABIT_TO_GOAL, "payload": {"goalId": "g2", "habitId": "h1"}})

    assert state["goals"]["g1"].subgoals == ["g2"]
    assert state["goals"]["g2"].habits_ids == ["h1"]
    assert state["habits"]["h1"].goal_id == "g2"

    state = apply_command(state, {"type": TOGGLE_GOAL_ENABLED, "payload": {"goalId": "g1", "enabled": False}})
    assert state["habits"]["h1"].enabled is False

    state = apply_command(state, {"type": UPDATE_GOAL, "payload": {"id": "g2", "title": "Run daily"}})
    assert state["goals"]["g2"].title == "Run daily"

    state = apply_command(state, {"type": DELETE_GOAL, "payload": {"id": "g1"}})
    assert state["goals"] == {}
    assert state["habits"]["h1"].goal_id is None


def test_rejected_link_does_not_touch_habit():
    state = _state([Goal(id="a", subgoals=["b"]), Goal(id="b")], [Habit(id="h1")])
    new_state = apply_command(state, {"type": LINK_HABIT_TO_GOAL, "payload": {"goalId": "a", "habitId": "h1"}})
    assert new_state is state
    assert new_state["habits"]["h1"].goal_id is None


def test_load_state_repairs_invariants():
    payload = {
        "goals": [
            {"id": "a", "title": "A", "subgoals": ["b", "ghost"], "habitsIds": ["h1"]},
            {"id": "b", "title": "B", "habitsIds": ["h2"]},
            {"id": "c", "title": "C", "habitsIds": ["h2", "h3"]},
            {"title": "no id"},
            "garbage",
        ],
        "habits": [{"id": "h2", "title": "Walk", "timeModuleId": "global_fajr"}, {"nope": 1}],
    }
    state = apply_command(get_initial_state(), {"type": LOAD_STATE, "payload": payload})

    goals = state["goals"]
    assert list(goals) == ["a", "b", "c"]
    assert goals["a"].subgoals == ["b"]
    assert goals["a"].habits_ids is None
    assert goals["b"].habits_ids == ["h2"]
    assert goals["c"].habits_ids == ["h3"]
    assert state["habits"]["h2"].goal_id == "b"
    assert state["habits"]["h2"].time_module_id == "global_fajr"


def test_load_state_drops_goals_using_habit_node_ids():
    payload = {
        "goals": [
            {"id": "root", "subgoals": ["habit-h1", "ok"]},
            {"id": "habit-h1", "title": "clashes with a habit leaf"},
            {"id": "ok", "habitsIds": ["h1", None]},
        ],
        "habits": [{"id": "h1", "title": "Stretch"}],
    }
    goals = apply_command(get_initial_state(), {"type": LOAD_STATE, "payload": payload})["goals"]

    assert list(goals) == ["root", "ok"]
    assert goals["root"].subgoals == ["ok"]
    assert goals["ok"].habits_ids == ["h1"]


def test_load_state_with_bad_payload_starts_empty():
    state = _state([Goal(id="a")])
    new_state = apply_command(state, {"type": LOAD_STATE, "payload": ["not", "a", "state"]})
    assert new_state["goals"] == {}
    assert new_state["habits"] == {}


def test_reset_state():
    state = _state([Goal(id="a")], [Habit(id="h")])
    assert apply_command(state, {"type": RESET_STATE}) == get_initial_state()


# --- Invariants under random command sequences ---

@pytest.mark.parametrize("seed", [1, 7, 42, 2024])
def test_invariants_hold_after_random_commands(seed):
    rng = random.Random(seed)
    ids = _ids()
    habit_ids = [f"h{i}" for i in range(6)]
    state = _state(habits=[Habit(id=h) for h in habit_ids])

    for _ in range(200):
        existing = list(state["goals"])
        target = rng.choice(existing) if existing else None
        kind = rng.choice([ADD_GOAL, ADD_SUBGOAL, LINK_HABIT_TO_GOAL, DELETE_GOAL, TOGGLE_GOAL_ENABLED, UPDATE_GOAL])
        if kind == ADD_GOAL or target is None:
            command = {"type": ADD_GOAL, "payload": {"title": "g"}}
        elif kind == ADD_SUBGOAL:
            command = {"type": ADD_SUBGOAL, "payload": {"parentGoalId": target, "newGoal": {"title": "s"}}}
        elif kind == LINK_HABIT_TO_GOAL:
            command = {"type": LINK_HABIT_TO_GOAL, "payload": {"goalId": target, "habitId": rng.choice(habit_ids)}}
        elif kind == DELETE_GOAL:
            command = {"type": DELETE_GOAL, "payload": {"id": target}}
        elif kind == TOGGLE_GOAL_ENABLED:
            command = {"type": TOGGLE_GOAL_ENABLED, "payload": {"goalId": target, "enabled": rng.random() < 0.5}}
        else:
            other = rng.choice(existing)
            command = {"type": UPDATE_GOAL, "payload": {"id": target, "subgoals": [other]}}
        state = apply_command(state, command, id_factory=ids)

    goals = state["goals"]
    owners = {}
    for goal in goals.values():
        # mutual exclusion
        assert not (goal.has_subgoals() and goal.has_habits())
        # no dangling references
        assert all(sid in goals for sid in goal.subgoals or [])
        # single ownership
        for hid in goal.habits_ids or []:
            assert hid not in owners
            owners[hid] = goal.id
    for goal_id in goals:
        assert collect_descendants(goals, goal_id) is not None
    for hid, habit in state["habits"].items():
        assert habit.goal_id == owners.get(hid)
