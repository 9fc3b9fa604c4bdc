from __future__ import annotations

import numpy as np
import pytest

from agent import Agent
from board import BoardState, Direction
from config import (FAST_SAMPLE_DURATION, FAST_SAMPLE_RATE, KILL_MARKER,
                    LINE_METRIC_NAMES, MIN_KILLERS_PER_MOVE,
                    SLOW_SAMPLE_RETENTION)
from conftest import fixed_action_network
from simulation import (FrameState, ParentFate, Simulation, SimulationParams,
                        advance_kill_positions, board_markers,
                        difficulty_from_survivors, init_frame_state,
                        next_killers_per_move, simulation_step,
                        slow_sample_rate, spawn_killers)

FORWARD = 2


def _frame(agents, kill_positions=(), params=None, killers_per_move=0.0, **kwargs):
    params = params or SimulationParams(grid_width=10, grid_height=6,
                                        min_agents=1, max_agents=5)
    board = BoardState(params.grid_width, params.grid_height, params.cell_size)
    board = board.set_positions(board_markers(list(kill_positions), agents,
                                              params.grid_width))
    return FrameState(agents=tuple(agents), board=board,
                      killers_per_move=killers_per_move, **kwargs)


def _runner(position, direction=Direction.RIGHT, **kwargs) -> Agent:
    return Agent(fixed_action_network(FORWARD), 10, 6, position, direction, **kwargs)


# ──────────────────────────────────────────────────────────────────────────────
# Building blocks
# ──────────────────────────────────────────────────────────────────────────────

def test_params_reject_inverted_bounds() -> None:
    with pytest.raises(ValueError):
        SimulationParams(min_agents=10, max_agents=5)
    with pytest.raises(ValueError):
        SimulationParams(min_agents=0)
    assert SimulationParams(parent_fate="remove").parent_fate is ParentFate.REMOVE


def test_init_frame_state_places_floor_population(rng) -> None:
    params = SimulationParams(grid_width=20, grid_height=8, min_agents=7, max_agents=30)

    state = init_frame_state(params, rng)

    assert state.population == 7
    assert state.tick == 0
    assert state.kill_positions() == []
    assert all(agent.position[0] == 0 for agent in state.agents)
    assert all(agent.direction is Direction.RIGHT for agent in state.agents)
    assert len(state.board.markers) == 7


def test_killers_advance_left_and_leave_the_grid() -> None:
    board = _frame([], kill_positions=[(0, 1), (4, 2), (9, 5)]).board

    assert advance_kill_positions(board) == [(3, 2), (8, 5)]


def test_spawn_killers_whole_and_fractional_parts() -> None:
    rng = np.random.default_rng(2)

    spawned = spawn_killers([(3, 3)], 2.0, 10, 6, rng)
    assert len(spawned) == 3
    assert spawned[0] == (3, 3)
    assert all(x == 9 and 0 <= y < 6 for x, y in spawned[1:])

    counts = {len(spawn_killers([], 1.5, 10, 6, rng)) for _ in range(200)}
    assert counts == {1, 2}
    assert spawn_killers([], 0.0, 10, 6, rng) == []


def test_difficulty_rises_with_survivors_and_saturates() -> None:
    params = SimulationParams(min_agents=10, max_agents=600, max_difficulty=30)

    values = [difficulty_from_survivors(n, params) for n in range(10, 601)]

    assert values[0] == 0.0
    assert values[-1] == pytest.approx(30.0)
    assert all(b > a for a, b in zip(values, values[1:]))
    assert difficulty_from_survivors(900, params) == pytest.approx(30.0)
    assert difficulty_from_survivors(3, params) == 0.0


def test_killers_per_move_is_smoothed_and_floored() -> None:
    history = ({"difficulty": 0.0}, {"difficulty": 4.0}, {"difficulty": 8.0})

    assert next_killers_per_move((), SimulationParams()) == MIN_KILLERS_PER_MOVE
    assert next_killers_per_move(history, SimulationParams()) == 8.0
    assert next_killers_per_move(history, SimulationParams(difficulty_smoothing=2)) == 6.0
    assert next_killers_per_move(history[:1], SimulationParams()) == MIN_KILLERS_PER_MOVE


def test_slow_sample_rate_gets_sparser() -> None:
    assert slow_sample_rate(10) == 100
    assert slow_sample_rate(5_000) == 1_000
    assert slow_sample_rate(50_000) == 5_000


# ──────────────────────────────────────────────────────────────────────────────
# One tick
# ──────────────────────────────────────────────────────────────────────────────

def test_step_leaves_previous_state_untouched(rng) -> None:
    state = init_frame_state(SimulationParams(grid_width=20, grid_height=8,
                                              min_agents=5, max_agents=20), rng)
    agents, board = state.agents, state.board

    following = simulation_step(state, SimulationParams(grid_width=20, grid_height=8,
                                                        min_agents=5, max_agents=20), rng)

    assert state.agents is agents and state.board is board
    assert state.tick == 0
    assert following.tick == 1
    assert following is not state


def test_agent_moving_onto_a_killer_is_removed(rng) -> None:
    victim = _runner((5, 3))
    state = _frame([victim], kill_positions=[(6, 3)])

    following = simulation_step(state, rng=rng,
                                params=SimulationParams(grid_width=10, grid_height=6,
                                                        min_agents=1, max_agents=5))

    assert victim.id not in {agent.id for agent in following.agents}
    assert following.population == 1


def test_agent_meeting_an_advancing_killer_is_removed(rng) -> None:
    params = SimulationParams(grid_width=10, grid_height=6, min_agents=1, max_agents=5)
    victim = _runner((5, 3))
    bystander = _runner((5, 1))
    state = _frame([victim, bystander], kill_positions=[(7, 3), (3, 1)], params=params)

    following = simulation_step(state, params, rng)

    # (7, 3) advances onto (6, 3) as the agent arrives; (3, 1) is already behind
    ids = {agent.id for agent in following.agents}
    assert victim.id not in ids
    assert bystander.id in ids
    assert following.kill_positions() == [(2, 1)]


def test_agents_all_see_the_pre_tick_board(rng) -> None:
    params = SimulationParams(grid_width=10, grid_height=6, min_agents=1, max_agents=10)
    agents = [_runner((2, 1)), _runner((3, 1)), _runner((2, 4))]
    state = _frame(agents, params=params)

    forward = simulation_step(state, params, np.random.default_rng(0))
    backward = simulation_step(_frame(agents[::-1], params=params), params,
                               np.random.default_rng(0))

    assert sorted(a.position for a in forward.agents) == \
        sorted(a.position for a in backward.agents)


def test_goal_reached_spawns_a_child_and_parent_continues(rng) -> None:
    params = SimulationParams(grid_width=10, grid_height=6, min_agents=1, max_agents=5)
    parent = _runner((8, 2), lineage=2)

    following = simulation_step(_frame([parent], params=params), params, rng)

    ids = {agent.id for agent in following.agents}
    assert parent.id in ids
    assert following.population == 2
    child = next(agent for agent in following.agents if agent.id != parent.id)
    assert child.lineage == 3
    assert child.position[0] == 0
    assert child.moves == 0


def test_goal_reached_with_remove_fate_retires_the_parent(rng) -> None:
    params = SimulationParams(grid_width=10, grid_height=6, min_agents=1,
                              max_agents=5, parent_fate=ParentFate.REMOVE)
    parent = _runner((8, 2), lineage=2)

    following = simulation_step(_frame([parent], params=params), params, rng)

    assert following.population == 1
    assert following.agents[0].id != parent.id
    assert following.agents[0].lineage == 3


def test_no_children_at_the_ceiling(rng) -> None:
    params = SimulationParams(grid_width=10, grid_height=6, min_agents=1, max_agents=2)
    runners = [_runner((8, 1)), _runner((8, 4))]

    following = simulation_step(_frame(runners, params=params), params, rng)

    assert following.population == 2
    assert {a.id for a in following.agents} == {r.id for r in runners}


def test_floor_is_topped_up_from_the_most_evolved_lineage(rng) -> None:
    params = SimulationParams(grid_width=10, grid_height=6, min_agents=3, max_agents=10)
    ancestor = _runner((4, 4), lineage=5)

    following = simulation_step(_frame([], params=params, respawn_agent=ancestor),
                                params, rng)

    assert following.population == 3
    assert all(agent.lineage == 6 for agent in following.agents)
    assert following.respawn_agent is ancestor


def test_empty_population_restarts_with_fresh_agents(rng) -> None:
    params = SimulationParams(grid_width=10, grid_height=6, min_agents=2, max_agents=10)

    following = simulation_step(_frame([], params=params), params, rng)

    assert following.population == 2
    assert all(agent.lineage == 0 for agent in following.agents)


def test_step_records_history_and_board(rng) -> None:
    params = SimulationParams(grid_width=10, grid_height=6, min_agents=1, max_agents=5)
    state = _frame([_runner((1, 1), lineage=4)], params=params, killers_per_move=2.0)

    following = simulation_step(state, params, rng)

    entry = following.history[-1]
    assert entry["tick"] == 1
    assert entry["population"] == following.population
    assert entry["killers"] == len(following.kill_positions())
    assert entry["lineage_max"] == 4
    assert entry["complexity_min"] == entry["complexity_max"] == 6 + 9
    types = [marker.type for marker in following.board.markers]
    assert types.count(KILL_MARKER) == entry["killers"]
    assert types.count("right") == following.population


# ──────────────────────────────────────────────────────────────────────────────
# Runs
# ──────────────────────────────────────────────────────────────────────────────

def _run_and_check(params: SimulationParams, ticks: int, seed: int) -> Simulation:
    sim = Simulation(params=params, seed=seed)
    best_lineage = 0
    for _ in range(ticks):
        state = sim.step()
        assert params.min_agents <= state.population <= params.max_agents
        lineage = state.respawn_agent.lineage if state.respawn_agent else 0
        assert lineage >= best_lineage
        best_lineage = lineage
        assert 0.0 <= state.history[-1]["difficulty"] <= params.max_difficulty
    return sim


def test_short_run_keeps_population_within_bounds() -> None:
    params = SimulationParams(grid_width=24, grid_height=12, min_agents=5, max_agents=40)

    sim = _run_and_check(params, ticks=400, seed=7)

    assert sim.tick == 400


@pytest.mark.slow
def test_ten_thousand_ticks_stay_balanced() -> None:
    params = SimulationParams(grid_width=48, grid_height=32, min_agents=10, max_agents=600)

    sim = _run_and_check(params, ticks=10_000, seed=2024)

    assert sim.tick == 10_000
    assert sim.state.respawn_agent.lineage > 0


def test_same_seed_gives_the_same_run() -> None:
    params = SimulationParams(grid_width=16, grid_height=8, min_agents=4, max_agents=30)

    first = Simulation(params=params, seed=99)
    second = Simulation(params=params, seed=99)
    first.step(150)
    second.step(150)

    assert first.state.board == second.state.board
    assert [(a.position, a.lineage, a.moves) for a in first.state.agents] == \
        [(a.position, a.lineage, a.moves) for a in second.state.agents]
    assert [a.network for a in first.state.agents] == \
        [a.network for a in second.state.agents]


def test_reset_replays_from_the_seed() -> None:
    params = SimulationParams(grid_width=16, grid_height=8, min_agents=4, max_agents=30)
    sim = Simulation(params=params, seed=5)
    sim.step(60)
    board = sim.state.board

    sim.reset()
    assert sim.tick == 0
    sim.step(60)

    assert sim.state.board == board


def test_metrics_series_are_ordered_and_bounded() -> None:
    params = SimulationParams(grid_width=20, grid_height=10, min_agents=5, max_agents=30)
    sim = Simulation(params=params, seed=3)

    sim.step(1_200)

    fast = sim.state.metrics["fast"]
    slow = sim.state.metrics["slow"]
    assert len(fast["population"]) == FAST_SAMPLE_DURATION // FAST_SAMPLE_RATE
    assert fast["population"][-1]["tick"] == 1_200 // FAST_SAMPLE_RATE * FAST_SAMPLE_RATE
    assert [p["tick"] for p in slow["population"]] == [100 * k for k in range(1, 11)]
    for series in (fast, slow):
        for name in LINE_METRIC_NAMES:
            ticks = [point["tick"] for point in series[name]]
            assert ticks == sorted(set(ticks))
            assert len(ticks) <= max(SLOW_SAMPLE_RETENTION, FAST_SAMPLE_DURATION)
        for point in series["lineage"]:
            assert point["min"] <= point["max"]
    assert len(sim.state.history) <= FAST_SAMPLE_DURATION


def test_callback_and_best_agent() -> None:
    seen = []
    sim = Simulation(params=SimulationParams(grid_width=16, grid_height=8,
                                             min_agents=4, max_agents=30),
                     seed=1, on_tick_callback=lambda state: seen.append(state.tick))

    sim.run(25)

    assert seen == list(range(1, 26))
    best = sim.best_agent()
    assert best.moves == max(agent.moves for agent in sim.state.agents)
