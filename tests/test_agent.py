from __future__ import annotations

from dataclasses import replace

import numpy as np
import pytest

from agent import Agent, init_network
from board import BoardState, Direction, Marker
from config import KILL_MARKER, PRIZE_MARKER
from conftest import fixed_action_network
from network import InputSizeMismatch, Network

UP, DOWN, FORWARD = 0, 1, 2


def _board(*kill_positions) -> BoardState:
    markers = tuple(Marker(p, KILL_MARKER, "#f00") for p in kill_positions)
    return BoardState(10, 6, 16, markers)


def _agent(position=(5, 3), direction=Direction.RIGHT, action=FORWARD, **kwargs) -> Agent:
    return Agent(fixed_action_network(action), 10, 6, position, direction, **kwargs)


def test_threat_distance_ahead_of_a_right_mover() -> None:
    agent = _agent()

    assert agent.threat_distance(_board((8, 3)), 0) == 3.0
    assert agent.threat_distance(_board((8, 3), (6, 3)), 0) == 1.0
    # behind the agent: measured the long way round
    assert agent.threat_distance(_board((2, 3)), 0) == 7.0


def test_threat_distance_for_a_left_mover() -> None:
    agent = _agent(direction=Direction.LEFT)

    assert agent.threat_distance(_board((2, 3)), 0) == 3.0
    assert agent.threat_distance(_board((8, 3)), 0) == 7.0


def test_threat_distance_without_threats_is_board_width() -> None:
    assert _agent().threat_distance(_board((8, 1)), 0) == 10.0


def test_sense_reads_rows_above_same_and_below_with_wrap() -> None:
    agent = _agent(position=(5, 0))
    board = _board((6, 5), (7, 0), (9, 1))

    assert agent.sense(board) == [1.0, 2.0, 4.0]


def test_move_forward_counts_as_progress() -> None:
    agent = _agent()

    moved = agent.move(_board())

    assert moved.position == (6, 3)
    assert moved.moves == 1
    assert moved.id == agent.id
    assert agent.position == (5, 3)


def test_vertical_moves_do_not_count() -> None:
    up = _agent(position=(5, 0), action=UP).move(_board())
    down = _agent(position=(5, 5), action=DOWN).move(_board())

    assert up.position == (5, 5) and up.moves == 0
    assert down.position == (5, 0) and down.moves == 0


def test_left_mover_steps_left() -> None:
    moved = _agent(position=(0, 2), direction=Direction.LEFT).move(_board())

    assert moved.position == (9, 2)
    assert moved.moves == 1


def test_ties_pick_the_first_action() -> None:
    network = fixed_action_network(FORWARD)
    flat = network.replace(nodes=[replace(node, bias=0.0) for node in network.nodes])
    agent = Agent(flat, 10, 6, (5, 3))

    assert agent.decide(_board()) is Direction.UP


def test_decide_rejects_wrong_output_count() -> None:
    agent = Agent(fixed_action_network(0, output_size=2), 10, 6, (5, 3))

    with pytest.raises(ValueError):
        agent.decide(_board())


def test_wrong_input_size_propagates() -> None:
    agent = Agent(fixed_action_network(0, input_size=2), 10, 6, (5, 3))

    with pytest.raises(InputSizeMismatch):
        agent.move(_board())


def test_reached_goal() -> None:
    assert _agent(position=(9, 1)).reached_goal()
    assert not _agent(position=(8, 1)).reached_goal()
    assert _agent(position=(0, 1), direction=Direction.LEFT).reached_goal()
    assert not _agent(position=(9, 1), direction=Direction.LEFT).reached_goal()


def test_mutate_produces_a_fresh_child(rng) -> None:
    parent = _agent(position=(9, 4), moves=17, lineage=3)

    child = parent.mutate(rng)

    assert child.id != parent.id
    assert child.lineage == 4
    assert child.moves == 0
    assert child.direction is parent.direction
    assert child.position[0] == 0
    assert 0 <= child.position[1] < 6
    assert child.network.input_size == 3 and child.network.output_size == 3
    assert parent.moves == 17


def test_mutate_left_mover_spawns_on_right_edge(rng) -> None:
    child = _agent(direction=Direction.LEFT).mutate(rng)

    assert child.position[0] == 9
    assert child.direction is Direction.LEFT


def test_mutate_accepts_overrides(rng) -> None:
    child = _agent().mutate(rng, grid_width=5, grid_height=5, position=(2, 2))

    assert child.position == (2, 2)
    assert (child.grid_width, child.grid_height) == (5, 5)


def test_spawn_uses_direction_for_edge(rng) -> None:
    right = Agent.spawn(10, 6, direction=Direction.RIGHT, rng=rng)
    left = Agent.spawn(10, 6, direction=Direction.LEFT, rng=rng)
    placed = Agent.spawn(10, 6, direction=Direction.RIGHT, position=[4, 4], rng=rng)

    assert right.position[0] == 0
    assert left.position[0] == 9
    assert placed.position == (4, 4)
    assert right.lineage == 0 and right.moves == 0
    assert right.id != left.id


def test_init_network_prefers_moving_forward() -> None:
    network = init_network(np.random.default_rng(0))
    agent = Agent(network, 10, 6, (0, 3))

    assert network.output_nodes()[FORWARD].bias == 1.0
    assert isinstance(network, Network)
    assert agent.network.compute([0.0, 0.0, 0.0])[FORWARD] == 1.0


def test_set_position_and_reset_history() -> None:
    agent = _agent(moves=5)

    assert agent.set_position([1, 1]).position == (1, 1)
    assert agent.reset_history().moves == 0
    assert agent.reset_history().id == agent.id


def test_to_dict() -> None:
    data = _agent(lineage=2).to_dict(include_network=True)

    assert data["position"] == [5, 3]
    assert data["direction"] == "right"
    assert data["lineage"] == 2
    assert data["complexity"] == 6 + 9
    assert Network.from_dict(data["network"]) == fixed_action_network(FORWARD)


def test_threat_type_selects_which_markers_are_sensed() -> None:
    board = BoardState(10, 6, 16, (
        Marker((6, 3), KILL_MARKER, "#f00"),
        Marker((9, 3), PRIZE_MARKER, "#0f0"),
    ))

    assert _agent().threat_distance(board, 0) == 1.0
    assert _agent(threat_type=PRIZE_MARKER).threat_distance(board, 0) == 4.0
