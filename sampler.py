"""
Frozen-agent replays for NeuroEvo Grid.

A sample is a copy of an agent taken at some tick. It can be replayed on a
small board against a fixed, scripted hazard layout to see how its genome
behaves outside the population:

  "life"  – the agent reached the far edge for its direction, or every
            hazard went past it
  "death" – the agent ran into a hazard

Replays step a single agent; nothing here touches the main simulation.
"""

import logging
from dataclasses import dataclass, replace

from agent import Agent
from board import BoardState, Direction
from config import (CELL_SIZE, KILL_MARKER, SAMPLE_GRID_HEIGHT,
                    SAMPLE_GRID_WIDTH, SAMPLE_START_POSITION,
                    SCRIPTED_HAZARD_PATTERNS)
from simulation import advance_kill_positions, board_markers

log = logging.getLogger(__name__)

LIFE  = "life"
DEATH = "death"


@dataclass(frozen=True)
class SampleFrameState:
    agent:          Agent
    board:          BoardState
    hazard_pattern: tuple
    tick:           int = 0
    result:         str = None


@dataclass(frozen=True)
class AgentSample:
    tick:  int
    agent: Agent


def resolve_hazard_pattern(pattern, grid_width: int) -> tuple:
    """Negative x coordinates count back from the far (right) edge."""
    return tuple((x + grid_width if x < 0 else x, y) for x, y in pattern)


def sample_start_position(direction: Direction, grid_width: int) -> tuple:
    x, y = SAMPLE_START_POSITION
    if direction is Direction.LEFT:
        return (grid_width - 1 - x, y)
    return (x, y)


def init_sample_frame_state(agent: Agent, hazard_pattern,
                            previous: SampleFrameState = None,
                            grid_width: int = SAMPLE_GRID_WIDTH,
                            grid_height: int = SAMPLE_GRID_HEIGHT,
                            cell_size: int = CELL_SIZE) -> SampleFrameState:
    """
    Put `agent` at the start cell of a fresh sample board. Left-movers
    start on the mirrored cell at the right edge.
    """
    hazard_pattern = tuple(tuple(position) for position in hazard_pattern)
    agent = replace(agent, position=sample_start_position(agent.direction, grid_width),
                    grid_width=grid_width, grid_height=grid_height)
    hazards = resolve_hazard_pattern(hazard_pattern, grid_width)
    board = BoardState(grid_width, grid_height, cell_size)
    board = board.set_positions(board_markers(hazards, [agent], grid_width))
    return SampleFrameState(
        agent=agent,
        board=board,
        hazard_pattern=hazard_pattern,
        result=previous.result if previous is not None else None,
    )


def next_sample_frame_state(state: SampleFrameState,
                            advance_hazards=advance_kill_positions) -> SampleFrameState:
    """
    Step the sampled agent once. `advance_hazards(board) -> positions`
    moves the hazards; a finished replay restarts from its pattern with
    the outcome stored in `result`.
    """
    board   = state.board
    agent   = state.agent.move(board)
    hazards = list(advance_hazards(board))

    result = None
    if agent.reached_goal() or not hazards:
        result = LIFE
    elif agent.position in set(hazards) | set(board.get_positions(KILL_MARKER)):
        result = DEATH

    if result is not None:
        finished = replace(state, result=result)
        return init_sample_frame_state(state.agent, state.hazard_pattern, finished,
                                       board.grid_width, board.grid_height,
                                       board.cell_size)

    return replace(
        state,
        agent=agent,
        board=board.set_positions(board_markers(hazards, [agent], board.grid_width)),
        tick=state.tick + 1,
        result=None,
    )


def replay(agent: Agent, hazard_pattern, max_ticks: int = None,
           advance_hazards=advance_kill_positions) -> str:
    """Run one replay to its outcome; None if `max_ticks` pass first."""
    state = init_sample_frame_state(agent, hazard_pattern)
    if max_ticks is None:
        max_ticks = state.board.grid_width * 4
    for _ in range(max_ticks):
        state = next_sample_frame_state(state, advance_hazards)
        if state.result is not None:
            return state.result
    return None


def evaluate_sample(agent: Agent, patterns=SCRIPTED_HAZARD_PATTERNS) -> list:
    """Outcome of every scripted pattern, in pattern order."""
    return [replay(agent, pattern) for pattern in patterns]


# ──────────────────────────────────────────────────────────────────────────────
# Sample sets
# ──────────────────────────────────────────────────────────────────────────────

def take_sample(agents, samples, tick: int) -> tuple:
    """
    Freeze the agent with the most moves that is not sampled already.
    Returns the extended sample tuple (unchanged if none is left).
    """
    sampled_ids = {sample.agent.id for sample in samples}
    best = None
    for agent in agents:
        if agent.id in sampled_ids:
            continue
        if best is None or agent.moves > best.moves:
            best = agent

    if best is None:
        log.info("no agents left to sample at tick %d", tick)
        return tuple(samples)

    log.info("sampled %s (moves %d, lineage %d) at tick %d",
             best.id, best.moves, best.lineage, tick)
    return tuple(samples) + (AgentSample(tick, best),)


def clear_sample(samples, agent: Agent) -> tuple:
    return tuple(sample for sample in samples if sample.agent.id != agent.id)


def should_auto_sample(tick: int) -> bool:
    rate = 10_000 if tick < 100_000 else 100_000
    return tick > 0 and tick % rate == 0
