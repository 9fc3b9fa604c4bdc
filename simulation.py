"""
Simulation Engine for NeuroEvo Grid.

One tick turns a FrameState into the next FrameState:
  1. Advance killers one cell left, drop the ones that leave the grid
  2. Spawn new killers on the right edge (killers_per_move, fractional
     part as a probability)
  3. Move every agent against the pre-tick board; agents landing on a
     killer are removed
  4. Agents on the far edge spawn a mutated child (while under the ceiling)
  5. Top up to the population floor from the most evolved lineage
  6. Re-balance killers_per_move from the population size
  7. Emit the new board and record metrics

The step is a pure function of (state, params, rng). `Simulation` wraps it
with a tick loop, callbacks and printed progress.
"""

import math
import time
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from agent import Agent, init_network
from board import BoardState, Direction, Marker, agent_color
from config import (
    AREA_METRIC_NAMES, CELL_SIZE, DIFFICULTY_SMOOTHING, FAST_SAMPLE_DURATION,
    FAST_SAMPLE_RATE, GRID_HEIGHT, GRID_WIDTH, KILL_COLOR, KILL_MARKER,
    LEARNING_RATE, LINE_METRIC_NAMES, MAX_AGENTS, MAX_DIFFICULTY, MIN_AGENTS,
    MIN_KILLERS_PER_MOVE, PARENT_FATE, SLOW_SAMPLE_RATE_MAX,
    SLOW_SAMPLE_RETENTION, SLOW_SAMPLE_SCHEDULE,
)


class ParentFate(str, Enum):
    CONTINUE = "continue"   # parent keeps running after spawning a child
    REMOVE   = "remove"     # parent is retired once its child exists


@dataclass(frozen=True)
class SimulationParams:
    grid_width:           int   = GRID_WIDTH
    grid_height:          int   = GRID_HEIGHT
    cell_size:            int   = CELL_SIZE
    min_agents:           int   = MIN_AGENTS
    max_agents:           int   = MAX_AGENTS
    max_difficulty:       float = MAX_DIFFICULTY
    difficulty_smoothing: int   = DIFFICULTY_SMOOTHING
    parent_fate:          ParentFate = ParentFate(PARENT_FATE)
    learning_rate:        float = LEARNING_RATE

    def __post_init__(self):
        if not 0 < self.min_agents <= self.max_agents:
            raise ValueError(
                f"need 0 < min_agents <= max_agents, got "
                f"{self.min_agents} and {self.max_agents}")
        if self.grid_width <= 0 or self.grid_height <= 0:
            raise ValueError("grid dimensions must be positive")
        if self.difficulty_smoothing < 1:
            raise ValueError("difficulty_smoothing must be at least 1")
        object.__setattr__(self, "parent_fate", ParentFate(self.parent_fate))


@dataclass(frozen=True)
class FrameState:
    agents:          tuple
    board:           BoardState
    killers_per_move: float = MIN_KILLERS_PER_MOVE
    tick:            int = 0
    history:         tuple = ()
    metrics:         dict = field(default_factory=dict)
    respawn_agent:   Agent = None

    @property
    def population(self) -> int:
        return len(self.agents)

    def kill_positions(self) -> list:
        return self.board.get_positions(KILL_MARKER)


# ──────────────────────────────────────────────────────────────────────────────
# Initial state
# ──────────────────────────────────────────────────────────────────────────────

def init_agent(params: SimulationParams, rng) -> Agent:
    return Agent.spawn(
        params.grid_width, params.grid_height,
        direction=Direction.RIGHT,
        threat_type=KILL_MARKER,
        network=init_network(rng, params.learning_rate),
        rng=rng,
    )


def empty_metrics() -> dict:
    names = AREA_METRIC_NAMES + LINE_METRIC_NAMES
    return {speed: {name: () for name in names} for speed in ("fast", "slow")}


def init_frame_state(params: SimulationParams = None, rng=None) -> FrameState:
    """`min_agents` fresh right-moving agents on an empty board."""
    if params is None:
        params = SimulationParams()
    if rng is None:
        rng = np.random.default_rng()

    agents = tuple(init_agent(params, rng) for _ in range(params.min_agents))
    board  = BoardState(params.grid_width, params.grid_height, params.cell_size)
    board  = board.set_positions(board_markers([], agents, params.grid_width))
    return FrameState(agents=agents, board=board, metrics=empty_metrics())


# ──────────────────────────────────────────────────────────────────────────────
# Killers
# ──────────────────────────────────────────────────────────────────────────────

def advance_kill_positions(board: BoardState) -> list:
    """Every killer steps one cell left; those leaving the grid vanish."""
    advanced = [(x - 1, y) for x, y in board.get_positions(KILL_MARKER)]
    return [position for position in advanced if board.is_on_board(position)]


def spawn_killers(positions: list, killers_per_move: float, grid_width: int,
                  grid_height: int, rng) -> list:
    """
    floor(k) killers on the right edge, plus one more with probability
    equal to the fractional part of k.
    """
    positions = list(positions)
    whole = math.floor(killers_per_move)
    partial = killers_per_move - whole
    for _ in range(whole):
        positions.append((grid_width - 1, int(rng.integers(0, grid_height))))
    if partial > rng.random():
        positions.append((grid_width - 1, int(rng.integers(0, grid_height))))
    return positions


# ──────────────────────────────────────────────────────────────────────────────
# Difficulty
# ──────────────────────────────────────────────────────────────────────────────

def difficulty_from_survivors(survivors: int, params: SimulationParams = None) -> float:
    """
    0 at the population floor, max_difficulty at the ceiling. More agents
    means more killers, which pulls the population back down.
    """
    if params is None:
        params = SimulationParams()
    span = params.max_agents - params.min_agents
    if span == 0:
        return float(params.max_difficulty)
    proportion = (survivors - params.min_agents) / span
    return params.max_difficulty * min(1.0, max(0.0, proportion))


def next_killers_per_move(history, params: SimulationParams) -> float:
    recent = [entry["difficulty"] for entry in history[-params.difficulty_smoothing:]]
    if not recent:
        return MIN_KILLERS_PER_MOVE
    return max(sum(recent) / len(recent), MIN_KILLERS_PER_MOVE)


# ──────────────────────────────────────────────────────────────────────────────
# Markers
# ──────────────────────────────────────────────────────────────────────────────

def agent_markers(agents, grid_width: int) -> list:
    return [
        Marker(agent.position, agent.direction.value,
               agent_color(agent.moves, grid_width))
        for agent in agents
    ]


def kill_markers(positions) -> list:
    return [Marker(tuple(position), KILL_MARKER, KILL_COLOR) for position in positions]


def board_markers(kill_positions, agents, grid_width: int) -> list:
    return kill_markers(kill_positions) + agent_markers(agents, grid_width)


# ──────────────────────────────────────────────────────────────────────────────
# Metrics
# ──────────────────────────────────────────────────────────────────────────────

def slow_sample_rate(tick: int) -> int:
    for below, rate in SLOW_SAMPLE_SCHEDULE:
        if tick < below:
            return rate
    return SLOW_SAMPLE_RATE_MAX


def history_entry(tick: int, agents, killers: int, params: SimulationParams) -> dict:
    lineages   = [agent.lineage for agent in agents]
    complexity = [agent.network.complexity for agent in agents]
    return {
        "tick":           tick,
        "difficulty":     difficulty_from_survivors(len(agents), params),
        "population":     len(agents),
        "killers":        killers,
        "lineage_max":    max(lineages, default=0),
        "lineage_min":    min(lineages, default=0),
        "complexity_min": min(complexity, default=0),
        "complexity_max": max(complexity, default=0),
    }


def _mean(values) -> float:
    return sum(values) / len(values)


def sample_metrics(metrics: dict, history, tick: int) -> dict:
    """
    Append averaged samples to the fast/slow series whenever `tick` hits a
    sample point. Series are capped so they never grow without bound.
    """
    sampled = {speed: dict(series) for speed, series in metrics.items()}
    schedules = (
        ("fast", FAST_SAMPLE_RATE, max(1, FAST_SAMPLE_DURATION // FAST_SAMPLE_RATE)),
        ("slow", slow_sample_rate(tick), SLOW_SAMPLE_RETENTION),
    )
    for speed, rate, retention in schedules:
        if tick % rate != 0:
            continue
        window = history[-min(rate, len(history)):]
        for name in LINE_METRIC_NAMES:
            value = {"tick": tick, "value": _mean([entry[name] for entry in window])}
            sampled[speed][name] = (sampled[speed].get(name, ()) + (value,))[-retention:]
        for name in AREA_METRIC_NAMES:
            value = {
                "tick": tick,
                "min":  _mean([entry[f"{name}_min"] for entry in window]),
                "max":  _mean([entry[f"{name}_max"] for entry in window]),
            }
            sampled[speed][name] = (sampled[speed].get(name, ()) + (value,))[-retention:]
    return sampled


# ──────────────────────────────────────────────────────────────────────────────
# One tick
# ──────────────────────────────────────────────────────────────────────────────

def _most_evolved(candidates):
    best = None
    for agent in candidates:
        if agent is not None and (best is None or agent.lineage > best.lineage):
            best = agent
    return best


def simulation_step(state: FrameState, params: SimulationParams = None,
                    rng=None) -> FrameState:
    """Advance the simulation by one tick; `state` is left untouched."""
    if params is None:
        params = SimulationParams()
    if rng is None:
        rng = np.random.default_rng()
    board = state.board

    # 1-2. killers
    previous_kills = set(board.get_positions(KILL_MARKER))
    kill_positions = advance_kill_positions(board)
    kill_positions = spawn_killers(kill_positions, state.killers_per_move,
                                   board.grid_width, board.grid_height, rng)

    # 3. every agent moves against the same pre-tick board
    moved = [agent.move(board) for agent in state.agents]
    deadly = previous_kills | set(kill_positions)
    agents = [agent for agent in moved if agent.position not in deadly]

    occupied = {agent.position for agent in moved}
    kill_positions = [p for p in kill_positions if p not in occupied]

    # 4. reproduction at the far edge
    if len(agents) < params.max_agents:
        retired = set()
        for parent in list(agents):
            if len(agents) >= params.max_agents:
                break
            if parent.reached_goal():
                agents.append(parent.mutate(rng))
                if params.parent_fate is ParentFate.REMOVE:
                    retired.add(parent.id)
        if retired:
            agents = [agent for agent in agents if agent.id not in retired]

    # 5. population floor
    respawn_agent = _most_evolved([*agents, state.respawn_agent])
    while len(agents) < params.min_agents:
        if respawn_agent is not None:
            agents.append(respawn_agent.mutate(rng))
        else:
            agents.append(init_agent(params, rng))

    # 6-7. metrics, difficulty and the new board
    tick    = state.tick + 1
    board   = board.set_positions(board_markers(kill_positions, agents, board.grid_width))
    entry   = history_entry(tick, agents, len(kill_positions), params)
    history = (state.history + (entry,))[-max(FAST_SAMPLE_DURATION, slow_sample_rate(tick)):]
    metrics = sample_metrics(state.metrics or empty_metrics(), history, tick)

    return FrameState(
        agents=tuple(agents),
        board=board,
        killers_per_move=next_killers_per_move(history, params),
        tick=tick,
        history=history,
        metrics=metrics,
        respawn_agent=respawn_agent,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Controller
# ──────────────────────────────────────────────────────────────────────────────

class Simulation:
    """
    Main simulation controller: owns the random source and the current
    FrameState, and drives ticks.
    """

    def __init__(
        self,
        params:           SimulationParams = None,
        seed:             int  = None,
        on_tick_callback  = None,    # called after every tick with the new state
        print_every:      int  = 0,  # 0 disables printed progress
    ):
        self.params           = params or SimulationParams()
        self.seed             = seed
        self.rng              = np.random.default_rng(seed)
        self.on_tick_callback = on_tick_callback
        self.print_every      = print_every
        self.state            = init_frame_state(self.params, self.rng)

    # ──────────────────────────────────────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────────────────────────────────────

    @property
    def tick(self) -> int:
        return self.state.tick

    def reset(self):
        self.rng   = np.random.default_rng(self.seed)
        self.state = init_frame_state(self.params, self.rng)

    def step(self, frames: int = 1) -> FrameState:
        """Run `frames` ticks and return the resulting state."""
        for _ in range(frames):
            self.state = simulation_step(self.state, self.params, self.rng)
            if self.on_tick_callback:
                self.on_tick_callback(self.state)
            if self.print_every and self.state.tick % self.print_every == 0:
                self._print_stats(self.state)
        return self.state

    def run(self, ticks: int) -> FrameState:
        t0 = time.time()
        self.step(ticks)
        if self.print_every:
            elapsed = time.time() - t0
            print(f"\n=== {ticks} ticks in {elapsed:.1f}s ===")
        return self.state

    def best_agent(self) -> Agent:
        """Agent with the most forward moves (first one on ties)."""
        best = None
        for agent in self.state.agents:
            if best is None or agent.moves > best.moves:
                best = agent
        return best

    def _print_stats(self, state: FrameState):
        entry = state.history[-1]
        print(
            f"Tick {state.tick:>7}  |  "
            f"population {entry['population']:>4}  |  "
            f"killers/move {state.killers_per_move:>5.2f}  |  "
            f"lineage {entry['lineage_min']:>4}–{entry['lineage_max']:<4}  |  "
            f"complexity {entry['complexity_min']:>3}–{entry['complexity_max']:<3}"
        )
