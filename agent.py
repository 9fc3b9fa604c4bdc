"""
Agent for NeuroEvo Grid.

Each agent has:
  - a Network genome (3 inputs → 3 outputs to start with)
  - a position on the grid and a fixed forward direction (left or right)
  - moves   : forward steps taken so far (the fitness proxy)
  - lineage : how many mutations separate it from its first ancestor

Every tick the agent:
  1. Senses the distance to the nearest threat on the rows above,
     level with, and below itself
  2. Runs its network
  3. Takes the action with the strongest output (up, down or forward)

Agents are values: move() and mutate() return new agents.
"""

import itertools
from dataclasses import dataclass, field, replace

import numpy as np

from board import BoardState, Direction
from config import (FORWARD_OUTPUT_INDEX, KILL_MARKER, LEARNING_RATE,
                    NUM_INPUTS, NUM_OUTPUTS)
from mutation import mutate as mutate_network
from network import Network

_agent_ids = itertools.count(1)


def next_agent_id() -> str:
    return f"agent-{next(_agent_ids)}"


def init_network(rng=None, learning_rate: float = LEARNING_RATE) -> Network:
    """Fresh genome, biased so a newborn agent moves forward."""
    return Network.create(NUM_INPUTS, NUM_OUTPUTS, learning_rate,
                          init_output_bias=FORWARD_OUTPUT_INDEX, rng=rng)


def spawn_position(direction: Direction, grid_width: int, grid_height: int,
                   rng=None) -> tuple:
    """Left edge for right-movers, right edge for left-movers, random row."""
    if rng is None:
        rng = np.random.default_rng()
    x = grid_width - 1 if direction is Direction.LEFT else 0
    return (x, int(rng.integers(0, grid_height)))


@dataclass(frozen=True)
class Agent:
    network:     Network
    grid_width:  int
    grid_height: int
    position:    tuple
    direction:   Direction = Direction.RIGHT
    threat_type: str = KILL_MARKER
    moves:       int = 0
    lineage:     int = 0
    id:          str = field(default_factory=next_agent_id)

    @classmethod
    def spawn(cls, grid_width: int, grid_height: int, direction: Direction = None,
              threat_type: str = KILL_MARKER, network: Network = None,
              position: tuple = None, rng=None) -> "Agent":
        """New lineage-0 agent; picks a random direction if none is given."""
        if rng is None:
            rng = np.random.default_rng()
        if direction is None:
            direction = (Direction.LEFT, Direction.RIGHT)[int(rng.integers(0, 2))]
        if network is None:
            network = init_network(rng)
        if position is None:
            position = spawn_position(direction, grid_width, grid_height, rng)
        return cls(network, grid_width, grid_height, tuple(position),
                   direction, threat_type)

    # ──────────────────────────────────────────────────────────────────────────
    # Sensing
    # ──────────────────────────────────────────────────────────────────────────

    def threat_distance(self, board: BoardState, row_offset: int) -> float:
        """
        Cells to the nearest threat ahead on the row `row_offset` away,
        wrapping around the board. A row with no threat reads as the full
        board width.
        """
        x, y = self.position
        row  = (y + row_offset) % board.grid_height
        best = board.grid_width
        for threat_x in board.row_positions(self.threat_type, row):
            distance = threat_x - x
            if self.direction is Direction.LEFT:
                distance = -distance
            if distance < 0:
                distance += board.grid_width
            if distance < best:
                best = distance
        return float(best)

    def sense(self, board: BoardState) -> list:
        return [
            self.threat_distance(board, -1),
            self.threat_distance(board, 0),
            self.threat_distance(board, 1),
        ]

    # ──────────────────────────────────────────────────────────────────────────
    # Acting
    # ──────────────────────────────────────────────────────────────────────────

    def actions(self) -> tuple:
        """Output index → direction of travel."""
        return (Direction.UP, Direction.DOWN, self.direction)

    def decide(self, board: BoardState) -> Direction:
        inputs  = self.sense(board)
        outputs = self.network.compute(inputs)
        actions = self.actions()
        if len(outputs) != len(actions):
            raise ValueError(
                f"Expected {len(actions)} outputs, got {len(outputs)}")
        # first maximum wins ties
        return actions[int(np.argmax(outputs))]

    def move(self, board: BoardState) -> "Agent":
        """Sense → think → act against `board`; returns the moved agent."""
        direction = self.decide(board)
        moves = self.moves + 1 if direction is self.direction else self.moves
        return replace(self,
                       position=board.calculate_move(self.position, direction),
                       moves=moves)

    def reached_goal(self) -> bool:
        """True on the far edge of the board for this agent's direction."""
        if self.direction is Direction.LEFT:
            return self.position[0] <= 0
        return self.position[0] >= self.grid_width - 1

    # ──────────────────────────────────────────────────────────────────────────
    # Reproduction
    # ──────────────────────────────────────────────────────────────────────────

    def mutate(self, rng=None, **overrides) -> "Agent":
        """
        Child with a mutated genome: moves reset, lineage + 1, fresh id,
        same direction, new spawn position.
        """
        if rng is None:
            rng = np.random.default_rng()
        grid_width  = overrides.pop("grid_width", self.grid_width)
        grid_height = overrides.pop("grid_height", self.grid_height)
        child = Agent(
            network=mutate_network(self.network, rng),
            grid_width=grid_width,
            grid_height=grid_height,
            position=spawn_position(self.direction, grid_width, grid_height, rng),
            direction=self.direction,
            threat_type=self.threat_type,
            moves=0,
            lineage=self.lineage + 1,
        )
        return replace(child, **overrides) if overrides else child

    def set_position(self, position) -> "Agent":
        return replace(self, position=tuple(position))

    def reset_history(self) -> "Agent":
        return replace(self, moves=0)

    def to_dict(self, include_network: bool = False) -> dict:
        data = {
            "id":         self.id,
            "position":   list(self.position),
            "direction":  self.direction.value,
            "moves":      self.moves,
            "lineage":    self.lineage,
            "complexity": self.network.complexity,
        }
        if include_network:
            data["network"] = self.network.to_dict()
        return data
