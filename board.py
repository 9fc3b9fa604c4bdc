"""
Board state for NeuroEvo Grid.

A BoardState is an immutable snapshot of the grid: its size plus a list of
typed, coloured markers (agents, killers, prizes). Each simulation tick
builds a fresh BoardState from the previous one; nothing is patched in
place. Moves wrap around both edges (the board is a torus).
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property

from config import COLORS


class Direction(str, Enum):
    UP    = "up"
    DOWN  = "down"
    LEFT  = "left"
    RIGHT = "right"


# (dx, dy) per direction; y grows downwards as on screen
STEPS = {
    Direction.UP:    (0, -1),
    Direction.DOWN:  (0, 1),
    Direction.LEFT:  (-1, 0),
    Direction.RIGHT: (1, 0),
}


@dataclass(frozen=True)
class Marker:
    position: tuple
    type:     str
    color:    str

    def to_dict(self) -> dict:
        return {
            "position": list(self.position),
            "type":     self.type,
            "color":    self.color,
        }


@dataclass(frozen=True)
class BoardState:
    grid_width:  int
    grid_height: int
    cell_size:   int
    markers:     tuple = field(default=())

    # ──────────────────────────────────────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────────────────────────────────────

    @cached_property
    def _rows(self) -> dict:
        """type → row → sorted x coordinates (built once per snapshot)."""
        index = {}
        for marker in self.markers:
            x, y = marker.position
            index.setdefault(marker.type, {}).setdefault(y, []).append(x)
        for rows in index.values():
            for xs in rows.values():
                xs.sort()
        return index

    def get_positions(self, marker_type: str) -> list:
        return [m.position for m in self.markers if m.type == marker_type]

    def row_positions(self, marker_type: str, row: int) -> list:
        """x coordinates of all `marker_type` markers on `row`."""
        return self._rows.get(marker_type, {}).get(row, [])

    def is_on_board(self, position) -> bool:
        x, y = position
        return 0 <= x < self.grid_width and 0 <= y < self.grid_height

    def calculate_move(self, position, direction: Direction) -> tuple:
        """Destination one cell away in `direction`, wrapping at the edges."""
        dx, dy = STEPS[Direction(direction)]
        x, y = position
        return ((x + dx) % self.grid_width, (y + dy) % self.grid_height)

    # ──────────────────────────────────────────────────────────────────────────
    # Copies
    # ──────────────────────────────────────────────────────────────────────────

    def set_positions(self, markers) -> "BoardState":
        return BoardState(self.grid_width, self.grid_height, self.cell_size,
                          tuple(markers))

    def set_grid(self, grid_width: int, grid_height: int, cell_size: int) -> "BoardState":
        return BoardState(grid_width, grid_height, cell_size, self.markers)

    def to_dict(self) -> dict:
        return {
            "grid_width":  self.grid_width,
            "grid_height": self.grid_height,
            "cell_size":   self.cell_size,
            "positions":   [marker.to_dict() for marker in self.markers],
        }


# ──────────────────────────────────────────────────────────────────────────────
# Colours
# ──────────────────────────────────────────────────────────────────────────────

def _hex_to_rgb(value: str) -> tuple:
    value = value.lstrip("#")
    return tuple(int(value[i:i + 2], 16) for i in (0, 2, 4))


def agent_color(moves: int, grid_width: int, laps: int = 4) -> str:
    """
    Blend from blue to green as an agent completes laps of the board, so
    long-lived agents stand out. Saturates after `laps` laps.
    """
    progress = min(1.0, max(0.0, moves / max(1, grid_width * laps)))
    start = _hex_to_rgb(COLORS["blue60"])
    end   = _hex_to_rgb(COLORS["green60"])
    r, g, b = (round(s + (e - s) * progress) for s, e in zip(start, end))
    return f"#{r:02x}{g:02x}{b:02x}"
