"""Occupancy grids, inflated cost maps and the collision checks made on them."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from adaptrrt.types import Position

OCCUPIED_THRESHOLD = 65
FREE_THRESHOLD = 25
OCCUPIED = 100


@dataclass
class OccupancyGrid:
    """A map as received: row-major cell values with size, resolution and origin."""

    width: int
    height: int
    resolution: float
    data: Sequence[int]
    origin: Position = field(default_factory=Position)

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError("grid dimensions must not be negative")
        if len(self.data) != self.width * self.height:
            raise ValueError(
                f"grid data holds {len(self.data)} cells, "
                f"expected {self.width * self.height}"
            )

    def rows(self) -> list[list[int]]:
        """The cells as a list of rows, row 0 first."""
        data = list(self.data)
        return [
            data[row * self.width:(row + 1) * self.width]
            for row in range(self.height)
        ]


class CostMap:
    """A grid of occupancy values indexed ``cells[y][x]``, placed in the world."""

    def __init__(
        self,
        cells: Iterable[Iterable[int]],
        resolution: float,
        origin: Optional[Position] = None,
    ) -> None:
        if resolution <= 0:
            raise ValueError("resolution must be positive")
        rows = [list(row) for row in cells]
        if len({len(row) for row in rows}) > 1:
            raise ValueError("all rows of a cost map must have the same length")
        self.cells: list[list[int]] = rows
        self.resolution = float(resolution)
        self.origin = origin if origin is not None else Position()

    @property
    def width(self) -> int:
        return len(self.cells[0]) if self.cells else 0

    @property
    def height(self) -> int:
        return len(self.cells)

    def world_to_grid(self, pos: Position) -> tuple[int, int]:
        """Cell indices of a world position, truncated toward zero."""
        return (
            int((pos.x - self.origin.x) / self.resolution),
            int((pos.y - self.origin.y) / self.resolution),
        )

    def grid_to_world(self, cell: tuple[int, int]) -> Position:
        x, y = cell
        return Position(
            self.origin.x + x * self.resolution,
            self.origin.y + y * self.resolution,
        )

    def _in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def is_valid_position(self, pos: Position) -> bool:
        """Whether ``pos`` lies on the map in a cell below the occupied threshold."""
        x, y = self.world_to_grid(pos)
        if not self._in_bounds(x, y):
            return False
        return self.cells[y][x] < OCCUPIED_THRESHOLD

    def is_valid_line(self, start: Position, end: Position) -> bool:
        """Whether every sample along the segment, half a cell apart, is valid."""
        distance = start.distance_to(end)
        num_checks = int(distance / (self.resolution * 0.5)) + 1
        delta = end - start
        return all(
            self.is_valid_position(start + delta * (i / num_checks))
            for i in range(num_checks + 1)
        )

    def _copy(self) -> CostMap:
        return CostMap(self.cells, self.resolution, self.origin)

    def _stamp_disc(self, center_x: int, center_y: int, radius: float) -> None:
        reach = int(radius / self.resolution) + 1
        for dy in range(-reach, reach + 1):
            for dx in range(-reach, reach + 1):
                x = center_x + dx
                y = center_y + dy
                if not self._in_bounds(x, y):
                    continue
                if math.sqrt(dx * dx + dy * dy) * self.resolution <= radius:
                    self.cells[y][x] = OCCUPIED

    def inflate_walls(self, clearance: float) -> CostMap:
        """A new map with every occupied cell grown by ``clearance`` metres."""
        occupied = [
            (x, y)
            for y, row in enumerate(self.cells)
            for x, value in enumerate(row)
            if value >= OCCUPIED_THRESHOLD
        ]
        inflated = self._copy()
        for x, y in occupied:
            inflated._stamp_disc(x, y, clearance)
        return inflated

    def with_obstacles(
        self, obstacles: Iterable[tuple[Position, float]], clearance: float
    ) -> CostMap:
        """A new map with each (centre, radius) obstacle marked, grown by ``clearance``."""
        result = self._copy()
        for center, radius in obstacles:
            x, y = self.world_to_grid(center)
            result._stamp_disc(x, y, radius + clearance)
        return result

    def random_position(self, rng: random.Random) -> Position:
        """A uniformly drawn world position within the map's extent."""
        x = self.origin.x + rng.random() * self.width * self.resolution
        y = self.origin.y + rng.random() * self.height * self.resolution
        return Position(x, y)

    def to_flat(self) -> list[int]:
        """The cells in row-major order."""
        return [value for row in self.cells for value in row]


def steer(from_pos: Position, to_pos: Position, step_size: float) -> Position:
    """Move from ``from_pos`` toward ``to_pos`` by at most ``step_size``."""
    distance = from_pos.distance_to(to_pos)
    if distance <= step_size:
        return to_pos
    return from_pos + (to_pos - from_pos) * (step_size / distance)