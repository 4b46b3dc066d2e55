"""Watching a planned path for obstacles that block it, and stamping them on a map."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from adaptrrt.grid import CostMap
from adaptrrt.types import Path, Position

Obstacle = tuple[Position, float]

_REPLAN_RADIUS_MARGIN = 1.1


@dataclass(frozen=True)
class Marker:
    """An obstacle as reported by a detector: a box centred at ``position``."""

    position: Position
    scale_x: float = 0.0
    scale_y: float = 0.0
    added: bool = True

    @property
    def footprint_radius(self) -> float:
        """Half of the larger side of the obstacle's box."""
        return max(self.scale_x, self.scale_y) / 2.0


def interpolate_path(path: Path, resolution: float) -> list[Position]:
    """The points of ``path`` with extra points so no gap exceeds ``resolution``."""
    positions = [point.position for point in path.points]
    if not positions:
        return []
    dense = [positions[0]]
    for prev, curr in zip(positions, positions[1:]):
        distance = prev.distance_to(curr)
        if distance > resolution:
            divisions = math.ceil(distance / resolution)
            for step in range(1, divisions):
                t = step / divisions
                dense.append(
                    Position(
                        prev.x + t * (curr.x - prev.x),
                        prev.y + t * (curr.y - prev.y),
                    )
                )
        dense.append(curr)
    return dense


def is_obstacle_near_point(point: Position, obstacle: Marker, radius: float) -> bool:
    """Whether ``obstacle`` lies within ``radius`` of ``point``, counting its size."""
    distance = point.distance_to(obstacle.position)
    return distance <= radius + obstacle.footprint_radius


def is_path_blocked(
    path: Path,
    obstacles: Iterable[Marker],
    check_radius: float,
    resolution: float,
) -> bool:
    """Whether any obstacle comes within ``check_radius`` of the densified path."""
    if not path.points:
        return False
    markers = list(obstacles)
    return any(
        is_obstacle_near_point(point, marker, check_radius)
        for point in interpolate_path(path, resolution)
        for marker in markers
    )


def add_obstacles_to_grid(
    obstacles: Iterable[Marker],
    cells: Sequence[Sequence[int]],
    resolution: float,
    origin: Optional[Position],
    clearance: float,
) -> list[list[int]]:
    """A copy of ``cells`` with every obstacle, grown by ``clearance``, marked occupied."""
    costmap = CostMap(cells, resolution, origin)
    discs = [(marker.position, marker.footprint_radius) for marker in obstacles]
    return costmap.with_obstacles(discs, clearance).cells


def to_circular_obstacles(markers: Iterable[Marker]) -> list[Obstacle]:
    """Discs covering each marker's box with a small safety margin, for replanning."""
    return [
        (
            Position(marker.position.x, marker.position.y),
            math.hypot(marker.scale_x, marker.scale_y) / 2.0 * _REPLAN_RADIUS_MARGIN,
        )
        for marker in markers
    ]


class BlockageMonitor:
    """Tracks how long a path has been blocked and says when to replan.

    When :meth:`update` reports that replanning is due, the monitor stays in the
    blocked state until :meth:`reset` is called, so the caller can still tell
    during replanning that the path was blocked.
    """

    def __init__(self) -> None:
        self.blocked = False
        self.since: Optional[float] = None

    def update(self, blocking: bool, now: float, timeout: float) -> bool:
        """Record one observation at time ``now`` (seconds); True when replanning is due."""
        if not blocking:
            self.reset()
            return False
        if not self.blocked or self.since is None:
            self.blocked = True
            self.since = now
            return False
        return now - self.since >= timeout

    def reset(self) -> None:
        self.blocked = False
        self.since = None