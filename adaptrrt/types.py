"""Core value types shared by the planner: positions, tree nodes, paths and results."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

_POSITION_TOLERANCE = 1e-6


@dataclass(frozen=True, eq=False)
class Position:
    """A point in the plane, in world coordinates (metres)."""

    x: float = 0.0
    y: float = 0.0

    def distance_to(self, other: Position) -> float:
        dx = self.x - other.x
        dy = self.y - other.y
        return math.sqrt(dx * dx + dy * dy)

    def __add__(self, other: Position) -> Position:
        return Position(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Position) -> Position:
        return Position(self.x - other.x, self.y - other.y)

    def __mul__(self, scalar: float) -> Position:
        return Position(self.x * scalar, self.y * scalar)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Position):
            return NotImplemented
        return (
            abs(self.x - other.x) < _POSITION_TOLERANCE
            and abs(self.y - other.y) < _POSITION_TOLERANCE
        )


@dataclass(eq=False)
class RRTNode:
    """A node of the exploration tree. Nodes compare by identity."""

    position: Position
    parent: Optional[RRTNode] = field(default=None, repr=False)
    cost: float = 0.0
    id: int = 0
    children: list[RRTNode] = field(default_factory=list, repr=False)
    is_valid: bool = True

    def add_child(self, child: RRTNode) -> None:
        self.children.append(child)

    def remove_child(self, child: RRTNode) -> None:
        """Remove the first occurrence of ``child``; do nothing if it is absent."""
        for index, existing in enumerate(self.children):
            if existing is child:
                del self.children[index]
                return


@dataclass
class PathPoint:
    """One point of a path and the cost of the segment leading to it."""

    position: Position
    cost: float = 0.0


@dataclass
class Path:
    """An ordered list of path points with their accumulated cost."""

    points: list[PathPoint] = field(default_factory=list)
    total_cost: float = 0.0

    def add_point(self, position: Position, cost: float = 0.0) -> None:
        self.points.append(PathPoint(position, cost))
        self.total_cost += cost

    def clear(self) -> None:
        self.points.clear()
        self.total_cost = 0.0

    def __len__(self) -> int:
        return len(self.points)

    def __getitem__(self, index: int) -> PathPoint:
        return self.points[index]

    def __iter__(self):
        return iter(self.points)


@dataclass
class RRTConfig:
    """Tuning parameters of the planner."""

    step_size: float = 0.5
    goal_tolerance: float = 0.2
    goal_bias: float = 0.1
    rewire_radius: float = 1.0
    max_iterations: int = 1000
    max_distance_to_obstacle: float = 0.3
    enable_rrt_star: bool = True
    path_point_min_distance: float = 0.1
    enable_path_smoothing: bool = True
    smoothing_iterations: int = 5
    smoothing_weight: float = 0.3
    curvature_threshold: float = 0.5


@dataclass
class CircularObstacle:
    """A disc-shaped obstacle."""

    center: Position = field(default_factory=Position)
    radius: float = 0.0

    def is_point_inside(self, point: Position) -> bool:
        return self.center.distance_to(point) <= self.radius

    def intersects_line(self, start: Position, end: Position) -> bool:
        """Whether the segment from ``start`` to ``end`` touches the disc."""
        line_vec = end - start
        start_to_center = self.center - start
        line_length_sq = line_vec.x * line_vec.x + line_vec.y * line_vec.y
        if line_length_sq < 1e-6:
            return self.is_point_inside(start)
        projection = (
            start_to_center.x * line_vec.x + start_to_center.y * line_vec.y
        ) / line_length_sq
        t = max(0.0, min(1.0, projection))
        closest = start + line_vec * t
        return self.center.distance_to(closest) <= self.radius


@dataclass
class RRTStatistics:
    """Figures gathered during the most recent planning run."""

    nodes_generated: int = 0
    goal_found_iteration: int = -1
    path_length: float = 0.0
    computation_time_ms: float = 0.0


@dataclass
class CollisionEdge:
    """A tree edge that an obstacle blocks."""

    parent_node: RRTNode
    child_node: RRTNode
    collision_point: Position
    collision_distance: float


@dataclass
class DynamicObstacleHandlingResult:
    """Summary of one round of tree repair after new obstacles appeared."""

    success: bool = False
    collision_edges_identified: int = 0
    nodes_invalidated: int = 0
    subtrees_reconnected: int = 0
    new_nodes_sampled: int = 0
    final_path: Optional[Path] = None


@dataclass
class SamplingComplementResult:
    """Outcome of growing the repaired tree with fresh samples."""

    new_nodes_count: int = 0
    sampling_efficiency: float = 0.0
    path_to_goal_found: bool = False
    new_nodes: list[RRTNode] = field(default_factory=list)
    final_path: Optional[Path] = None