"""Sampling-based path planning (RRT / RRT*) on an inflated occupancy grid."""

from __future__ import annotations

import dataclasses
import random
import time
from typing import Iterable, Optional

from adaptrrt import repair
from adaptrrt.grid import CostMap, OccupancyGrid, steer
from adaptrrt.types import (
    CollisionEdge,
    DynamicObstacleHandlingResult,
    Path,
    Position,
    RRTConfig,
    RRTNode,
    RRTStatistics,
    SamplingComplementResult,
)

Obstacle = tuple[Position, float]

_LATE_GOAL_BIAS_CAP = 0.7
_GOAL_CONNECT_PERIOD = 50
_GOAL_CONNECT_AFTER = 100
_GOAL_CONNECT_STEPS = 3


class RRTPathPlanner:
    """Plans paths with RRT or RRT* over a map whose walls are grown by a clearance."""

    def __init__(
        self,
        grid: OccupancyGrid,
        resolution: float,
        origin: Position,
        wall_clearance_distance: float,
        config: Optional[RRTConfig] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._grid = CostMap(grid.rows(), resolution, origin)
        self._wall_clearance = wall_clearance_distance
        self._config = dataclasses.replace(config) if config is not None else RRTConfig()
        self._rng = rng if rng is not None else random.Random()
        self._inflated = self._grid.inflate_walls(wall_clearance_distance)
        self._tree: list[RRTNode] = []
        self._statistics = RRTStatistics()

    # Planning

    def plan_path(self, start_pos: Position, goal_pos: Position) -> Optional[Path]:
        """Plan on the wall-inflated map; ``None`` if no path was found."""
        return self._run_rrt(start_pos, goal_pos, self._inflated)

    def plan_path_with_dynamic_obstacles(
        self,
        start_pos: Position,
        goal_pos: Position,
        dynamic_obstacles: Iterable[Obstacle],
        static_obstacles: Iterable[Obstacle] = (),
    ) -> Optional[Path]:
        """Plan on the inflated map with the given disc obstacles stamped in as well."""
        obstacles = [*dynamic_obstacles, *static_obstacles]
        temporary = self._inflated.with_obstacles(obstacles, self._wall_clearance)
        return self._run_rrt(start_pos, goal_pos, temporary)

    # Map queries

    def world_to_grid(self, world_pos: Position) -> tuple[int, int]:
        return self._grid.world_to_grid(world_pos)

    def grid_to_world(self, grid_pos: tuple[int, int]) -> Position:
        return self._grid.grid_to_world(grid_pos)

    def is_valid_position(self, pos: Position, costmap: Optional[CostMap] = None) -> bool:
        """Check ``pos`` against ``costmap``, or the inflated map when none is given."""
        return (costmap if costmap is not None else self._inflated).is_valid_position(pos)

    def is_valid_line(
        self, start: Position, end: Position, costmap: Optional[CostMap] = None
    ) -> bool:
        """Check a segment against ``costmap``, or the inflated map when none is given."""
        return (costmap if costmap is not None else self._inflated).is_valid_line(start, end)

    @property
    def inflated_grid(self) -> CostMap:
        return self._inflated

    @property
    def statistics(self) -> RRTStatistics:
        return self._statistics

    def update_config(self, new_config: RRTConfig) -> None:
        self._config = dataclasses.replace(new_config)

    # Tree repair after obstacles appear

    def identify_collision_edges(
        self, dynamic_obstacles: Iterable[Obstacle]
    ) -> list[CollisionEdge]:
        return repair.identify_collision_edges(self._tree, dynamic_obstacles)

    def invalidate_collision_edges_and_children(
        self, dynamic_obstacles: Iterable[Obstacle]
    ) -> list[RRTNode]:
        return repair.invalidate_collision_edges_and_children(self._tree, dynamic_obstacles)

    def reconnect_isolated_subtrees(self) -> int:
        return repair.reconnect_isolated_subtrees(
            self._tree, self._inflated, self._config.rewire_radius
        )

    def complement_with_new_sampling(self) -> SamplingComplementResult:
        return repair.complement_with_new_sampling(
            self._tree, self._inflated, self._config.step_size, self._rng
        )

    def handle_dynamic_obstacles(
        self, dynamic_obstacles: Iterable[Obstacle]
    ) -> DynamicObstacleHandlingResult:
        return repair.handle_dynamic_obstacles(
            self._tree, dynamic_obstacles, self._inflated, self._config, self._rng
        )

    # Inspection

    def tree_snapshot(self) -> list[RRTNode]:
        """The valid nodes of the current tree, in insertion order."""
        return [node for node in self._tree if node is not None and node.is_valid]

    def verify_tree_consistency(self) -> bool:
        return repair.verify_tree_consistency(self._tree)

    def verify_path_collision_free(self, path: Path, obstacles: Iterable[Obstacle]) -> bool:
        return repair.verify_path_collision_free(path, obstacles)

    def verify_path_smoothness(self, path: Path) -> bool:
        return repair.verify_path_smoothness(path, self._config.curvature_threshold)

    # Internals

    def _run_rrt(
        self, start_pos: Position, goal_pos: Position, costmap: CostMap
    ) -> Optional[Path]:
        started = time.perf_counter()
        config = self._config
        self._statistics = RRTStatistics()

        if not costmap.is_valid_position(start_pos) or not costmap.is_valid_position(goal_pos):
            return None

        self._tree = [RRTNode(start_pos, None, 0.0, 0)]
        goal_node: Optional[RRTNode] = None

        for iteration in range(config.max_iterations):
            goal_bias = config.goal_bias
            if iteration > config.max_iterations // 2:
                goal_bias = min(_LATE_GOAL_BIAS_CAP, config.goal_bias * 2.0)

            if self._rng.random() < goal_bias:
                sample = goal_pos
            else:
                sample = costmap.random_position(self._rng)

            nearest = min(self._tree, key=lambda node: node.position.distance_to(sample))
            new_pos = steer(nearest.position, sample, config.step_size)

            if not costmap.is_valid_position(new_pos) or not costmap.is_valid_line(
                nearest.position, new_pos
            ):
                continue

            new_cost = nearest.cost + nearest.position.distance_to(new_pos)
            new_node = RRTNode(new_pos, nearest, new_cost, len(self._tree))

            if config.enable_rrt_star:
                near_nodes = [
                    node
                    for node in self._tree
                    if node.position.distance_to(new_pos) <= config.rewire_radius
                ]
                for near in near_nodes:
                    potential = near.cost + near.position.distance_to(new_pos)
                    if potential < new_node.cost and costmap.is_valid_line(
                        near.position, new_pos
                    ):
                        new_node.parent = near
                        new_node.cost = potential
                self._tree.append(new_node)
                self._rewire(new_node, near_nodes, costmap)
            else:
                self._tree.append(new_node)

            if new_pos.distance_to(goal_pos) <= config.goal_tolerance:
                goal_node = new_node
                self._statistics.goal_found_iteration = iteration
                break

            if (
                iteration % _GOAL_CONNECT_PERIOD == 0
                and iteration > _GOAL_CONNECT_AFTER
                and costmap.is_valid_line(new_pos, goal_pos)
                and new_pos.distance_to(goal_pos) <= config.step_size * _GOAL_CONNECT_STEPS
            ):
                goal_node = RRTNode(
                    goal_pos,
                    new_node,
                    new_node.cost + new_pos.distance_to(goal_pos),
                    len(self._tree),
                )
                self._tree.append(goal_node)
                self._statistics.goal_found_iteration = iteration
                break

        self._statistics.computation_time_ms = float(
            int((time.perf_counter() - started) * 1000)
        )
        self._statistics.nodes_generated = len(self._tree)

        if goal_node is None:
            return None

        path = self._reconstruct_path(goal_node)
        self._statistics.path_length = path.total_cost

        if config.enable_path_smoothing:
            path = self._iterative_smooth_path(path, costmap)
            path = self._curvature_based_smoothing(path, costmap)

        return self._adjust_path_spacing(path)

    @staticmethod
    def _rewire(new_node: RRTNode, near_nodes: list[RRTNode], costmap: CostMap) -> None:
        for near in near_nodes:
            cost = new_node.cost + new_node.position.distance_to(near.position)
            if cost < near.cost and costmap.is_valid_line(new_node.position, near.position):
                near.parent = new_node
                near.cost = cost

    @staticmethod
    def _reconstruct_path(goal_node: RRTNode) -> Path:
        chain: list[Position] = []
        current: Optional[RRTNode] = goal_node
        while current is not None:
            chain.append(current.position)
            current = current.parent
        chain.reverse()

        path = Path()
        previous: Optional[Position] = None
        for position in chain:
            path.add_point(position, 0.0 if previous is None else previous.distance_to(position))
            previous = position
        return path

    def _iterative_smooth_path(self, path: Path, costmap: CostMap) -> Path:
        if len(path.points) <= 2:
            return path
        weight = self._config.smoothing_weight
        smoothed = path
        for _ in range(self._config.smoothing_iterations):
            points = [point.position for point in smoothed.points]
            result = Path()
            result.add_point(points[0], 0.0)
            for prev, curr, nxt in zip(points, points[1:], points[2:]):
                candidate = Position(
                    curr.x + weight * ((prev.x + nxt.x) / 2.0 - curr.x),
                    curr.y + weight * ((prev.y + nxt.y) / 2.0 - curr.y),
                )
                if (
                    costmap.is_valid_position(candidate)
                    and costmap.is_valid_line(prev, candidate)
                    and costmap.is_valid_line(candidate, nxt)
                ):
                    result.add_point(candidate, prev.distance_to(candidate))
                else:
                    result.add_point(curr, prev.distance_to(curr))
            last = points[-1]
            result.add_point(last, result.points[-1].position.distance_to(last))
            smoothed = result
        return smoothed

    def _curvature_based_smoothing(self, path: Path, costmap: CostMap) -> Path:
        if len(path.points) <= 3:
            return path
        threshold = self._config.curvature_threshold
        weight = self._config.smoothing_weight
        points = [point.position for point in path.points]

        result = Path()
        result.add_point(points[0], 0.0)
        for index in range(1, len(points) - 1):
            prev, curr, nxt = points[index - 1], points[index], points[index + 1]
            tail = result.points[-1].position
            curvature = repair.calculate_curvature(path, index)
            if curvature > threshold:
                if threshold == 0:
                    factor = 1.0
                else:
                    factor = min(1.0, curvature / threshold * weight)
                candidate = Position(
                    curr.x + factor * ((prev.x + nxt.x) / 2.0 - curr.x),
                    curr.y + factor * ((prev.y + nxt.y) / 2.0 - curr.y),
                )
                if costmap.is_valid_position(candidate) and costmap.is_valid_line(
                    tail, candidate
                ):
                    result.add_point(candidate, tail.distance_to(candidate))
                else:
                    result.add_point(curr, tail.distance_to(curr))
            else:
                result.add_point(curr, tail.distance_to(curr))

        last = points[-1]
        result.add_point(last, result.points[-1].position.distance_to(last))
        return result

    def _adjust_path_spacing(self, path: Path) -> Path:
        if len(path.points) <= 2:
            return path
        points = [point.position for point in path.points]
        last_index = len(points) - 1

        result = Path()
        result.add_point(points[0], 0.0)
        accumulated = 0.0
        for index, (prev, curr) in enumerate(zip(points, points[1:]), start=1):
            accumulated += prev.distance_to(curr)
            if accumulated >= self._config.path_point_min_distance or index == last_index:
                result.add_point(curr, accumulated)
                accumulated = 0.0
        return result