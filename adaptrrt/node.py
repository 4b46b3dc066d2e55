"""A planning node: map, goal and obstacle inputs in, path and map messages out."""

from __future__ import annotations

import argparse
import json
import logging
import random
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from adaptrrt.grid import OccupancyGrid
from adaptrrt.monitor import (
    BlockageMonitor,
    Marker,
    add_obstacles_to_grid,
    is_path_blocked,
    to_circular_obstacles,
)
from adaptrrt.planner import RRTPathPlanner
from adaptrrt.types import Path, Position, RRTConfig

logger = logging.getLogger(__name__)

PATH_TOPIC = "rrt_planned_path"
PATH_VIZ_TOPIC = "rrt_path_viz"
INFLATED_MAP_TOPIC = "rrt_inflated_map"

_PATH_MARKER_HEIGHT = 0.1
_PATH_MARKER_WIDTH = 0.08
_REPLANNED_COLOR = (0.0, 1.0, 0.0, 0.8)
_NORMAL_COLOR = (0.0, 0.0, 1.0, 0.8)

Sink = Callable[[str, Any], None]
RobotLocator = Callable[[str, str], Optional[Position]]


@dataclass
class NodeParameters:
    """Every setting of the node, with its default."""

    wall_clearance_distance: float = 0.3
    global_frame: str = "map"
    base_frame: str = "base_footprint"
    step_size: float = 0.5
    goal_tolerance: float = 0.2
    goal_bias: float = 0.1
    rewire_radius: float = 1.0
    max_iterations: int = 1000
    enable_rrt_star: bool = True
    path_point_min_distance: float = 0.1
    enable_path_smoothing: bool = True
    smoothing_iterations: int = 5
    smoothing_weight: float = 0.3
    curvature_threshold: float = 0.5
    obstacle_blocking_timeout: float = 3.0
    path_obstacle_check_radius: float = 0.5
    path_interpolation_resolution: float = 0.05
    enable_dynamic_replanning: bool = True
    random_seed: Optional[int] = None

    def rrt_config(self) -> RRTConfig:
        return RRTConfig(
            step_size=self.step_size,
            goal_tolerance=self.goal_tolerance,
            goal_bias=self.goal_bias,
            rewire_radius=self.rewire_radius,
            max_iterations=self.max_iterations,
            enable_rrt_star=self.enable_rrt_star,
            path_point_min_distance=self.path_point_min_distance,
            enable_path_smoothing=self.enable_path_smoothing,
            smoothing_iterations=self.smoothing_iterations,
            smoothing_weight=self.smoothing_weight,
            curvature_threshold=self.curvature_threshold,
        )


@dataclass
class PoseArrayMessage:
    """The planned path as a list of planar poses in ``frame_id``."""

    frame_id: str
    poses: list[Position] = field(default_factory=list)


@dataclass
class PathMarker:
    """A line strip drawing the planned path; it replaces the previous one."""

    frame_id: str
    points: list[tuple[float, float, float]] = field(default_factory=list)
    color: tuple[float, float, float, float] = _NORMAL_COLOR
    width: float = _PATH_MARKER_WIDTH
    namespace: str = "rrt_path"
    marker_id: int = 0


@dataclass
class GridMessage:
    """An occupancy grid in row-major order, as published."""

    frame_id: str
    width: int
    height: int
    resolution: float
    origin: Position
    data: list[int] = field(default_factory=list)


def _to_int8(value: int) -> int:
    return ((int(value) + 128) % 256) - 128


class AdaptiveRRTNode:
    """Plans on received maps toward clicked goals and replans when paths stay blocked.

    ``sink(topic, message)`` receives every published message; ``locate_robot``
    returns the robot's position in the global frame, or ``None`` if unknown.
    Either may be left out: messages are then not delivered anywhere, and the
    robot's position is always unknown.
    """

    def __init__(
        self,
        parameters: Optional[NodeParameters] = None,
        sink: Optional[Sink] = None,
        locate_robot: Optional[RobotLocator] = None,
    ) -> None:
        self.parameters = parameters if parameters is not None else NodeParameters()
        self._sink = sink
        self._locate_robot = locate_robot
        self._rng = random.Random(self.parameters.random_seed)
        self.occupancy_grid: Optional[OccupancyGrid] = None
        self.planner: Optional[RRTPathPlanner] = None
        self.start_position: Optional[Position] = None
        self.goal_position: Optional[Position] = None
        self.current_path = Path()
        self.static_obstacles: list[Marker] = []
        self.dynamic_obstacles: list[Marker] = []
        self._blockage = BlockageMonitor()

    # Inputs

    def on_map(self, grid: OccupancyGrid) -> None:
        """Take a new map and rebuild the planner on it."""
        try:
            self.occupancy_grid = grid
            self.planner = RRTPathPlanner(
                grid,
                grid.resolution,
                grid.origin,
                self.parameters.wall_clearance_distance,
                self.parameters.rrt_config(),
                self._rng,
            )
            logger.debug(
                "Map received: %dx%d, resolution: %.3f m/cell",
                grid.width,
                grid.height,
                grid.resolution,
            )
            self.integrated_inflated_map()
        except Exception as error:
            logger.error("Map callback error: %s", error)

    def on_clicked_point(self, x: float, y: float) -> Optional[Path]:
        """Set the goal, take the robot's position as start, and plan."""
        self.goal_position = Position(x, y)
        robot = self._robot_position()
        if robot is not None:
            self.start_position = robot
        else:
            logger.warning("Failed to get robot position, using origin")
            self.start_position = Position(0.0, 0.0)
        return self.plan_path()

    def on_static_obstacles(self, markers: Iterable[Marker]) -> None:
        self.static_obstacles = [marker for marker in markers if marker.added]
        self.integrated_inflated_map()

    def on_dynamic_obstacles(self, markers: Iterable[Marker]) -> None:
        self.dynamic_obstacles = [marker for marker in markers if marker.added]
        self.integrated_inflated_map()

    # Planning

    def plan_path(self) -> Optional[Path]:
        """Plan from the start to the goal; publish and return the path if found."""
        if self.planner is None or self.start_position is None or self.goal_position is None:
            logger.warning("Path planning: missing requirements")
            return None
        started = time.perf_counter()
        path = self.planner.plan_path(self.start_position, self.goal_position)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if path is None:
            logger.warning("RRT path planning failed")
            return None
        self.current_path = path
        stats = self.planner.statistics
        logger.info(
            "RRT path planning - points: %d, nodes: %d, time: %d ms, length: %.2f m",
            len(path),
            stats.nodes_generated,
            elapsed_ms,
            stats.path_length,
        )
        self._publish_path()
        return path

    def replan_path_with_obstacles(self) -> Optional[Path]:
        """Plan again with all known obstacles stamped onto the map."""
        if self.planner is None or self.start_position is None or self.goal_position is None:
            return None
        try:
            robot = self._robot_position()
            if robot is not None:
                self.start_position = robot
            static = to_circular_obstacles(self.static_obstacles)
            dynamic = to_circular_obstacles(self.dynamic_obstacles)
            logger.info(
                "Replanning with %d static and %d dynamic obstacles",
                len(static),
                len(dynamic),
            )
            path = self.planner.plan_path_with_dynamic_obstacles(
                self.start_position, self.goal_position, dynamic, static
            )
        except Exception as error:
            logger.info("Dynamic replanning error: %s", error)
            return None
        if path is None:
            logger.info("Dynamic replanning failed")
            return None
        self.current_path = path
        self._publish_path()
        return path

    def monitor_path_obstacles(self, now: Optional[float] = None) -> bool:
        """Check the current path for obstacles; True if a replan was started."""
        params = self.parameters
        if not params.enable_dynamic_replanning:
            return False
        if not self.current_path.points or self.start_position is None or self.goal_position is None:
            return False
        if now is None:
            now = time.monotonic()
        blocking = is_path_blocked(
            self.current_path,
            [*self.static_obstacles, *self.dynamic_obstacles],
            params.path_obstacle_check_radius,
            params.path_interpolation_resolution,
        )
        if not self._blockage.update(blocking, now, params.obstacle_blocking_timeout):
            return False
        logger.info("Path blocked for too long, replanning")
        self.replan_path_with_obstacles()
        self._blockage.reset()
        return True

    # Outputs

    def integrated_inflated_map(self) -> Optional[GridMessage]:
        """Publish and return the inflated map with every obstacle marked on it."""
        if self.planner is None or self.occupancy_grid is None:
            return None
        grid = self.occupancy_grid
        inflated = self.planner.inflated_grid
        cells = [list(row) for row in inflated.cells]
        if grid.width > 0 and grid.height > 0:
            clearance = self.parameters.wall_clearance_distance
            for markers in (self.static_obstacles, self.dynamic_obstacles):
                cells = add_obstacles_to_grid(
                    markers, cells, grid.resolution, grid.origin, clearance
                )
        message = GridMessage(
            frame_id=self.parameters.global_frame,
            width=grid.width,
            height=grid.height,
            resolution=grid.resolution,
            origin=grid.origin,
            data=[_to_int8(value) for row in cells for value in row],
        )
        self._publish(INFLATED_MAP_TOPIC, message)
        return message

    def path_message(self) -> Optional[PoseArrayMessage]:
        if not self.current_path.points:
            return None
        return PoseArrayMessage(
            frame_id=self.parameters.global_frame,
            poses=[point.position for point in self.current_path],
        )

    def path_visualization(self) -> Optional[PathMarker]:
        """The path as a line strip: green while replanning a blocked path, else blue."""
        if not self.current_path.points:
            return None
        return PathMarker(
            frame_id=self.parameters.global_frame,
            points=[
                (point.position.x, point.position.y, _PATH_MARKER_HEIGHT)
                for point in self.current_path
            ],
            color=_REPLANNED_COLOR if self._blockage.blocked else _NORMAL_COLOR,
        )

    # Internals

    def _robot_position(self) -> Optional[Position]:
        if self._locate_robot is None:
            return None
        return self._locate_robot(self.parameters.global_frame, self.parameters.base_frame)

    def _publish(self, topic: str, message: Any) -> None:
        if self._sink is not None:
            self._sink(topic, message)

    def _publish_path(self) -> None:
        message = self.path_message()
        if message is not None:
            self._publish(PATH_TOPIC, message)
        marker = self.path_visualization()
        if marker is not None:
            self._publish(PATH_VIZ_TOPIC, marker)


def _load_grid(path: str) -> OccupancyGrid:
    with open(path, encoding="utf-8") as handle:
        document = json.load(handle)
    origin = document.get("origin", [0.0, 0.0])
    return OccupancyGrid(
        width=int(document["width"]),
        height=int(document["height"]),
        resolution=float(document["resolution"]),
        data=[int(value) for value in document["data"]],
        origin=Position(float(origin[0]), float(origin[1])),
    )


def main(argv: Optional[list[str]] = None) -> int:
    """Plan one path on a JSON map and print its points, one ``x y`` per line."""
    parser = argparse.ArgumentParser(prog="adaptrrt", description=main.__doc__)
    parser.add_argument("map", help="JSON file with width, height, resolution, origin, data")
    parser.add_argument("goal_x", type=float)
    parser.add_argument("goal_y", type=float)
    parser.add_argument("--start", nargs=2, type=float, metavar=("X", "Y"), default=(0.0, 0.0))
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--wall-clearance", type=float, default=0.3)
    parser.add_argument("--step-size", type=float, default=0.5)
    parser.add_argument("--max-iterations", type=int, default=1000)
    args = parser.parse_args(argv)

    try:
        grid = _load_grid(args.map)
    except (OSError, ValueError, KeyError, TypeError, IndexError) as error:
        print(f"cannot read map: {error}", file=sys.stderr)
        return 1

    parameters = NodeParameters(
        wall_clearance_distance=args.wall_clearance,
        step_size=args.step_size,
        max_iterations=args.max_iterations,
        random_seed=args.seed,
    )
    start = Position(*args.start)
    node = AdaptiveRRTNode(parameters, locate_robot=lambda _global, _base: start)
    node.on_map(grid)
    path = node.on_clicked_point(args.goal_x, args.goal_y)
    if path is None:
        print("no path found", file=sys.stderr)
        return 1
    for point in path:
        print(f"{point.position.x:.3f} {point.position.y:.3f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())