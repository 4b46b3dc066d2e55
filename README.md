# adaptrrt

Sampling-based path planning for mobile robots on 2D occupancy grids.

`adaptrrt` grows an RRT (or RRT\*) tree across an occupancy grid. Before it
samples anything, it inflates the walls by a clearance distance. It turns the
branch that reached the goal into a path, smooths it and spaces its points out.
When obstacles appear on a planned route, it can plan again with those
obstacles marked on the map. It can also repair the tree it grew: it drops the
branches the obstacles cut and reconnects the subtrees left isolated.

## Installation

```
pip install adaptrrt
```

Python 3.10 or newer is required. The package has no runtime dependencies.

## Modules

- `adaptrrt.types`: value types. `Position`, `RRTNode`, `PathPoint`, `Path`,
  `RRTConfig`, `CircularObstacle`, `RRTStatistics`, `CollisionEdge`,
  `DynamicObstacleHandlingResult`, `SamplingComplementResult`.
- `adaptrrt.grid`: `OccupancyGrid`, `CostMap` and `steer`.
- `adaptrrt.planner`: `RRTPathPlanner`.
- `adaptrrt.repair`: tree repair and path checks as plain functions.
- `adaptrrt.monitor`: route watching (`Marker`, `interpolate_path`,
  `is_path_blocked`, `BlockageMonitor`, ...).
- `adaptrrt.node`: `AdaptiveRRTNode`, which ties the above together, and the
  `adaptrrt` command.

## Concepts

- `Position(x, y)`: a point in world coordinates (metres). It supports `+`,
  `-`, scaling with `*` and `distance_to`. Two positions compare equal when
  both coordinates agree to within 1e-6.
- `OccupancyGrid(width, height, resolution, data, origin)`: the input map,
  `data` in row-major order. Its length must equal `width * height`, or
  `ValueError` is raised. Cells at or above 65 count as occupied.
- `CostMap(cells, resolution, origin)`: a grid indexed `cells[y][x]` placed in
  the world. It offers:
  - `world_to_grid` and `grid_to_world` to convert between world positions
    and cells;
  - `is_valid_position`, which is true for a point on the map in a free cell;
  - `is_valid_line`, which samples a segment every half cell;
  - `inflate_walls` and `with_obstacles`, which build inflated copies.
- `RRTConfig`: the planner settings. The defaults are:

  | setting | default |
  |---|---|
  | `step_size` | 0.5 m |
  | `goal_tolerance` | 0.2 m |
  | `goal_bias` | 0.1 |
  | `rewire_radius` | 1.0 m |
  | `max_iterations` | 1000 |
  | `enable_rrt_star` | `True` |
  | `path_point_min_distance` | 0.1 m |
  | `enable_path_smoothing` | `True` |
  | `smoothing_iterations` | 5 |
  | `smoothing_weight` | 0.3 |
  | `curvature_threshold` | 0.5 |

- `Path`: a sequence of `PathPoint`s. Each holds a position and the cost of the
  segment that leads to it. The path also carries its `total_cost`. It supports
  `len()`, indexing and iteration.
- `CircularObstacle(center, radius)`: answers `is_point_inside` and
  `intersects_line`.

## Planning a path

```python
import random

from adaptrrt.grid import OccupancyGrid
from adaptrrt.planner import RRTPathPlanner
from adaptrrt.types import Position, RRTConfig

grid = OccupancyGrid(width=100, height=100, resolution=0.1, data=[0] * 10000)
planner = RRTPathPlanner(
    grid,
    0.1,                   # resolution, metres per cell
    Position(0.0, 0.0),    # world position of cell (0, 0)
    0.3,                   # wall clearance, metres
    RRTConfig(),
    random.Random(42),     # seed it for repeatable runs
)

path = planner.plan_path(Position(1.0, 1.0), Position(8.0, 8.0))
if path is None:
    print("no path found")
else:
    for point in path:
        print(point.position.x, point.position.y)
    print("nodes:", planner.statistics.nodes_generated)
```

`plan_path` returns `None` in three cases:

- the start is blocked;
- the goal is blocked;
- the tree does not reach the goal within `max_iterations`.

After a run, `planner.statistics` holds:

- the number of nodes;
- the iteration at which the goal was reached;
- the raw path length before smoothing;
- the time taken.

## Planning around obstacles

Obstacles are `(Position, radius)` pairs. The planner stamps each one on a
temporary copy of the inflated map, grown by the same wall clearance, and plans
on that copy:

```python
path = planner.plan_path_with_dynamic_obstacles(
    Position(1.0, 1.0), Position(8.0, 8.0), [(Position(4.0, 4.0), 0.5)], []
)
```

## Repairing the tree

The planner keeps the tree from its last run. `handle_dynamic_obstacles`
repairs that tree in four steps:

1. It finds the tree edges that touch an obstacle.
2. It invalidates the child node of each such edge and everything below it.
3. It reattaches each isolated subtree to the nearest valid node that is
   within `rewire_radius` and has a free line to it.
4. It makes 100 sampling attempts and adds a node for each one that succeeds.

```python
result = planner.handle_dynamic_obstacles([(Position(4.0, 4.0), 0.6)])
print(result.success, result.collision_edges_identified,
      result.nodes_invalidated, result.subtrees_reconnected,
      result.new_nodes_sampled)
```

Each step is also available on its own:

- `identify_collision_edges`
- `invalidate_collision_edges_and_children`
- `reconnect_isolated_subtrees`
- `complement_with_new_sampling`

The same operations exist as functions in `adaptrrt.repair`, which take the
tree as a list of `RRTNode`s.

The repair does not search for a new path to the goal. `path_to_goal_found` is
always `False`, and `final_path` stays `None`. Call
`plan_path_with_dynamic_obstacles` to get a new path.

Three kinds of check help with inspecting results:

- `tree_snapshot` lists the nodes that are still valid.
- `verify_tree_consistency` checks that parent and child links agree.
- `verify_path_collision_free` and `verify_path_smoothness` check a path. The
  first checks it against disc obstacles. The second checks its mean curvature
  against `curvature_threshold`.

## Watching a route

`adaptrrt.monitor` has these helpers:

- `Marker(position, scale_x, scale_y, added)` is an obstacle box reported by a
  detector.
- `interpolate_path` densifies a path so that no gap exceeds a resolution.
- `is_path_blocked` tells whether any marker comes within a radius of the
  densified route.
- `add_obstacles_to_grid` stamps markers on a copy of a grid.
- `to_circular_obstacles` turns markers into `(Position, radius)` discs with a
  10 % margin.
- `BlockageMonitor.update(blocking, now, timeout)` returns `True` once the route
  has stayed blocked for `timeout` seconds. `reset` clears it.

## The planning node

`adaptrrt.node.AdaptiveRRTNode(parameters, sink, locate_robot)` is driven by
plain method calls. Its inputs are:

- `on_map(grid)` rebuilds the planner.
- `on_clicked_point(x, y)` sets the goal, takes the start from
  `locate_robot(global_frame, base_frame)` (or `(0, 0)` when that gives
  nothing), and plans.
- `on_static_obstacles(markers)` and `on_dynamic_obstacles(markers)` keep the
  markers whose `added` is true.
- `monitor_path_obstacles(now)` is to be called periodically. Once the route
  has stayed blocked for `obstacle_blocking_timeout` (3 s by default), it
  replans with all known obstacles.

Output goes to `sink(topic, message)`:

| topic | message |
|---|---|
| `rrt_planned_path` | a `PoseArrayMessage` |
| `rrt_path_viz` | a `PathMarker`, blue, or green while the path is blocked |
| `rrt_inflated_map` | a `GridMessage`, the inflated map with every marker stamped on it |

All settings and their defaults are in `NodeParameters`.

## Command line

`adaptrrt` plans one path on a map stored as JSON and prints its points, one
`x y` pair per line. The map object has these keys:

- `width`
- `height`
- `resolution`
- `data`, in row-major order
- `origin`, an optional `[x, y]`

```
adaptrrt map.json 8.0 8.0 --start 1.0 1.0 --seed 42
```

The options are:

- `--start X Y` (default `0 0`)
- `--seed`
- `--wall-clearance` (default 0.3)
- `--step-size` (default 0.5)
- `--max-iterations` (default 1000)

The command exits with status 1 when the map cannot be read or no path is
found.

## What it does not do

The package does not connect to any robot middleware or messaging system. It
does not subscribe to topics and runs no timer of its own. It does not look up
coordinate transforms. Maps, goals, obstacle markers and robot positions must
be handed in by the caller. Published messages are only passed to the `sink`
callback. The node draws no visualization of the tree.

## Running the tests

```
pip install "adaptrrt[test]"
pytest
```