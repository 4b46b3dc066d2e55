import random

import pytest

from adaptrrt.grid import OCCUPIED, OccupancyGrid
from adaptrrt.planner import RRTPathPlanner
from adaptrrt.repair import find_isolated_subtrees
from adaptrrt.types import Path, Position, RRTConfig

WALL_CLEARANCE = 0.3


def open_grid(width=100, height=100, resolution=0.1):
    return OccupancyGrid(width, height, resolution, [0] * (width * height))


def make_config(**overrides):
    config = RRTConfig()
    config.step_size = 0.5
    config.goal_tolerance = 0.2
    config.max_iterations = 1000
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def make_planner(seed=1, grid=None, **overrides):
    grid = grid if grid is not None else open_grid()
    return RRTPathPlanner(
        grid,
        grid.resolution,
        Position(0.0, 0.0),
        WALL_CLEARANCE,
        make_config(**overrides),
        random.Random(seed),
    )


def make_path(*coords):
    path = Path()
    previous = None
    for x, y in coords:
        position = Position(x, y)
        path.add_point(position, 0.0 if previous is None else previous.distance_to(position))
        previous = position
    return path


@pytest.mark.parametrize("seed", [1, 2, 3])
def test_plan_path_connects_start_and_goal(seed):
    planner = make_planner(seed)
    start, goal = Position(1.0, 1.0), Position(8.0, 8.0)
    path = planner.plan_path(start, goal)
    assert path is not None
    assert path.points[0].position == start
    assert path.points[-1].position.distance_to(goal) <= 0.2 + 1e-9
    assert path.total_cost >= start.distance_to(goal) - 0.2 - 1e-9
    assert all(planner.is_valid_position(point.position) for point in path)


def test_statistics_after_planning():
    planner = make_planner(4)
    path = planner.plan_path(Position(1.0, 1.0), Position(8.0, 8.0))
    assert path is not None
    stats = planner.statistics
    assert stats.nodes_generated == len(planner.tree_snapshot())
    assert stats.goal_found_iteration >= 0
    assert stats.path_length >= Position(1.0, 1.0).distance_to(Position(8.0, 8.0)) - 0.2


def test_plain_rrt_without_smoothing_gives_free_segments():
    planner = make_planner(5, enable_rrt_star=False, enable_path_smoothing=False)
    path = planner.plan_path(Position(1.0, 1.0), Position(6.0, 6.0))
    assert path is not None
    assert all(
        planner.is_valid_line(a.position, b.position)
        for a, b in zip(path.points, path.points[1:])
    )


def test_start_outside_map_fails():
    planner = make_planner()
    assert planner.plan_path(Position(-1.0, -1.0), Position(5.0, 5.0)) is None
    assert planner.statistics.nodes_generated == 0


def test_goal_on_inflated_wall_fails():
    data = [0] * 400
    data[10 * 20 + 10] = 100
    grid = OccupancyGrid(20, 20, 0.1, data)
    planner = make_planner(grid=grid)
    assert planner.plan_path(Position(0.15, 0.15), Position(1.05, 1.05)) is None


def test_inflated_grid_grows_walls():
    data = [0] * 400
    data[10 * 20 + 10] = 100
    grid = OccupancyGrid(20, 20, 0.1, data)
    planner = make_planner(grid=grid)
    cells = planner.inflated_grid.cells
    assert cells[10][12] == OCCUPIED
    assert cells[12][12] == OCCUPIED
    assert cells[10][14] == 0
    assert cells[0][0] == 0


def test_world_and_grid_conversion():
    planner = make_planner()
    assert planner.world_to_grid(Position(0.55, 0.25)) == (5, 2)
    assert planner.grid_to_world((3, 4)) == Position(0.3, 0.4)


def test_is_valid_position_bounds():
    planner = make_planner()
    assert planner.is_valid_position(Position(5.0, 5.0))
    assert not planner.is_valid_position(Position(10.5, 5.0))


def test_dynamic_obstacle_on_goal_blocks_planning():
    planner = make_planner()
    result = planner.plan_path_with_dynamic_obstacles(
        Position(1.0, 1.0), Position(8.0, 8.0), [(Position(8.0, 8.0), 0.5)]
    )
    assert result is None
    assert planner.plan_path(Position(1.0, 1.0), Position(8.0, 8.0)) is not None


def test_static_obstacle_on_start_blocks_planning():
    planner = make_planner()
    result = planner.plan_path_with_dynamic_obstacles(
        Position(1.0, 1.0), Position(8.0, 8.0), [], [(Position(1.0, 1.0), 0.2)]
    )
    assert result is None


def test_replanned_path_avoids_obstacle():
    planner = make_planner(7)
    obstacle = (Position(5.0, 5.0), 0.5)
    path = planner.plan_path_with_dynamic_obstacles(
        Position(1.0, 1.0), Position(9.0, 9.0), [obstacle]
    )
    assert path is not None
    assert planner.verify_path_collision_free(path, [obstacle])


def test_update_config_zero_iterations():
    planner = make_planner()
    planner.update_config(make_config(max_iterations=0))
    assert planner.plan_path(Position(1.0, 1.0), Position(8.0, 8.0)) is None
    assert planner.statistics.nodes_generated == 1


def test_identify_collision_edges_on_obstacle_detection():
    planner = make_planner(1)
    assert planner.plan_path(Position(1.0, 1.0), Position(8.0, 8.0)) is not None
    obstacle = (Position(4.0, 4.0), 0.5)
    edges = planner.identify_collision_edges([obstacle])
    assert len(edges) > 0
    assert all(edge.child_node.parent is edge.parent_node for edge in edges)


def test_obstacle_at_goal_always_hits_an_edge():
    planner = make_planner(2)
    assert planner.plan_path(Position(1.0, 1.0), Position(8.0, 8.0)) is not None
    assert len(planner.identify_collision_edges([(Position(8.0, 8.0), 0.5)])) >= 1


def test_no_collision_edges_without_obstacles():
    planner = make_planner(3)
    assert planner.plan_path(Position(1.0, 1.0), Position(8.0, 8.0)) is not None
    assert planner.identify_collision_edges([]) == []


def test_no_collision_edges_for_obstacle_off_map():
    planner = make_planner(3)
    assert planner.plan_path(Position(1.0, 1.0), Position(3.0, 3.0)) is not None
    assert planner.identify_collision_edges([(Position(50.0, 50.0), 0.5)]) == []


def test_invalidate_near_root_shrinks_snapshot():
    planner = make_planner(6)
    start = Position(1.0, 1.0)
    assert planner.plan_path(start, Position(8.0, 8.0)) is not None
    before = planner.tree_snapshot()
    invalidated = planner.invalidate_collision_edges_and_children([(start, 0.2)])
    after = planner.tree_snapshot()
    assert len(invalidated) > 0
    assert len(after) == len(before) - len(invalidated)
    assert all(not node.is_valid for node in invalidated)
    assert before[0] in after


def test_reconnect_counts_isolated_roots_that_found_parent():
    planner = make_planner(8)
    start = Position(1.0, 1.0)
    assert planner.plan_path(start, Position(8.0, 8.0)) is not None
    planner.invalidate_collision_edges_and_children([(start, 0.2)])
    isolated = find_isolated_subtrees(planner.tree_snapshot())
    count = planner.reconnect_isolated_subtrees()
    reattached = [node for node in isolated if node.parent.is_valid]
    assert count == len(reattached)
    assert all(node in node.parent.children for node in reattached)


def test_reconnect_without_obstacles_makes_tree_consistent():
    planner = make_planner(9)
    assert planner.plan_path(Position(1.0, 1.0), Position(8.0, 8.0)) is not None
    assert planner.reconnect_isolated_subtrees() == 0
    assert planner.verify_tree_consistency()


def test_complement_with_new_sampling_on_open_map():
    planner = make_planner(10)
    assert planner.plan_path(Position(1.0, 1.0), Position(8.0, 8.0)) is not None
    before = len(planner.tree_snapshot())
    result = planner.complement_with_new_sampling()
    assert result.new_nodes_count == 100
    assert result.sampling_efficiency == pytest.approx(1.0)
    assert result.path_to_goal_found is False
    assert len(planner.tree_snapshot()) == before + 100


def test_end_to_end_dynamic_obstacle_handling():
    planner = make_planner(11)
    assert planner.plan_path(Position(1.0, 1.0), Position(9.0, 9.0)) is not None
    obstacles = [
        (Position(3.0, 3.0), 0.5),
        (Position(5.0, 5.0), 0.7),
        (Position(7.0, 7.0), 0.4),
    ]
    result = planner.handle_dynamic_obstacles(obstacles)
    assert result.success is True
    assert result.collision_edges_identified > 0
    assert 0 < result.nodes_invalidated <= result.collision_edges_identified
    assert result.subtrees_reconnected >= 0
    assert 0 <= result.new_nodes_sampled <= 100


def test_verify_path_smoothness():
    planner = make_planner()
    assert planner.verify_path_smoothness(make_path((0, 0), (1, 0), (2, 0), (3, 0)))
    assert not planner.verify_path_smoothness(make_path((0, 0), (0.1, 0), (0.1, 0.1)))


def test_verify_path_collision_free():
    planner = make_planner()
    path = make_path((0, 0), (4, 0))
    assert not planner.verify_path_collision_free(path, [(Position(2.0, 0.5), 0.6)])
    assert planner.verify_path_collision_free(path, [(Position(2.0, 2.0), 0.6)])