import json

import pytest

from adaptrrt.grid import OccupancyGrid
from adaptrrt.monitor import Marker
from adaptrrt.node import (
    AdaptiveRRTNode,
    GridMessage,
    NodeParameters,
    PathMarker,
    PoseArrayMessage,
    main,
)
from adaptrrt.types import Position


def empty_grid(size=100, resolution=0.1):
    return OccupancyGrid(size, size, resolution, [0] * (size * size))


class Recorder:
    def __init__(self):
        self.messages = []

    def __call__(self, topic, message):
        self.messages.append((topic, message))

    def on(self, topic):
        return [message for name, message in self.messages if name == topic]


def make_node(start=Position(1.0, 1.0), **overrides):
    recorder = Recorder()
    params = NodeParameters(random_seed=7, **overrides)
    node = AdaptiveRRTNode(params, recorder, lambda _g, _b: start)
    return node, recorder


def test_parameter_defaults_feed_config():
    config = NodeParameters().rrt_config()
    assert config.step_size == 0.5
    assert config.max_iterations == 1000
    assert config.curvature_threshold == 0.5


def test_map_publishes_inflated_map():
    node, recorder = make_node()
    node.on_map(empty_grid())
    maps = recorder.on("rrt_inflated_map")
    assert len(maps) == 1
    message = maps[0]
    assert isinstance(message, GridMessage)
    assert message.frame_id == "map"
    assert (message.width, message.height) == (100, 100)
    assert len(message.data) == 100 * 100
    assert set(message.data) == {0}


def test_map_walls_are_inflated():
    data = [0] * 100
    data[5 * 10 + 5] = 100
    node, recorder = make_node()
    node.on_map(OccupancyGrid(10, 10, 0.1, data))
    message = recorder.on("rrt_inflated_map")[0]
    assert message.data[5 * 10 + 6] == 100
    assert message.data[5 * 10 + 7] == 100
    assert message.data[0] == 0


def test_static_obstacles_marked_and_removed_markers_ignored():
    node, recorder = make_node()
    node.on_map(empty_grid())
    node.on_static_obstacles(
        [
            Marker(Position(5.0, 5.0), 0.4, 0.4),
            Marker(Position(1.0, 1.0), 0.4, 0.4, added=False),
        ]
    )
    message = recorder.on("rrt_inflated_map")[-1]
    assert message.data[50 * 100 + 50] == 100
    assert message.data[10 * 100 + 10] == 0
    assert len(node.static_obstacles) == 1


def test_dynamic_obstacles_marked():
    node, recorder = make_node()
    node.on_map(empty_grid())
    node.on_dynamic_obstacles([Marker(Position(2.0, 7.0), 0.2, 0.2)])
    message = recorder.on("rrt_inflated_map")[-1]
    assert message.data[70 * 100 + 20] == 100


def test_integrated_map_none_without_map():
    node, recorder = make_node()
    assert node.integrated_inflated_map() is None
    assert recorder.messages == []


def test_clicked_point_without_map_plans_nothing():
    node, recorder = make_node()
    assert node.on_clicked_point(8.0, 8.0) is None
    assert recorder.on("rrt_planned_path") == []
    assert node.path_message() is None
    assert node.path_visualization() is None


def test_clicked_point_plans_and_publishes():
    node, recorder = make_node()
    node.on_map(empty_grid())
    path = node.on_clicked_point(8.0, 8.0)
    assert path is not None
    poses = recorder.on("rrt_planned_path")
    assert len(poses) == 1
    message = poses[0]
    assert isinstance(message, PoseArrayMessage)
    assert message.poses[0] == Position(1.0, 1.0)
    assert message.poses[-1].distance_to(Position(8.0, 8.0)) <= 0.2
    marker = recorder.on("rrt_path_viz")[0]
    assert isinstance(marker, PathMarker)
    assert marker.color == (0.0, 0.0, 1.0, 0.8)
    assert marker.width == 0.08
    assert all(z == 0.1 for _x, _y, z in marker.points)
    assert len(marker.points) == len(message.poses)


def test_clicked_point_falls_back_to_origin():
    recorder = Recorder()
    node = AdaptiveRRTNode(NodeParameters(random_seed=3), recorder)
    node.on_map(empty_grid())
    node.on_clicked_point(3.0, 3.0)
    assert node.start_position == Position(0.0, 0.0)
    message = recorder.on("rrt_planned_path")[0]
    assert message.poses[0] == Position(0.0, 0.0)


def test_monitor_inactive_without_path():
    node, _ = make_node()
    node.on_map(empty_grid())
    assert node.monitor_path_obstacles(0.0) is False


def test_monitor_disabled():
    node, _ = make_node(enable_dynamic_replanning=False)
    node.on_map(empty_grid())
    node.on_clicked_point(8.0, 8.0)
    middle = node.path_message().poses[len(node.current_path) // 2]
    node.on_dynamic_obstacles([Marker(middle, 0.4, 0.4)])
    assert node.monitor_path_obstacles(0.0) is False
    assert node.monitor_path_obstacles(10.0) is False


def test_monitor_clear_path_never_replans():
    node, recorder = make_node()
    node.on_map(empty_grid())
    node.on_clicked_point(8.0, 8.0)
    assert node.monitor_path_obstacles(0.0) is False
    assert node.monitor_path_obstacles(10.0) is False
    assert len(recorder.on("rrt_planned_path")) == 1


def test_monitor_replans_after_timeout():
    node, recorder = make_node()
    node.on_map(empty_grid())
    node.on_clicked_point(8.0, 8.0)
    poses = node.path_message().poses
    blocker = poses[len(poses) // 2]
    node.on_dynamic_obstacles([Marker(blocker, 0.4, 0.4)])

    assert node.monitor_path_obstacles(0.0) is False
    assert node.monitor_path_obstacles(1.0) is False
    assert node.monitor_path_obstacles(3.0) is True

    paths = recorder.on("rrt_planned_path")
    assert len(paths) == 2
    replanned = paths[-1]
    assert all(pose.distance_to(blocker) > 0.2 for pose in replanned.poses)
    marker = recorder.on("rrt_path_viz")[-1]
    assert marker.color == (0.0, 1.0, 0.0, 0.8)
    assert node.path_visualization().color == (0.0, 0.0, 1.0, 0.8)


def test_monitor_unblocking_restarts_timer():
    node, recorder = make_node()
    node.on_map(empty_grid())
    node.on_clicked_point(8.0, 8.0)
    poses = node.path_message().poses
    blocker = Marker(poses[len(poses) // 2], 0.4, 0.4)

    node.on_dynamic_obstacles([blocker])
    assert node.monitor_path_obstacles(0.0) is False
    node.on_dynamic_obstacles([])
    assert node.monitor_path_obstacles(1.0) is False
    node.on_dynamic_obstacles([blocker])
    assert node.monitor_path_obstacles(2.0) is False
    assert node.monitor_path_obstacles(4.0) is False
    assert len(recorder.on("rrt_planned_path")) == 1


def test_replan_without_requirements():
    node, _ = make_node()
    assert node.replan_path_with_obstacles() is None


def write_map(tmp_path, data, size=100):
    target = tmp_path / "map.json"
    target.write_text(
        json.dumps(
            {"width": size, "height": size, "resolution": 0.1, "origin": [0.0, 0.0], "data": data}
        ),
        encoding="utf-8",
    )
    return str(target)


def test_main_prints_path(tmp_path, capsys):
    map_file = write_map(tmp_path, [0] * 10000)
    code = main([map_file, "8", "8", "--start", "1", "1", "--seed", "5"])
    assert code == 0
    lines = capsys.readouterr().out.split("\n")
    assert lines[0] == "1.000 1.000"
    last = [float(value) for value in lines[-2].split()]
    assert Position(*last).distance_to(Position(8.0, 8.0)) <= 0.2


def test_main_fails_when_start_in_wall(tmp_path, capsys):
    map_file = write_map(tmp_path, [100] * 10000)
    assert main([map_file, "8", "8", "--start", "1", "1"]) == 1
    assert "no path found" in capsys.readouterr().err


def test_main_missing_map(tmp_path, capsys):
    assert main([str(tmp_path / "absent.json"), "1", "1"]) == 1
    assert "cannot read map" in capsys.readouterr().err


def test_main_requires_arguments():
    with pytest.raises(SystemExit):
        main([])