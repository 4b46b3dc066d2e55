"""Repair of an exploration tree after new obstacles appear, and path checks."""

from __future__ import annotations

import math
import random
from typing import Iterable, Optional, Sequence

from adaptrrt.grid import CostMap, steer
from adaptrrt.types import (
    CircularObstacle,
    CollisionEdge,
    DynamicObstacleHandlingResult,
    Path,
    Position,
    RRTConfig,
    RRTNode,
    SamplingComplementResult,
)

Obstacle = tuple[Position, float]

_SAMPLING_ATTEMPTS = 100


def check_edge_collision(
    parent: Optional[RRTNode], child: Optional[RRTNode], obstacle: Obstacle
) -> Optional[CollisionEdge]:
    """The collision of the edge ``parent``-``child`` with ``obstacle``, if any.

    The collision point is taken to be the midpoint of the edge.
    """
    if parent is None or child is None:
        return None
    center, radius = obstacle
    if not CircularObstacle(center, radius).intersects_line(
        parent.position, child.position
    ):
        return None
    collision_point = Position(
        (parent.position.x + child.position.x) / 2.0,
        (parent.position.y + child.position.y) / 2.0,
    )
    return CollisionEdge(
        parent, child, collision_point, center.distance_to(collision_point)
    )


def identify_collision_edges(
    tree: Sequence[RRTNode], obstacles: Iterable[Obstacle]
) -> list[CollisionEdge]:
    """Every edge of a valid node to its parent that some obstacle touches."""
    obstacles = list(obstacles)
    edges = []
    for node in tree:
        if node is None or node.parent is None or not node.is_valid:
            continue
        for obstacle in obstacles:
            edge = check_edge_collision(node.parent, node, obstacle)
            if edge is not None:
                edges.append(edge)
    return edges


def _invalidate_subtree(node: RRTNode, invalidated: list[RRTNode]) -> None:
    """Mark ``node`` and all its descendants invalid, in depth-first pre-order."""
    stack = [node]
    while stack:
        current = stack.pop()
        if current is None or not current.is_valid:
            continue
        current.is_valid = False
        invalidated.append(current)
        stack.extend(reversed(current.children))


def _invalidate_edges(edges: Iterable[CollisionEdge]) -> list[RRTNode]:
    invalidated: list[RRTNode] = []
    for edge in edges:
        if edge.child_node is not None and edge.child_node.is_valid:
            _invalidate_subtree(edge.child_node, invalidated)
    return invalidated


def invalidate_collision_edges_and_children(
    tree: Sequence[RRTNode], obstacles: Iterable[Obstacle]
) -> list[RRTNode]:
    """Invalidate the child end of every colliding edge and its descendants."""
    return _invalidate_edges(identify_collision_edges(tree, obstacles))


def find_isolated_subtrees(tree: Sequence[RRTNode]) -> list[RRTNode]:
    """Valid nodes whose parent has been invalidated."""
    return [
        node
        for node in tree
        if node is not None
        and node.is_valid
        and node.parent is not None
        and not node.parent.is_valid
    ]


def attempt_subtree_reconnection(
    tree: Sequence[RRTNode],
    subtree_root: Optional[RRTNode],
    costmap: CostMap,
    rewire_radius: float,
) -> bool:
    """Attach ``subtree_root`` to the nearest valid node within reach by a free line."""
    if subtree_root is None or not subtree_root.is_valid:
        return False
    best: Optional[RRTNode] = None
    min_distance = math.inf
    for node in tree:
        if node is None or not node.is_valid or node is subtree_root:
            continue
        distance = node.position.distance_to(subtree_root.position)
        if (
            distance < min_distance
            and distance <= rewire_radius
            and costmap.is_valid_line(node.position, subtree_root.position)
        ):
            min_distance = distance
            best = node
    if best is None:
        return False
    subtree_root.parent = best
    subtree_root.cost = best.cost + best.position.distance_to(subtree_root.position)
    best.add_child(subtree_root)
    return True


def update_tree_structure(tree: Sequence[RRTNode]) -> None:
    """Rebuild every child list from the parent links of valid nodes."""
    for node in tree:
        if node is not None:
            node.children.clear()
    for node in tree:
        if (
            node is not None
            and node.is_valid
            and node.parent is not None
            and node.parent.is_valid
        ):
            node.parent.add_child(node)


def reconnect_isolated_subtrees(
    tree: Sequence[RRTNode], costmap: CostMap, rewire_radius: float
) -> int:
    """Try to reattach every isolated subtree; return how many succeeded."""
    reconnected = sum(
        1
        for root in find_isolated_subtrees(tree)
        if attempt_subtree_reconnection(tree, root, costmap, rewire_radius)
    )
    update_tree_structure(tree)
    return reconnected


def complement_with_new_sampling(
    tree: list[RRTNode],
    costmap: CostMap,
    step_size: float,
    rng: random.Random,
) -> SamplingComplementResult:
    """Grow the valid part of ``tree`` with a fixed number of random samples."""
    result = SamplingComplementResult()
    for _ in range(_SAMPLING_ATTEMPTS):
        sample = costmap.random_position(rng)
        if not costmap.is_valid_position(sample):
            continue
        valid_nodes = [node for node in tree if node is not None and node.is_valid]
        if not valid_nodes:
            continue
        nearest = min(valid_nodes, key=lambda node: node.position.distance_to(sample))
        new_pos = steer(nearest.position, sample, step_size)
        if not costmap.is_valid_line(nearest.position, new_pos):
            continue
        new_node = RRTNode(
            new_pos,
            nearest,
            nearest.cost + nearest.position.distance_to(new_pos),
            len(tree),
        )
        tree.append(new_node)
        nearest.add_child(new_node)
        result.new_nodes.append(new_node)
    result.new_nodes_count = len(result.new_nodes)
    result.sampling_efficiency = result.new_nodes_count / _SAMPLING_ATTEMPTS
    result.path_to_goal_found = False
    return result


def handle_dynamic_obstacles(
    tree: list[RRTNode],
    obstacles: Iterable[Obstacle],
    costmap: CostMap,
    config: RRTConfig,
    rng: random.Random,
) -> DynamicObstacleHandlingResult:
    """Identify, invalidate, reconnect and resample in one pass over the tree."""
    result = DynamicObstacleHandlingResult()
    try:
        edges = identify_collision_edges(tree, obstacles)
        result.collision_edges_identified = len(edges)
        result.nodes_invalidated = len(_invalidate_edges(edges))
        result.subtrees_reconnected = reconnect_isolated_subtrees(
            tree, costmap, config.rewire_radius
        )
        sampling = complement_with_new_sampling(tree, costmap, config.step_size, rng)
        result.new_nodes_sampled = sampling.new_nodes_count
        result.success = True
    except Exception:
        result.success = False
    return result


def verify_tree_consistency(tree: Sequence[RRTNode]) -> bool:
    """Whether parent and child links of all valid nodes agree with each other."""
    for node in tree:
        if node is None or not node.is_valid:
            continue
        if node.parent is not None and not any(
            child is node for child in node.parent.children
        ):
            return False
        if any(
            child is not None and child.parent is not node for child in node.children
        ):
            return False
    return True


def verify_path_collision_free(path: Path, obstacles: Iterable[Obstacle]) -> bool:
    """Whether no segment of ``path`` touches any of the disc obstacles."""
    discs = [CircularObstacle(center, radius) for center, radius in obstacles]
    segments = zip(path.points, path.points[1:])
    return not any(
        disc.intersects_line(start.position, end.position)
        for start, end in segments
        for disc in discs
    )


def calculate_curvature(path: Path, index: int) -> float:
    """Turn at point ``index`` divided by the mean length of its two segments."""
    count = len(path.points)
    if index == 0 or index >= count - 1 or count < 3:
        return 0.0
    p1 = path.points[index - 1].position
    p2 = path.points[index].position
    p3 = path.points[index + 1].position
    v1x, v1y = p2.x - p1.x, p2.y - p1.y
    v2x, v2y = p3.x - p2.x, p3.y - p2.y
    len1 = math.hypot(v1x, v1y)
    len2 = math.hypot(v2x, v2y)
    if len1 < 1e-6 or len2 < 1e-6:
        return 0.0
    cross = abs((v1x / len1) * (v2y / len2) - (v1y / len1) * (v2x / len2))
    return cross / ((len1 + len2) / 2.0)


def verify_path_smoothness(path: Path, curvature_threshold: float) -> bool:
    """Whether the mean curvature over the inner points is below the threshold."""
    if len(path.points) < 3:
        return True
    curvatures = [calculate_curvature(path, i) for i in range(1, len(path.points) - 1)]
    return sum(curvatures) / len(curvatures) < curvature_threshold