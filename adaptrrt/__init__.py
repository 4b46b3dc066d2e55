"""RRT/RRT* path planning on occupancy grids, with tree repair and route monitoring."""

__version__ = "0.1.0"

__all__ = ["grid", "monitor", "node", "planner", "repair", "types"]