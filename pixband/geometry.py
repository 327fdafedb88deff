"""Hull computation for freehand paths and anchor placement."""
import logging
from typing import Iterable, Optional, Tuple

import numpy as np
from scipy.spatial import ConvexHull, Delaunay, QhullError

from pixband.types import Pixel, Pos

logger = logging.getLogger(__name__)


def convex_hull(points: np.ndarray) -> np.ndarray:
    """
    Convex hull vertices in counter-clockwise order.

    Raises:
        QhullError: for fewer than three points or collinear input
    """
    hull = ConvexHull(points)
    return points[hull.vertices]


def _circumradius(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float:
    ab = np.linalg.norm(a - b)
    bc = np.linalg.norm(b - c)
    ca = np.linalg.norm(c - a)
    area = abs((b[0] - a[0]) * (c[1] - a[1]) - (c[0] - a[0]) * (b[1] - a[1])) / 2.0
    if area == 0:
        return np.inf
    return ab * bc * ca / (4.0 * area)


def _boundary_loop(simplices: np.ndarray) -> Optional[list]:
    """Ordered vertex indices of the boundary, None unless it is one loop."""
    edge_count = {}
    for tri in simplices:
        for i in range(3):
            edge = tuple(sorted((int(tri[i]), int(tri[(i + 1) % 3]))))
            edge_count[edge] = edge_count.get(edge, 0) + 1

    boundary = [edge for edge, count in edge_count.items() if count == 1]
    if len(boundary) < 3:
        return None

    adjacency = {}
    for a, b in boundary:
        adjacency.setdefault(a, []).append(b)
        adjacency.setdefault(b, []).append(a)
    if any(len(neighbors) != 2 for neighbors in adjacency.values()):
        return None

    start = boundary[0][0]
    loop = [start]
    previous, current = start, adjacency[start][0]
    while current != start:
        loop.append(current)
        a, b = adjacency[current]
        previous, current = current, (b if a == previous else a)
        if len(loop) > len(boundary):
            return None

    if len(loop) != len(boundary):
        return None
    return loop


def concave_hull(points, alpha: Optional[float] = None) -> np.ndarray:
    """
    Alpha-shape outline of a point cloud.

    Delaunay triangles with a circumradius above ``alpha`` are discarded
    and the remaining boundary is returned as an ordered polygon. By
    default ``alpha`` is twice the median triangulation edge length.
    Degenerate input falls back to the convex hull, then to the unique
    input points.

    Args:
        points: (N, 2) array-like of x, y coordinates
        alpha: circumradius cutoff

    Returns:
        (M, 2) float array of polygon vertices
    """
    points = np.unique(np.asarray(points, dtype=np.float64).reshape(-1, 2), axis=0)
    if len(points) < 3:
        logger.warning(f"Too few points for a hull ({len(points)}), using raw points")
        return points

    try:
        tri = Delaunay(points)
    except QhullError:
        logger.warning("Triangulation failed on degenerate points, falling back to convex hull")
        return _convex_or_raw(points)

    simplices = tri.simplices
    if alpha is None:
        edges = np.concatenate([
            np.linalg.norm(points[simplices[:, i]] - points[simplices[:, (i + 1) % 3]], axis=1)
            for i in range(3)
        ])
        alpha = 2.0 * float(np.median(edges))

    kept = np.array([
        simplex for simplex in simplices
        if _circumradius(*points[simplex]) <= alpha
    ])
    if len(kept) == 0:
        logger.warning("Alpha shape removed every triangle, falling back to convex hull")
        return _convex_or_raw(points)

    loop = _boundary_loop(kept)
    if loop is None:
        logger.warning("Concave outline is not a single loop, falling back to convex hull")
        return _convex_or_raw(points)

    return points[loop]


def _convex_or_raw(points: np.ndarray) -> np.ndarray:
    try:
        return convex_hull(points)
    except QhullError:
        logger.warning("Convex hull failed, using raw points")
        return points


def polygon_centroid(polygon: np.ndarray) -> Tuple[float, float]:
    """Area centroid of a polygon; the vertex mean when the area is zero."""
    polygon = np.asarray(polygon, dtype=np.float64)
    x, y = polygon[:, 0], polygon[:, 1]
    x_next, y_next = np.roll(x, -1), np.roll(y, -1)
    cross = x * y_next - x_next * y
    area = cross.sum() / 2.0
    if len(polygon) < 3 or abs(area) < 1e-9:
        return float(x.mean()), float(y.mean())
    cx = ((x + x_next) * cross).sum() / (6.0 * area)
    cy = ((y + y_next) * cross).sum() / (6.0 * area)
    return float(cx), float(cy)


def path_anchor(path: Iterable[Pixel]) -> Optional[Pos]:
    """Integer centroid of the concave hull of a drawn path, None if empty."""
    positions = [pixel.pos for pixel in path]
    if not positions:
        return None
    cx, cy = polygon_centroid(concave_hull(positions))
    return int(round(cx)), int(round(cy))
