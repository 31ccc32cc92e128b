"""
Smoothing and normal repair for lathe grids.
"""

import logging

import numpy as np

from .lathe import MeshGrid, analytic_normals, ring_slopes

logger = logging.getLogger(__name__)

CENTRE_WEIGHT = 0.4
VERTICAL_WEIGHT = 0.2     # divided by the ring offset
HORIZONTAL_WEIGHT = 0.1
RING_WINDOW = 2


def smooth(grid: MeshGrid, passes: int) -> None:
    """
    Weighted neighbour averaging, ``passes`` times, in place.

    Each pass reads only from a snapshot of the previous pass.  The first
    and last rings are copied through untouched so the caps stay flat, and
    the seam is re-welded at the end of every pass.
    """
    passes = int(passes)
    if passes <= 0 or grid.rings < 3:
        return
    rings, cols, segments = grid.rings, grid.cols, grid.segments

    left = np.arange(cols) - 1
    left[0] = segments - 1
    right = np.arange(cols) + 1
    right[segments] = 1

    for _ in range(passes):
        snap = grid.grid(grid.positions).copy()
        acc = CENTRE_WEIGHT * snap
        weight = np.full(rings, CENTRE_WEIGHT)

        for off in range(1, RING_WINDOW + 1):
            w = VERTICAL_WEIGHT / off
            # ring r picks up r + off ...
            acc[:-off] += w * snap[off:]
            weight[:-off] += w
            # ... and r − off
            acc[off:] += w * snap[:-off]
            weight[off:] += w

        acc += HORIZONTAL_WEIGHT * (snap[:, left] + snap[:, right])
        weight += 2.0 * HORIZONTAL_WEIGHT

        smoothed = acc / weight[:, None, None]
        smoothed[0] = snap[0]
        smoothed[-1] = snap[-1]
        grid.positions[:] = smoothed.reshape(-1, 3)
        grid.weld_seam()

    logger.debug("[repair] %d smoothing passes over %d rings", passes, rings)


def recompute_normals(grid: MeshGrid) -> None:
    """Analytic lathe normals from the current (displaced / smoothed) positions."""
    pos = grid.grid(grid.positions)
    radii = np.hypot(pos[:, :, 0], pos[:, :, 2])
    heights = pos[:, :, 1]
    slope = ring_slopes(radii, heights)
    theta = np.arctan2(pos[:, :, 2], pos[:, :, 0])
    grid.normals[:] = analytic_normals(slope, theta).reshape(-1, 3)
    grid.weld_seam()


def enforce_outward(grid: MeshGrid) -> int:
    """Flip normals that point towards the Y axis.  Returns how many flipped."""
    p = grid.positions
    n = grid.normals
    radial = np.hypot(p[:, 0], p[:, 2])
    dot = n[:, 0] * p[:, 0] + n[:, 2] * p[:, 2]
    flip = (radial > 1e-3) & (dot < 0)
    n[flip] *= -1.0
    count = int(flip.sum())
    if count:
        logger.debug("[repair] flipped %d inward normals", count)
    return count


def compute_normals(verts: np.ndarray, indices: np.ndarray, n_verts: int) -> np.ndarray:
    """Accumulate face normals into per-vertex normals."""
    v0 = verts[indices[:, 0]]
    v1 = verts[indices[:, 1]]
    v2 = verts[indices[:, 2]]
    fn = np.cross(v1 - v0, v2 - v0)

    normals = np.zeros((n_verts, 3), dtype=np.float64)
    for i in range(3):
        np.add.at(normals, indices[:, i], fn)

    nlen = np.linalg.norm(normals, axis=1, keepdims=True)
    nlen = np.where(nlen == 0, 1.0, nlen)
    return normals / nlen
