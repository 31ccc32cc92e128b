"""
Revolve a profile into a ring/segment vertex grid.

Coordinate convention (matches the viewer, Y is the revolution axis):
  ring r     → height  y = r · height / (rings − 1)
  segment s  → angle   θ = 2π · s / segments + twist(r)
  position   = (R · cos θ,  y,  R · sin θ)

Every ring holds segments + 1 vertices; the last one sits on top of the
first and only ever receives its position by copy (see MeshGrid.seam_index).
"""

import logging
import math
from dataclasses import dataclass

import numpy as np

from .config import LatheParams
from .profile import Profile

logger = logging.getLogger(__name__)


@dataclass
class MeshGrid:
    positions: np.ndarray   # (N, 3) float64
    normals: np.ndarray     # (N, 3) float64
    uvs: np.ndarray         # (N, 2) float64
    indices: np.ndarray     # (M, 3) int32
    rings: int
    segments: int
    seam_index: np.ndarray  # (N,) canonical vertex of every vertex

    @property
    def cols(self) -> int:
        return self.segments + 1

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    def grid(self, arr: np.ndarray) -> np.ndarray:
        """View a per-vertex array as (rings, segments + 1, k)."""
        return arr.reshape(self.rings, self.cols, -1)

    def seam_vertices(self) -> np.ndarray:
        """Indices of the duplicate column (one per ring)."""
        return np.arange(self.rings) * self.cols + self.segments

    def weld_seam(self) -> None:
        """Overwrite every seam duplicate from its canonical vertex."""
        dup = self.seam_vertices()
        src = self.seam_index[dup]
        self.positions[dup] = self.positions[src]
        self.normals[dup] = self.normals[src]

    def ring(self, r: int) -> np.ndarray:
        return self.grid(self.positions)[r].copy()

    def ring_radii(self) -> np.ndarray:
        """Radial distance of every vertex from the axis, (rings, cols)."""
        p = self.grid(self.positions)
        return np.hypot(p[:, :, 0], p[:, :, 2])

    def copy(self) -> "MeshGrid":
        return MeshGrid(
            positions=self.positions.copy(),
            normals=self.normals.copy(),
            uvs=self.uvs.copy(),
            indices=self.indices.copy(),
            rings=self.rings,
            segments=self.segments,
            seam_index=self.seam_index.copy(),
        )


def ring_slopes(radii: np.ndarray, heights: np.ndarray) -> np.ndarray:
    """
    dR/dy along the ring axis (axis 0).  Central difference inside,
    forward / backward difference on the first / last ring.  A zero
    height step yields slope 0.
    """
    radii = np.asarray(radii, dtype=np.float64)
    heights = np.asarray(heights, dtype=np.float64)
    n = radii.shape[0]
    dr = np.zeros_like(radii)
    dy = np.zeros_like(heights)
    if n < 2:
        return np.zeros_like(radii)
    if n > 2:
        dr[1:-1] = radii[2:] - radii[:-2]
        dy[1:-1] = heights[2:] - heights[:-2]
    dr[0] = radii[1] - radii[0]
    dy[0] = heights[1] - heights[0]
    dr[-1] = radii[-1] - radii[-2]
    dy[-1] = heights[-1] - heights[-2]
    safe = np.where(np.abs(dy) > 1e-12, dy, 1.0)
    return np.where(np.abs(dy) > 1e-12, dr / safe, 0.0)


def analytic_normals(slope: np.ndarray, theta: np.ndarray) -> np.ndarray:
    """
    Outward surface normal of a lathe surface from its profile slope.

    meridional tangent  M = (slope·cosθ, 1, slope·sinθ)
    tangential          T = (−sinθ, 0, cosθ)
    normal              M × T = (cosθ, −slope, sinθ), normalised
    """
    cos_t = np.cos(theta)
    sin_t = np.sin(theta)
    n = np.stack([cos_t, -slope * np.ones_like(theta), sin_t], axis=-1)
    return n / np.sqrt(1.0 + slope * slope)[..., None]


def grid_indices(rings: int, segments: int) -> np.ndarray:
    """Two outward-wound triangles per grid quad."""
    cols = segments + 1
    r = np.arange(rings - 1, dtype=np.int32)[:, None]
    s = np.arange(segments, dtype=np.int32)[None, :]
    a = (r * cols + s).ravel()
    b = a + 1
    d = a + cols
    c = d + 1
    return np.concatenate([
        np.stack([a, c, b], axis=1),
        np.stack([a, d, c], axis=1),
    ], axis=0).astype(np.int32)


def build_lathe_grid(params: LatheParams, profile: Profile) -> MeshGrid:
    """Revolve ``profile`` into a fresh MeshGrid; no state outside it is touched."""
    rings = params.ring_count
    segments = params.segment_count
    if rings != params.rings or segments != params.segments:
        logger.debug("[mesh] clamped grid %d×%d → %d×%d",
                     params.rings, params.segments, rings, segments)
    cols = segments + 1

    ring_t = np.arange(rings, dtype=np.float64) / (rings - 1)
    heights = ring_t * params.height
    taper = 1.0 - (1.0 - params.taper) * ring_t
    profile_r = np.array([profile.radius_at_height(float(y)) for y in heights])
    radii = np.maximum(params.min_radius, profile_r * taper)
    twist = ring_t * math.radians(params.twist)

    seg_t = np.arange(cols, dtype=np.float64) / segments
    theta = seg_t[None, :] * (2.0 * math.pi) + twist[:, None]    # (rings, cols)

    pos = np.empty((rings, cols, 3), dtype=np.float64)
    pos[:, :, 0] = radii[:, None] * np.cos(theta)
    pos[:, :, 1] = heights[:, None]
    pos[:, :, 2] = radii[:, None] * np.sin(theta)

    slope = ring_slopes(radii, heights)
    normals = analytic_normals(np.broadcast_to(slope[:, None], theta.shape), theta)

    # UV: v runs up the body, u around it, shifted progressively by the
    # texture rotation (full rotation reached at the top ring).
    rot = math.radians(params.texture_rotation) / (2.0 * math.pi)
    uvs = np.empty((rings, cols, 2), dtype=np.float64)
    uvs[:, :, 0] = seg_t[None, :] + rot * ring_t[:, None]
    uvs[:, :, 1] = ring_t[:, None]

    flat = np.arange(rings * cols).reshape(rings, cols)
    seam_index = flat.copy()
    seam_index[:, segments] = flat[:, 0]

    grid = MeshGrid(
        positions=pos.reshape(-1, 3),
        normals=np.ascontiguousarray(normals.reshape(-1, 3)),
        uvs=uvs.reshape(-1, 2),
        indices=grid_indices(rings, segments),
        rings=rings,
        segments=segments,
        seam_index=seam_index.ravel(),
    )
    grid.weld_seam()
    logger.debug("[mesh] lathe grid: %d rings × %d segments = %d vertices",
                 rings, segments, grid.vertex_count)
    return grid
