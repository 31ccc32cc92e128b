"""
Image-driven displacement of a lathe grid.

Only canonical vertices are ever displaced.  Seam duplicates get their
position copied from MeshGrid.seam_index afterwards, so the two sides of
the seam stay bit-identical whatever order the samples were taken in.
"""

import logging
from typing import Optional

import numpy as np

from .config import LatheParams, NormalMode
from .heightfield import HeightField
from .lathe import MeshGrid
from .repair import enforce_outward

logger = logging.getLogger(__name__)

# Normals with less horizontal component than this are not displaced in
# horizontal mode.
MIN_HORIZONTAL = 1e-3


def falloff_multiplier(v, enabled: bool = True, top: float = 0.2,
                       bottom: float = 0.2, power: float = 2.0):
    """
    Displacement weight at normalised height ``v`` (0 bottom, 1 top).

    Bottom zone  v < bottom      → (v / bottom) ** power
    Top zone     v > 1 − top     → ((1 − v) / top) ** power
    Elsewhere                    → 1
    """
    v = np.asarray(v, dtype=np.float64)
    out = np.ones_like(v)
    if not enabled:
        return out if out.ndim else float(out)
    if bottom > 0:
        zone = v < bottom
        out = np.where(zone, np.power(np.clip(v / bottom, 0.0, None), power), out)
    if top > 0:
        # bottom zone wins where the two overlap
        zone = (v > 1.0 - top) & ~(v < bottom)
        out = np.where(zone, np.power(np.clip((1.0 - v) / top, 0.0, None), power), out)
    return out if out.ndim else float(out)


def params_falloff(v, params: LatheParams):
    return falloff_multiplier(v, params.falloff_enabled, params.falloff_top,
                              params.falloff_bottom, params.falloff_power)


def vertex_face_normals(positions: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """
    Per-vertex mean of the unit normals of adjacent faces, each face
    normal first turned to point away from the Y axis.
    """
    p0 = positions[indices[:, 0]]
    p1 = positions[indices[:, 1]]
    p2 = positions[indices[:, 2]]
    fn = np.cross(p2 - p1, p0 - p1)
    flen = np.linalg.norm(fn, axis=1, keepdims=True)
    fn = fn / np.where(flen == 0, 1.0, flen)

    centre = (p0 + p1 + p2) / 3.0
    radial = np.hypot(centre[:, 0], centre[:, 2])
    dot = fn[:, 0] * centre[:, 0] + fn[:, 2] * centre[:, 2]
    flip = (radial > 1e-3) & (dot < 0)
    fn[flip] *= -1.0

    normals = np.zeros((len(positions), 3), dtype=np.float64)
    for i in range(3):
        np.add.at(normals, indices[:, i], fn)
    nlen = np.linalg.norm(normals, axis=1, keepdims=True)
    nlen = np.where(nlen == 0, 1.0, nlen)
    return normals / nlen


def clamp_min_radius(positions: np.ndarray, min_radius: float,
                     fallback: Optional[np.ndarray] = None) -> int:
    """
    Push every vertex closer than ``min_radius`` to the Y axis back out,
    scaling X and Z by the same factor.  A vertex sitting exactly on the
    axis has no direction of its own and takes the one from ``fallback``.
    Returns the number of vertices moved.
    """
    r = np.hypot(positions[:, 0], positions[:, 2])
    low = r < min_radius
    if not np.any(low):
        return 0
    on_axis = low & (r <= 1e-12)
    scaled = low & ~on_axis
    k = min_radius / r[scaled]
    positions[scaled, 0] *= k
    positions[scaled, 2] *= k
    if np.any(on_axis):
        if fallback is None:
            dirs = np.tile([1.0, 0.0], (int(on_axis.sum()), 1))
        else:
            d = fallback[on_axis][:, [0, 2]]
            dlen = np.linalg.norm(d, axis=1, keepdims=True)
            dirs = np.where(dlen > 1e-12, d / np.where(dlen == 0, 1.0, dlen), [1.0, 0.0])
        positions[on_axis, 0] = dirs[:, 0] * min_radius
        positions[on_axis, 2] = dirs[:, 1] * min_radius
    return int(low.sum())


def displacement_values(grid: MeshGrid, height_field: HeightField,
                        params: LatheParams, vertex_ids: np.ndarray) -> np.ndarray:
    """Scalar offset for the given vertices: (sample · scale + bias) · falloff."""
    u = grid.uvs[vertex_ids, 0]
    v = grid.uvs[vertex_ids, 1]
    sample = height_field.sample(u, v, params.texture_repeat_u, params.texture_repeat_v)
    raw = sample * params.displacement_scale + params.displacement_bias
    return raw * params_falloff(v, params)


def apply_displacement(grid: MeshGrid, height_field: Optional[HeightField],
                       params: LatheParams, scale: Optional[float] = None,
                       bias: Optional[float] = None,
                       normal_mode: Optional[NormalMode] = None) -> bool:
    """
    Offset the grid in place along the chosen normal direction.

    ``scale``, ``bias`` and ``normal_mode`` override the values in
    ``params``.  Returns False (and leaves the grid alone) when there is
    no height field or it has not finished decoding.
    """
    if height_field is None:
        return False
    if not height_field.decoded:
        logger.warning("[displace] height map %s not decoded yet, skipping displacement",
                       height_field.source or "<unnamed>")
        return False

    overrides = {}
    if scale is not None:
        overrides["displacement_scale"] = scale
    if bias is not None:
        overrides["displacement_bias"] = bias
    if normal_mode is not None:
        overrides["normal_mode"] = normal_mode
    if overrides:
        params = params.with_changes(**overrides)
    mode = params.normal_mode

    enforce_outward(grid)
    if mode is NormalMode.FACE:
        normals = vertex_face_normals(grid.positions, grid.indices)
    else:
        normals = grid.normals

    canonical = np.flatnonzero(grid.seam_index == np.arange(grid.vertex_count))
    disp = displacement_values(grid, height_field, params, canonical)
    n = normals[canonical]
    p = grid.positions[canonical]
    before = p.copy()

    ring_of = canonical // grid.cols
    is_cap = (ring_of == 0) | (ring_of == grid.rings - 1)

    if mode is NormalMode.HORIZONTAL:
        hlen = np.hypot(n[:, 0], n[:, 2])
        ok = hlen > MIN_HORIZONTAL
        safe = np.where(ok, hlen, 1.0)
        p[:, 0] += np.where(ok, n[:, 0] / safe * disp, 0.0)
        p[:, 2] += np.where(ok, n[:, 2] / safe * disp, 0.0)
    else:
        p[:, 0] += n[:, 0] * disp
        p[:, 1] += np.where(is_cap, 0.0, n[:, 1] * disp)
        p[:, 2] += n[:, 2] * disp

    moved = clamp_min_radius(p, params.min_radius, fallback=before)
    grid.positions[canonical] = p
    grid.weld_seam()

    logger.debug("[displace] %d vertices displaced (%s)  scale=%.3f bias=%.3f  clamped=%d",
                 len(canonical), mode.value, params.displacement_scale,
                 params.displacement_bias, moved)
    return True
