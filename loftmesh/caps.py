"""
End caps welded onto the first and last ring of a lathe grid.

The cap rim is a copy of the body ring as it stands after displacement
and smoothing, never a regenerated circle, so the merged mesh closes
without gaps.
"""

import logging
from dataclasses import dataclass, field
from typing import List

import numpy as np

from .lathe import MeshGrid

logger = logging.getLogger(__name__)


@dataclass
class CapMesh:
    positions: np.ndarray   # (segments + 2, 3): centre, then rim incl. seam duplicate
    normals: np.ndarray
    uvs: np.ndarray
    indices: np.ndarray     # (segments, 3)
    ring_index: int         # body ring the rim was copied from

    @property
    def centre(self) -> np.ndarray:
        return self.positions[0]

    @property
    def rim(self) -> np.ndarray:
        return self.positions[1:]


def _build_cap(grid: MeshGrid, ring: int, up: bool) -> CapMesh:
    segments = grid.segments
    rim = grid.ring(ring)                       # (segments + 1, 3), a copy
    centre = rim[:segments].mean(axis=0)

    positions = np.concatenate([centre[None, :], rim], axis=0)
    normals = np.tile([0.0, 1.0 if up else -1.0, 0.0], (len(positions), 1))

    angles = np.arange(segments + 1, dtype=np.float64) / segments * (2.0 * np.pi)
    uvs = np.empty((len(positions), 2), dtype=np.float64)
    uvs[0] = (0.5, 0.5)
    uvs[1:, 0] = 0.5 + 0.5 * np.cos(angles)
    uvs[1:, 1] = 0.5 + 0.5 * np.sin(angles)

    s = np.arange(segments, dtype=np.int32)
    centre_i = np.zeros(segments, dtype=np.int32)
    if up:
        tris = np.stack([centre_i, s + 2, s + 1], axis=1)
    else:
        tris = np.stack([centre_i, s + 1, s + 2], axis=1)

    return CapMesh(positions=positions, normals=normals, uvs=uvs,
                   indices=tris.astype(np.int32), ring_index=ring)


def build_caps(grid: MeshGrid):
    """(bottom, top) caps for the grid's current first and last rings."""
    bottom = _build_cap(grid, 0, up=False)
    top = _build_cap(grid, grid.rings - 1, up=True)
    logger.debug("[caps] welded caps: %d rim vertices each", grid.segments + 1)
    return bottom, top


@dataclass
class WatertightReport:
    watertight: bool
    unwelded_bottom: List[int] = field(default_factory=list)
    unwelded_top: List[int] = field(default_factory=list)
    boundary_edges: int = 0
    non_manifold_edges: int = 0
    inconsistent_edges: int = 0


def _unwelded(grid: MeshGrid, cap: CapMesh) -> List[int]:
    body = grid.grid(grid.positions)[cap.ring_index]
    diff = np.any(cap.rim != body, axis=1)
    return [int(i) for i in np.flatnonzero(diff)]


def check_watertight(grid: MeshGrid, bottom: CapMesh, top: CapMesh) -> WatertightReport:
    """
    Weld body and caps by exact position and count edge uses.  A closed,
    consistently oriented surface uses every undirected edge exactly twice
    and every directed edge once.
    """
    parts = [(grid.positions, grid.indices),
             (bottom.positions, bottom.indices),
             (top.positions, top.indices)]
    verts, tris, offset = [], [], 0
    for p, i in parts:
        verts.append(p)
        tris.append(i + offset)
        offset += len(p)
    verts = np.concatenate(verts, axis=0)
    tris = np.concatenate(tris, axis=0)

    _, weld = np.unique(verts, axis=0, return_inverse=True)
    weld = np.asarray(weld).ravel()
    t = weld[tris]
    # Triangles that collapse after welding carry no surface.
    keep = (t[:, 0] != t[:, 1]) & (t[:, 1] != t[:, 2]) & (t[:, 0] != t[:, 2])
    t = t[keep]

    directed = np.concatenate([t[:, [0, 1]], t[:, [1, 2]], t[:, [2, 0]]], axis=0)
    undirected = np.sort(directed, axis=1)
    _, und_counts = np.unique(undirected, axis=0, return_counts=True)
    _, dir_counts = np.unique(directed, axis=0, return_counts=True)

    report = WatertightReport(
        watertight=False,
        unwelded_bottom=_unwelded(grid, bottom),
        unwelded_top=_unwelded(grid, top),
        boundary_edges=int(np.sum(und_counts == 1)),
        non_manifold_edges=int(np.sum(und_counts > 2)),
        inconsistent_edges=int(np.sum(dir_counts > 1)),
    )
    report.watertight = (not report.unwelded_bottom and not report.unwelded_top
                         and report.boundary_edges == 0
                         and report.non_manifold_edges == 0
                         and report.inconsistent_edges == 0)
    if not report.watertight:
        logger.warning("[caps] mesh is not watertight: %s", report)
    return report
