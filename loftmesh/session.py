"""
LoftSession: the editing context a viewer or script drives.

It owns the parameter set, the profile, the current height field and the
last built meshes.  Every edit ends in rebuild(), which regenerates all
buffers from scratch.
"""

import logging
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Optional, Tuple

from . import config
from .caps import CapMesh, WatertightReport, build_caps, check_watertight
from .config import LatheParams
from .displace import apply_displacement
from .export import ExportMesh, export_mesh, prepare_for_export
from .heightfield import HeightField, TextureLoader
from .lathe import MeshGrid, build_lathe_grid
from .profile import Anchor, Profile
from .repair import enforce_outward, recompute_normals, smooth

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    body: MeshGrid
    bottom: CapMesh
    top: CapMesh

    @property
    def parts(self):
        return (self.body, self.bottom, self.top)


def build_mesh(params: LatheParams, profile: Profile,
               height_field: Optional[HeightField] = None,
               displacement_factor: float = 1.0) -> BuildResult:
    """
    Lathe → outward normals → geometry smoothing → displacement →
    post-displacement smoothing → caps.
    """
    grid = build_lathe_grid(params, profile)
    enforce_outward(grid)

    if params.enable_smoothing and params.geometry_smoothing > 0:
        smooth(grid, params.geometry_smoothing)
        recompute_normals(grid)
        enforce_outward(grid)

    scale = params.displacement_scale * displacement_factor
    bias = params.displacement_bias * displacement_factor
    if apply_displacement(grid, height_field, params, scale=scale, bias=bias):
        recompute_normals(grid)
        if (params.enable_smoothing and abs(scale) > config.SMOOTHING_MIN_SCALE
                and params.smoothing_passes > 0):
            smooth(grid, params.smoothing_passes)
            recompute_normals(grid)
            enforce_outward(grid)

    bottom, top = build_caps(grid)
    return BuildResult(body=grid, bottom=bottom, top=top)


class LoftSession:
    def __init__(self, params: Optional[LatheParams] = None,
                 profile: Optional[Profile] = None,
                 loader: Optional[TextureLoader] = None):
        self.params = params or LatheParams()
        self.profile = profile or Profile.from_params(self.params)
        if profile is not None and abs(profile.height - self.params.height) > 1e-12:
            self.profile.set_total_height(self.params.height)
        self.profile.base_radius = self.params.radius
        self.loader = loader or TextureLoader()
        self.height_field: Optional[HeightField] = None
        self.texture_path: Optional[str] = None
        self.dragging = False
        self.result: Optional[BuildResult] = None
        self.build_count = 0

    # ── building ────────────────────────────────────────────────────────────

    def rebuild(self) -> BuildResult:
        factor = config.DRAG_DISPLACEMENT_FACTOR if self.dragging else 1.0
        self.result = build_mesh(self.params, self.profile, self.height_field, factor)
        self.build_count += 1
        logger.debug("[mesh] rebuild #%d  (%d vertices%s)", self.build_count,
                     self.result.body.vertex_count, ", dragging" if self.dragging else "")
        return self.result

    def poll(self) -> int:
        """Apply finished texture loads on this thread; returns how many ran."""
        return self.loader.drain()

    def current(self) -> BuildResult:
        self.poll()
        return self.result if self.result is not None else self.rebuild()

    def set_params(self, **changes) -> BuildResult:
        new = self.params.with_changes(**changes)
        if new.height != self.params.height:
            self.profile.set_total_height(new.height)
        self.profile.min_radius = new.min_radius
        self.profile.base_radius = new.radius
        self.params = new
        return self.rebuild()

    # ── curve editing ───────────────────────────────────────────────────────

    def radius_at_height(self, h: float) -> float:
        return self.profile.radius_at_height(h)

    def insert_anchor(self, radius: float, height: float,
                      index: Optional[int] = None) -> int:
        """Insert a smooth anchor; without ``index`` it goes by height order."""
        if index is None:
            index = self.profile.insert_at_height(radius, height)
        else:
            h = config.DEFAULT_HANDLE_LENGTH
            index = self.profile.insert_anchor(index, Anchor(
                position=(radius, height), handle_in=(0.0, -h),
                handle_out=(0.0, h), smooth=True))
        self.rebuild()
        return index

    def delete_anchor(self, index: int) -> bool:
        removed = self.profile.delete_anchor(index)
        if removed:
            self.rebuild()
        return removed

    def move_anchor(self, index: int, radius: float, height: float) -> None:
        self.profile.move_anchor(index, radius, height)
        self.rebuild()

    def set_handle(self, index: int, which: str, offset: Tuple[float, float]) -> None:
        self.profile.set_handle(index, which, offset)
        self.rebuild()

    def toggle_anchor_smooth(self, index: int) -> Optional[bool]:
        state = self.profile.toggle_smooth(index)
        if state is not None:
            self.rebuild()
        return state

    # ── drag ────────────────────────────────────────────────────────────────

    def begin_drag(self) -> None:
        """Cheaper rebuilds while dragging: displacement is scaled down."""
        self.dragging = True

    def end_drag(self) -> BuildResult:
        self.dragging = False
        return self.rebuild()

    # ── texture ─────────────────────────────────────────────────────────────

    def set_height_field(self, height_field: Optional[HeightField]) -> BuildResult:
        self.height_field = height_field
        return self.rebuild()

    def load_texture(self, path: str) -> Future:
        """
        Start decoding ``path``.  Until it finishes the session holds a
        pending height field and rebuilds skip displacement.  The result
        is applied by poll() (or the loader's own scheduler), which
        rebuilds once on success and drops the pending field on failure.
        """
        def _ready(field: HeightField) -> None:
            if self.height_field is field:
                self.rebuild()

        def _failed(field: HeightField, err: BaseException) -> None:
            if self.height_field is field:
                self.height_field = None
                self.texture_path = None

        field, future = self.loader.load(path, _ready, _failed)
        self.height_field = field
        self.texture_path = path
        # a scheduler that runs callbacks inline finishes before we track the field
        if field.decoded:
            self.rebuild()
        elif future.done() and not future.cancelled() and future.exception() is not None:
            _failed(field, future.exception())
        return future

    # ── output ──────────────────────────────────────────────────────────────

    def check_watertight(self) -> WatertightReport:
        res = self.current()
        return check_watertight(res.body, res.bottom, res.top)

    def prepared_mesh(self) -> ExportMesh:
        res = self.current()
        return prepare_for_export(res.body, (res.bottom, res.top),
                                  self.params.export_scale, self.params.swap_yz)

    def export(self, path: str, fmt: Optional[str] = None) -> str:
        """Write the current mesh; raises ExportError, leaves the session as is."""
        texture = self.texture_path if self.height_field is not None else None
        return export_mesh(self.prepared_mesh(), path, fmt, texture_path=texture)

    def close(self) -> None:
        self.loader.shutdown()
