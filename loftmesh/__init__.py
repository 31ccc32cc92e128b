"""
loftmesh: surface-of-revolution mesh engine.

A Bézier profile is revolved around the Y axis, optionally displaced by a
greyscale height map, smoothed, closed with end caps and exported for
printing.
"""

from .caps import CapMesh, WatertightReport, build_caps, check_watertight
from .config import LatheParams, NormalMode
from .displace import apply_displacement, falloff_multiplier
from .export import ExportError, ExportMesh, export_mesh, prepare_for_export
from .heightfield import HeightField, TextureLoader, decode_height_field
from .lathe import MeshGrid, build_lathe_grid
from .profile import Anchor, Profile, load_profile, save_profile
from .repair import enforce_outward, recompute_normals, smooth
from .session import BuildResult, LoftSession, build_mesh

__version__ = "0.1.0"

__all__ = [
    "Anchor", "BuildResult", "CapMesh", "ExportError", "ExportMesh",
    "HeightField", "LatheParams", "LoftSession", "MeshGrid", "NormalMode",
    "Profile", "TextureLoader", "WatertightReport",
    "apply_displacement", "build_caps", "build_lathe_grid", "build_mesh",
    "check_watertight", "decode_height_field", "enforce_outward",
    "export_mesh", "falloff_multiplier", "load_profile", "prepare_for_export",
    "recompute_normals", "save_profile", "smooth",
]
