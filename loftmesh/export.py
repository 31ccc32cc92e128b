"""
Export transform and file writers.

prepare_for_export() merges clones of the body and caps into one flat
buffer set in export space (scaled, optionally Y-up → Z-up).  The writers
render the whole file in memory first, so a failure never leaves a
half-written file behind.
"""

import io
import logging
import os
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .repair import compute_normals

logger = logging.getLogger(__name__)

FORMATS = ("stl", "stl-binary", "obj", "glb")
_SUFFIX_FORMATS = {".stl": "stl-binary", ".obj": "obj", ".glb": "glb"}

STL_HEADER = b"loftmesh binary STL"
STL_RECORD = np.dtype([
    ("normal", "<f4", (3,)),
    ("vertices", "<f4", (3, 3)),
    ("attr", "<u2"),
])


class ExportError(RuntimeError):
    """Raised when a mesh cannot be turned into a file."""


@dataclass
class ExportMesh:
    positions: np.ndarray   # (N, 3) float64
    normals: np.ndarray     # (N, 3) float64
    uvs: np.ndarray         # (N, 2) float64
    indices: np.ndarray     # (M, 3) int64

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return len(self.indices)


def _as_array(value, width: int, name: str, dtype) -> np.ndarray:
    try:
        arr = np.array(value, dtype=dtype, copy=True)
    except (TypeError, ValueError) as e:
        raise ExportError(f"{name} cannot be converted to numbers") from e
    if arr.size == 0:
        return arr.reshape(0, width)
    if arr.ndim == 1 and arr.size % width == 0:
        arr = arr.reshape(-1, width)
    if arr.ndim != 2 or arr.shape[1] != width:
        raise ExportError(f"{name} has shape {arr.shape}, expected (n, {width})")
    return arr


def merge_meshes(parts: Sequence) -> ExportMesh:
    """
    Concatenate mesh-like objects (anything with positions / normals / uvs
    / indices attributes) into one ExportMesh, offsetting the indices.
    Missing normals, UVs or indices are filled in.
    """
    all_p, all_n, all_uv, all_i = [], [], [], []
    offset = 0
    for part in parts:
        p = _as_array(part.positions, 3, "positions", np.float64)
        n_verts = len(p)

        idx = getattr(part, "indices", None)
        if idx is None or len(idx) == 0:
            if n_verts % 3:
                raise ExportError(f"{n_verts} unindexed vertices do not form whole triangles")
            idx = np.arange(n_verts, dtype=np.int64).reshape(-1, 3)
        idx = _as_array(idx, 3, "indices", np.int64)
        if len(idx) and (idx.min() < 0 or idx.max() >= n_verts):
            raise ExportError("triangle index out of range")

        n = getattr(part, "normals", None)
        if n is None or len(n) == 0:
            n = compute_normals(p, idx, n_verts)
        n = _as_array(n, 3, "normals", np.float64)

        uv = getattr(part, "uvs", None)
        if uv is None or len(uv) == 0:
            uv = np.zeros((n_verts, 2))
        uv = _as_array(uv, 2, "uvs", np.float64)

        if len(n) != n_verts or len(uv) != n_verts:
            raise ExportError("per-vertex buffers disagree in length")

        all_p.append(p)
        all_n.append(n)
        all_uv.append(uv)
        all_i.append(idx + offset)
        offset += n_verts

    if not all_p:
        raise ExportError("nothing to export")
    return ExportMesh(
        positions=np.concatenate(all_p, axis=0),
        normals=np.concatenate(all_n, axis=0),
        uvs=np.concatenate(all_uv, axis=0),
        indices=np.concatenate(all_i, axis=0),
    )


def prepare_for_export(body, caps: Sequence = (), scale: float = 10.0,
                       swap_yz: bool = True) -> ExportMesh:
    """
    Export-space copy of body + caps.  The live meshes are not touched.

    Swapping Y and Z is a mirror, so the triangle winding is reversed at
    the same time to keep faces pointing outward.
    """
    parts = [body] + [c for c in caps if c is not None]
    mesh = merge_meshes(parts)
    if mesh.vertex_count == 0:
        raise ExportError("mesh has no vertices")

    mesh.positions *= float(scale)
    if swap_yz:
        mesh.positions = mesh.positions[:, [0, 2, 1]]
        mesh.normals = mesh.normals[:, [0, 2, 1]]
        mesh.indices = mesh.indices[:, [0, 2, 1]]

    if not np.all(np.isfinite(mesh.positions)):
        raise ExportError("mesh contains non-finite coordinates")

    logger.info("[export] %d vertices, %d triangles  (scale %.3g%s)",
                mesh.vertex_count, mesh.triangle_count, scale,
                ", Z-up" if swap_yz else "")
    return mesh


def face_normals(mesh: ExportMesh) -> np.ndarray:
    v = mesh.positions[mesh.indices]
    fn = np.cross(v[:, 1] - v[:, 0], v[:, 2] - v[:, 0])
    flen = np.linalg.norm(fn, axis=1, keepdims=True)
    return fn / np.where(flen == 0, 1.0, flen)


# ──────────────────────────────────────────────────────────────────────────────
# Serialisers
# ──────────────────────────────────────────────────────────────────────────────

def render_stl_ascii(mesh: ExportMesh, name: str = "loftmesh") -> str:
    fn = face_normals(mesh)
    tris = mesh.positions[mesh.indices]
    out = io.StringIO()
    out.write(f"solid {name}\n")
    for n, tri in zip(fn, tris):
        out.write(f"  facet normal {n[0]:.6e} {n[1]:.6e} {n[2]:.6e}\n")
        out.write("    outer loop\n")
        for v in tri:
            out.write(f"      vertex {v[0]:.6e} {v[1]:.6e} {v[2]:.6e}\n")
        out.write("    endloop\n")
        out.write("  endfacet\n")
    out.write(f"endsolid {name}\n")
    return out.getvalue()


def render_stl_binary(mesh: ExportMesh) -> bytes:
    """80-byte header, uint32 triangle count, 50 bytes per triangle."""
    records = np.zeros(mesh.triangle_count, dtype=STL_RECORD)
    records["normal"] = face_normals(mesh)
    records["vertices"] = mesh.positions[mesh.indices]
    header = STL_HEADER.ljust(80, b" ")
    count = np.array([mesh.triangle_count], dtype="<u4").tobytes()
    return header + count + records.tobytes()


def render_obj(mesh: ExportMesh, mtl_name: Optional[str] = None) -> str:
    out = io.StringIO()
    out.write("# Generated by loftmesh\n")
    if mtl_name:
        out.write(f"mtllib {mtl_name}\n")
    out.write("o LoftMesh\n")
    for v in mesh.positions:
        out.write(f"v {v[0]:.6f} {v[1]:.6f} {v[2]:.6f}\n")
    for uv in mesh.uvs:
        out.write(f"vt {uv[0]:.6f} {uv[1]:.6f}\n")
    for n in mesh.normals:
        out.write(f"vn {n[0]:.6f} {n[1]:.6f} {n[2]:.6f}\n")
    if mtl_name:
        out.write("usemtl LoftMeshMat\n")
    out.write("s 1\n")
    # OBJ is 1-indexed
    for tri in mesh.indices + 1:
        i0, i1, i2 = tri
        out.write(f"f {i0}/{i0}/{i0} {i1}/{i1}/{i1} {i2}/{i2}/{i2}\n")
    return out.getvalue()


def render_mtl(texture_path: Optional[str]) -> str:
    lines = [
        "# Generated by loftmesh",
        "newmtl LoftMeshMat",
        "Ka 1.000 1.000 1.000",
        "Kd 1.000 1.000 1.000",
        "Ks 0.000 0.000 0.000",
        "d 1.0",
        "illum 1",
    ]
    if texture_path:
        lines.append(f"map_Kd {os.path.basename(texture_path)}")
    return "\n".join(lines) + "\n"


def render_glb(mesh: ExportMesh, texture_path: Optional[str] = None) -> bytes:
    """GLB bytes via trimesh (pip install loftmesh[glb])."""
    try:
        import trimesh
        from trimesh.visual.material import PBRMaterial
        from trimesh.visual.texture import TextureVisuals
    except ImportError as e:
        raise ExportError("GLB export needs trimesh; run: pip install trimesh") from e

    tm = trimesh.Trimesh(vertices=mesh.positions, faces=mesh.indices,
                         vertex_normals=mesh.normals, process=False)
    if texture_path:
        from PIL import Image
        img = Image.open(texture_path).convert("RGBA")
        tm.visual = TextureVisuals(uv=mesh.uvs, material=PBRMaterial(baseColorTexture=img))
    data = tm.export(file_type="glb")
    if not isinstance(data, (bytes, bytearray)):
        raise ExportError(f"trimesh returned {type(data).__name__}, expected bytes")
    return bytes(data)


def resolve_format(path: str, fmt: Optional[str] = None) -> str:
    if fmt is None:
        suffix = os.path.splitext(path)[1].lower()
        if suffix not in _SUFFIX_FORMATS:
            raise ExportError(f"cannot infer export format from {path!r}")
        return _SUFFIX_FORMATS[suffix]
    fmt = fmt.lower()
    if fmt not in FORMATS:
        raise ExportError(f"unknown export format {fmt!r}; choose from {', '.join(FORMATS)}")
    return fmt


def _write(path: str, payload) -> None:
    if isinstance(payload, str):
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            f.write(payload)
    elif isinstance(payload, (bytes, bytearray)):
        with open(path, "wb") as f:
            f.write(payload)
    else:
        raise ExportError(f"writer produced {type(payload).__name__}, expected str or bytes")


def export_mesh(mesh: ExportMesh, path: str, fmt: Optional[str] = None,
                texture_path: Optional[str] = None) -> str:
    """
    Write ``mesh`` to ``path``.  ``fmt`` is one of FORMATS, or None to go
    by the file suffix (``.stl`` means binary).  Returns the format used.
    """
    fmt = resolve_format(path, fmt)
    if mesh.vertex_count == 0:
        raise ExportError("mesh has no vertices")

    extra = {}
    try:
        if fmt == "stl":
            payload = render_stl_ascii(mesh)
        elif fmt == "stl-binary":
            payload = render_stl_binary(mesh)
        elif fmt == "obj":
            mtl_path = os.path.splitext(path)[0] + ".mtl"
            payload = render_obj(mesh, os.path.basename(mtl_path))
            extra[mtl_path] = render_mtl(texture_path)
        else:
            payload = render_glb(mesh, texture_path)
    except ExportError:
        raise
    except (TypeError, ValueError, UnicodeError) as e:
        raise ExportError(f"could not serialise mesh as {fmt}: {e}") from e

    logger.info("[export] Writing %s …", path)
    try:
        _write(path, payload)
        for extra_path, text in extra.items():
            _write(extra_path, text)
    except OSError as e:
        raise ExportError(f"could not write {path}: {e}") from e
    logger.info("[export] Done → %s", path)
    return fmt
