"""Wavefront OBJ reader for triangle meshes.

Supported records (everything else is ignored):

- ``v x y z``             vertex position
- ``vt u v``              texture coordinate
- ``f a b c``             triangle by vertex index
- ``f a/ta b/tb c/tc``    triangle with texture indices (a trailing
  ``/n`` normal index is accepted and ignored)

Indices are 1-based in the file and 0-based in the returned arrays. Faces
with more than three corners are split into a triangle fan.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np

logger = logging.getLogger(__name__)


class ObjParseError(ValueError):
    """Malformed OBJ content."""


@dataclass
class ObjData:
    """Arrays read from an OBJ file.

    Attributes
    ----------
    vertices : np.ndarray
        Shape: (num_vertices, 3), float64.
    triangles : np.ndarray
        Vertex indices. Shape: (num_triangles, 3), int64.
    uvs : np.ndarray or None
        Texture coordinates. Shape: (num_uvs, 2), float64.
    triangle_uv_indices : np.ndarray or None
        Indices into ``uvs`` per triangle corner. Shape: (num_triangles, 3).
        None unless every face carries texture indices.
    """

    vertices: np.ndarray
    triangles: np.ndarray
    uvs: np.ndarray | None = None
    triangle_uv_indices: np.ndarray | None = None


def _parse_corner(token: str, line_no: int) -> tuple[int, int]:
    """Split ``a``, ``a/ta``, ``a/ta/n`` or ``a//n`` into 0-based (v, vt)."""
    fields = token.split("/")
    try:
        v = int(fields[0]) - 1
        vt = int(fields[1]) - 1 if len(fields) > 1 and fields[1] else -1
    except ValueError as exc:
        raise ObjParseError(f"line {line_no}: bad face corner {token!r}") from exc
    return v, vt


def read_obj(path: Path | str) -> ObjData:
    """Read vertices, texture coordinates and triangles from an OBJ file.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ObjParseError
        If a record is malformed or an index is out of range.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"OBJ file not found: {path}")

    vertices: list[list[float]] = []
    uvs: list[list[float]] = []
    triangles: list[tuple[int, int, int]] = []
    uv_indices: list[tuple[int, int, int]] = []
    faces_without_uv = 0

    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            parts = line.split()
            if not parts or parts[0].startswith("#"):
                continue
            tag, args = parts[0], parts[1:]

            try:
                if tag == "v":
                    vertices.append([float(a) for a in args[:3]])
                    if len(vertices[-1]) != 3:
                        raise ObjParseError(f"line {line_no}: vertex needs 3 coordinates")
                elif tag == "vt":
                    uvs.append([float(a) for a in args[:2]])
                    if len(uvs[-1]) != 2:
                        raise ObjParseError(f"line {line_no}: texture coordinate needs 2 values")
                elif tag == "f":
                    if len(args) < 3:
                        raise ObjParseError(f"line {line_no}: face needs at least 3 corners")
                    corners = [_parse_corner(a, line_no) for a in args]
                    has_uv = all(vt >= 0 for _, vt in corners)
                    for k in range(1, len(corners) - 1):
                        c0, c1, c2 = corners[0], corners[k], corners[k + 1]
                        triangles.append((c0[0], c1[0], c2[0]))
                        if has_uv:
                            uv_indices.append((c0[1], c1[1], c2[1]))
                        else:
                            faces_without_uv += 1
            except ObjParseError:
                raise
            except ValueError as exc:
                raise ObjParseError(f"line {line_no}: {exc}") from exc

    vertex_arr = np.array(vertices, dtype=np.float64).reshape(-1, 3)
    tri_arr = np.array(triangles, dtype=np.int64).reshape(-1, 3)

    if tri_arr.size and (tri_arr.min() < 0 or tri_arr.max() >= vertex_arr.shape[0]):
        raise ObjParseError(f"{path}: vertex index out of range")

    uv_arr = np.array(uvs, dtype=np.float64).reshape(-1, 2) if uvs else None
    uv_idx_arr = None
    if uv_indices and faces_without_uv == 0:
        uv_idx_arr = np.array(uv_indices, dtype=np.int64).reshape(-1, 3)
        if uv_arr is None or uv_idx_arr.min() < 0 or uv_idx_arr.max() >= uv_arr.shape[0]:
            raise ObjParseError(f"{path}: texture index out of range")
    elif uv_indices:
        logger.warning(
            "%s: %d triangles lack texture indices; ignoring texture indices",
            path, faces_without_uv,
        )

    logger.info(
        "Read %s: %d vertices, %d triangles, %d uvs",
        path.name, vertex_arr.shape[0], tri_arr.shape[0], 0 if uv_arr is None else uv_arr.shape[0],
    )
    return ObjData(vertex_arr, tri_arr, uv_arr, uv_idx_arr)
