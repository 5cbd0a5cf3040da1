"""OBJ loading and per-cube extraction/serialization."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Sequence

import logging
import os

import numpy as np

from .types import Extent, Face, FormatError, RectangleTransform, TextureVertex, Vertex

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 1000
EBO_SUFFIX = ".ebo"
EBO_FACE_MARKER = b"F"

# One record per face corner: marker byte then vertex xyz and texture uv.
EBO_CORNER_DTYPE = np.dtype(
    [("marker", "S1"), ("x", "<f8"), ("y", "<f8"), ("z", "<f8"), ("u", "<f8"), ("v", "<f8")]
)

_FORMAT_CHUNK = 4096


def default_workers() -> int:
    return os.cpu_count() or 1


def remove_stale(path: str | Path) -> Path:
    """Drop an existing output file and make sure its directory exists."""

    p = Path(path)
    if p.exists():
        p.unlink()
    if p.parent:
        p.parent.mkdir(parents=True, exist_ok=True)
    return p


def _format_records(records: Sequence[object], executor: ThreadPoolExecutor | None) -> list[str]:
    # Records already carry their final indices, so formatting needs no lock.
    if executor is None or len(records) <= _FORMAT_CHUNK:
        return [str(r) for r in records]

    chunks = [records[i : i + _FORMAT_CHUNK] for i in range(0, len(records), _FORMAT_CHUNK)]
    out: list[str] = []
    for lines in executor.map(lambda chunk: [str(r) for r in chunk], chunks):
        out.extend(lines)
    return out


def _distinct(values: Iterable[int]) -> list[int]:
    return list(dict.fromkeys(values))


@dataclass(slots=True)
class TileMesh:
    """A renumbered, self-contained copy of the faces inside one extent."""

    vertices: List[Vertex]
    texture_vertices: List[TextureVertex]
    faces: List[Face]
    mtl: str | None = None

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    def apply_texture_transforms(self, transforms: Sequence[RectangleTransform]) -> int:
        """Move every texture vertex into packed-atlas space; returns how many moved."""

        moved = 0
        for tv in self.texture_vertices:
            for t in transforms:
                if tv.in_rectangle_transform(t):
                    if not tv.transformed:
                        tv.transform(t)
                        moved += 1
                    break
        return moved

    def corner_array(self) -> np.ndarray:
        """Face corners as a structured array in EBO record layout."""

        n = sum(len(f.vertex_indices) for f in self.faces)
        out = np.zeros((n,), dtype=EBO_CORNER_DTYPE)
        out["marker"] = EBO_FACE_MARKER

        pos = np.asarray([(v.x, v.y, v.z) for v in self.vertices], dtype=np.float64).reshape((-1, 3))
        uvs = np.asarray([(t.x, t.y) for t in self.texture_vertices], dtype=np.float64).reshape((-1, 2))
        vi = np.fromiter((i for f in self.faces for i in f.vertex_indices), dtype=np.int64, count=n) - 1
        ti = np.fromiter((i for f in self.faces for i in f.texture_vertex_indices), dtype=np.int64, count=n) - 1

        out["x"] = pos[vi, 0]
        out["y"] = pos[vi, 1]
        out["z"] = pos[vi, 2]
        out["u"] = uvs[ti, 0]
        out["v"] = uvs[ti, 1]
        return out

    def write_obj(self, path: str | Path, mtl: str | None = None, *, executor: ThreadPoolExecutor | None = None) -> Path:
        p = remove_stale(path)
        material = mtl or self.mtl

        lines = ["# Generated by mesh_cuber"]
        if material:
            lines.append(f"mtllib {material}")
        lines.extend(_format_records(self.vertices, executor))
        lines.extend(_format_records(self.texture_vertices, executor))
        lines.extend(_format_records(self.faces, executor))

        with open(p, "w", encoding="utf-8", newline="\n") as fh:
            fh.write("\n".join(lines))
            fh.write("\n")
        return p

    def write_ebo(self, path: str | Path) -> Path:
        p = remove_stale(path)
        p.write_bytes(self.corner_array().tobytes())
        return p


def read_ebo(path: str | Path) -> np.ndarray:
    data = Path(path).read_bytes()
    if len(data) % EBO_CORNER_DTYPE.itemsize:
        raise FormatError(f"EBO size {len(data)} is not a multiple of {EBO_CORNER_DTYPE.itemsize}")
    return np.frombuffer(data, dtype=EBO_CORNER_DTYPE)


@dataclass(slots=True)
class ObjMesh:
    vertices: List[Vertex] = field(default_factory=list)
    faces: List[Face] = field(default_factory=list)
    texture_vertices: List[TextureVertex] = field(default_factory=list)
    size: Extent | None = None
    mtl: str | None = None
    workers: int = field(default_factory=default_workers)

    @classmethod
    def load(
        cls,
        source: str | Path | Iterable[str],
        lines_processed_callback: Callable[[int], None] | None = None,
        *,
        workers: int | None = None,
    ) -> "ObjMesh":
        """Parse an OBJ file (or an iterable of lines) into memory."""

        mesh = cls(workers=workers or default_workers())
        if isinstance(source, (str, Path)):
            with open(source, "r", encoding="utf-8", errors="replace") as fh:
                mesh._load_lines(fh, lines_processed_callback)
        else:
            mesh._load_lines(source, lines_processed_callback)
        return mesh

    def _load_lines(self, lines: Iterable[str], callback: Callable[[int], None] | None) -> None:
        lines_processed = 0
        for line in lines:
            lines_processed += 1
            try:
                self._process_line(line)
            except FormatError as exc:
                raise FormatError(str(exc), field=exc.field, line_number=lines_processed) from None

            if callback is not None and lines_processed % PROGRESS_INTERVAL == 0:
                callback(lines_processed)

        if callback is not None:
            callback(lines_processed)

        self.update_size()
        logger.info(
            "Loaded %d vertices, %d texture vertices, %d faces",
            len(self.vertices),
            len(self.texture_vertices),
            len(self.faces),
        )

    def _process_line(self, line: str) -> None:
        parts = line.split()
        if not parts:
            return

        prefix = parts[0]
        if prefix == "mtllib":
            if len(parts) < 2:
                raise FormatError("'mtllib' record must be of minimum length 2", field="mtllib")
            self.mtl = parts[1]
        elif prefix == Vertex.PREFIX:
            self.vertices.append(Vertex.parse(parts, len(self.vertices) + 1))
        elif prefix == TextureVertex.PREFIX:
            self.texture_vertices.append(TextureVertex.parse(parts, len(self.texture_vertices) + 1))
        elif prefix == Face.PREFIX:
            self.faces.append(Face.parse(parts, len(self.vertices), len(self.texture_vertices)))

    def update_size(self) -> Extent:
        if not self.vertices:
            raise ValueError("mesh has no vertices")
        self.size = Extent.from_points(np.asarray([(v.x, v.y, v.z) for v in self.vertices], dtype=np.float64))
        return self.size

    def grid_tile_extent(self, grid_height: int, grid_width: int, grid_depth: int, tile_x: int, tile_y: int, tile_z: int) -> Extent:
        if self.size is None:
            self.update_size()
        return self.size.grid_cell(grid_width, grid_height, grid_depth, tile_x, tile_y, tile_z)

    def faces_in_extent(self, extent: Extent) -> List[Face]:
        return [f for f in self.faces if f.in_extent(extent, self.vertices)]

    def extract(self, extent: Extent) -> TileMesh | None:
        """Copy the faces touching ``extent`` with densely renumbered indices.

        Returns ``None`` when no face touches the extent. Source faces are never
        modified.
        """

        chunk_faces = self.faces_in_extent(extent)
        if not chunk_faces:
            return None

        with ThreadPoolExecutor(max_workers=2) as pool:
            tv = pool.submit(lambda: _distinct(i for f in chunk_faces for i in f.vertex_indices))
            ttv = pool.submit(lambda: _distinct(i for f in chunk_faces for i in f.texture_vertex_indices))
            required_vertices = tv.result()
            required_texture_vertices = ttv.result()

        logger.debug("%d vertices and %d texture vertices", len(required_vertices), len(required_texture_vertices))

        vertex_map = {old: new for new, old in enumerate(required_vertices, start=1)}
        texture_map = {old: new for new, old in enumerate(required_texture_vertices, start=1)}

        vertices: List[Vertex] = []
        for old in required_vertices:
            src = self.vertices[old - 1]
            vertices.append(Vertex(src.x, src.y, src.z, vertex_map[old]))

        texture_vertices: List[TextureVertex] = []
        for old in required_texture_vertices:
            src = self.texture_vertices[old - 1]
            texture_vertices.append(TextureVertex(src.x, src.y, texture_map[old], src.transformed))

        faces: List[Face] = []
        for f in chunk_faces:
            g = f.copy()
            g.vertex_indices = [vertex_map[i] for i in f.vertex_indices]
            g.texture_vertex_indices = [texture_map[i] for i in f.texture_vertex_indices]
            faces.append(g)

        return TileMesh(vertices=vertices, texture_vertices=texture_vertices, faces=faces, mtl=self.mtl)

    def write_obj(
        self,
        path: str | Path,
        boundaries: Extent,
        mtl_override: str | None = None,
        *,
        write_ebo: bool = True,
        transforms: Sequence[RectangleTransform] | None = None,
    ) -> int:
        """Write the faces inside ``boundaries`` as OBJ (+ EBO).

        Returns the number of vertices written, or 0 if nothing was written.
        """

        tile = self.extract(boundaries)
        if tile is None:
            return 0

        if transforms:
            tile.apply_texture_transforms(transforms)

        with ThreadPoolExecutor(max_workers=max(1, int(self.workers))) as pool:
            tile.write_obj(path, mtl_override, executor=pool)
        if write_ebo:
            tile.write_ebo(str(path) + EBO_SUFFIX)

        return tile.vertex_count

    def write_obj_grid_tile(
        self,
        path: str | Path,
        grid_height: int,
        grid_width: int,
        grid_depth: int,
        tile_x: int,
        tile_y: int,
        tile_z: int,
        mtl_override: str | None = None,
        **kwargs,
    ) -> int:
        extent = self.grid_tile_extent(grid_height, grid_width, grid_depth, tile_x, tile_y, tile_z)
        return self.write_obj(path, extent, mtl_override, **kwargs)
