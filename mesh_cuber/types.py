"""Geometry primitives shared by the mesh container and the texture slicer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np


class FormatError(ValueError):
    """Raised when an OBJ record cannot be parsed."""

    def __init__(self, message: str, *, field: str | None = None, line_number: int | None = None) -> None:
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.field = field
        self.line_number = line_number


def _parse_float(token: str, name: str) -> float:
    try:
        return float(token)
    except ValueError:
        raise FormatError(f"Could not parse {name} parameter as double: {token!r}", field=name) from None


def _check_length(data: Sequence[str], minimum: int, prefix: str) -> None:
    if len(data) < minimum:
        raise FormatError(f"'{prefix}' record must be of minimum length {minimum}", field=prefix)


@dataclass(slots=True)
class Extent:
    x_min: float = 0.0
    x_max: float = 0.0
    y_min: float = 0.0
    y_max: float = 0.0
    z_min: float = 0.0
    z_max: float = 0.0

    @property
    def x_size(self) -> float:
        return self.x_max - self.x_min

    @property
    def y_size(self) -> float:
        return self.y_max - self.y_min

    @property
    def z_size(self) -> float:
        return self.z_max - self.z_min

    def contains(self, x: float, y: float, z: float) -> bool:
        return (
            self.x_min <= x <= self.x_max
            and self.y_min <= y <= self.y_max
            and self.z_min <= z <= self.z_max
        )

    @staticmethod
    def from_points(points: np.ndarray) -> "Extent":
        pts = np.asarray(points, dtype=np.float64)
        if pts.ndim != 2 or pts.shape[1] != 3 or pts.shape[0] == 0:
            raise ValueError("points must be a non-empty (N,3) array")
        lo = pts.min(axis=0)
        hi = pts.max(axis=0)
        return Extent(
            x_min=float(lo[0]),
            x_max=float(hi[0]),
            y_min=float(lo[1]),
            y_max=float(hi[1]),
            z_min=float(lo[2]),
            z_max=float(hi[2]),
        )

    def grid_cell(self, grid_width: int, grid_height: int, grid_depth: int, x: int, y: int, z: int) -> "Extent":
        """Extent of cell (x, y, z) when this extent is split evenly into a grid."""

        tile_width = self.x_size / grid_width
        tile_height = self.y_size / grid_height
        tile_depth = self.z_size / grid_depth

        x_offset = tile_width * x
        y_offset = tile_height * y
        z_offset = tile_depth * z

        return Extent(
            x_min=self.x_min + x_offset,
            x_max=self.x_min + x_offset + tile_width,
            y_min=self.y_min + y_offset,
            y_max=self.y_min + y_offset + tile_height,
            z_min=self.z_min + z_offset,
            z_max=self.z_min + z_offset + tile_depth,
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "XMin": self.x_min,
            "XMax": self.x_max,
            "YMin": self.y_min,
            "YMax": self.y_max,
            "ZMin": self.z_min,
            "ZMax": self.z_max,
        }

    @staticmethod
    def from_dict(d: dict) -> "Extent":
        return Extent(
            x_min=float(d["XMin"]),
            x_max=float(d["XMax"]),
            y_min=float(d["YMin"]),
            y_max=float(d["YMax"]),
            z_min=float(d["ZMin"]),
            z_max=float(d["ZMax"]),
        )


@dataclass(slots=True)
class Vertex:
    x: float
    y: float
    z: float
    index: int = 0

    MINIMUM_DATA_LENGTH = 4
    PREFIX = "v"

    @classmethod
    def parse(cls, data: Sequence[str], index: int = 0) -> "Vertex":
        _check_length(data, cls.MINIMUM_DATA_LENGTH, cls.PREFIX)
        return cls(
            x=_parse_float(data[1], "X"),
            y=_parse_float(data[2], "Y"),
            z=_parse_float(data[3], "Z"),
            index=index,
        )

    def __str__(self) -> str:
        return f"v {self.x!r} {self.y!r} {self.z!r}"


@dataclass(slots=True)
class RectangleTransform:
    """Maps UVs inside a source-atlas rectangle to their spot in a packed atlas.

    ``top``/``bottom``/``left``/``right`` are fractions of the original image in
    UV orientation (v grows upward, so ``top >= bottom``). ``offset_*`` is the
    normalized translation between source and destination origins and
    ``scale_*`` the ratio of original to packed canvas dimensions.
    """

    top: float
    bottom: float
    left: float
    right: float
    offset_x: float
    offset_y: float
    scale_x: float
    scale_y: float

    def contains_point(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.bottom <= y <= self.top

    def to_rectangle(self, width: int, height: int) -> tuple[int, int, int, int]:
        """Pixel box ``(x0, y0, x1, y1)`` of the source region in an image of the given size."""

        x0 = int(self.left * width)
        y0 = int((1.0 - self.top) * height)
        x1 = int(self.right * width)
        y1 = int((1.0 - self.bottom) * height)
        return x0, y0, x1, y1

    def to_dict(self) -> dict[str, float]:
        return {
            "Top": self.top,
            "Bottom": self.bottom,
            "Left": self.left,
            "Right": self.right,
            "OffsetX": self.offset_x,
            "OffsetY": self.offset_y,
            "ScaleX": self.scale_x,
            "ScaleY": self.scale_y,
        }


@dataclass(slots=True)
class TextureVertex:
    x: float
    y: float
    index: int = 0
    transformed: bool = False

    MINIMUM_DATA_LENGTH = 3
    PREFIX = "vt"

    @classmethod
    def parse(cls, data: Sequence[str], index: int = 0) -> "TextureVertex":
        _check_length(data, cls.MINIMUM_DATA_LENGTH, cls.PREFIX)
        return cls(x=_parse_float(data[1], "X"), y=_parse_float(data[2], "Y"), index=index)

    def in_rectangle_transform(self, transform: RectangleTransform) -> bool:
        return transform.contains_point(self.x, self.y)

    def transform(self, transform: RectangleTransform) -> None:
        if self.transformed:
            return

        self.x = transform.left + (self.x - transform.left) * transform.scale_x - transform.offset_x
        self.y = transform.top + (self.y - transform.top) * transform.scale_y + transform.offset_y
        self.transformed = True

    def __str__(self) -> str:
        return f"vt {self.x!r} {self.y!r}"


def _parse_index(token: str, name: str, count: int) -> int:
    try:
        value = int(token)
    except ValueError:
        raise FormatError(f"Could not parse {name} index as integer: {token!r}", field=name) from None
    if value < 0:
        # Relative reference to the records seen so far.
        value = count + value + 1
    if value <= 0 or value > count:
        raise FormatError(f"{name} index out of range: {token!r}", field=name)
    return value


@dataclass(slots=True)
class Face:
    """A polygon of parallel vertex / texture-vertex corner indices (1-based)."""

    vertex_indices: list[int]
    texture_vertex_indices: list[int]
    _original_vertex_indices: tuple[int, ...] = field(default=(), repr=False, compare=False)
    _original_texture_vertex_indices: tuple[int, ...] = field(default=(), repr=False, compare=False)

    MINIMUM_DATA_LENGTH = 4
    PREFIX = "f"

    def __post_init__(self) -> None:
        if len(self.vertex_indices) != len(self.texture_vertex_indices):
            raise ValueError("vertex and texture vertex index lists must have equal length")
        self.vertex_indices = list(self.vertex_indices)
        self.texture_vertex_indices = list(self.texture_vertex_indices)
        if not self._original_vertex_indices:
            self._original_vertex_indices = tuple(self.vertex_indices)
            self._original_texture_vertex_indices = tuple(self.texture_vertex_indices)

    @classmethod
    def parse(cls, data: Sequence[str], vertex_count: int = 0, texture_count: int = 0) -> "Face":
        _check_length(data, cls.MINIMUM_DATA_LENGTH, cls.PREFIX)

        vertex_indices: list[int] = []
        texture_indices: list[int] = []
        for corner in data[1:]:
            parts = corner.split("/")
            if len(parts) < 2 or not parts[1]:
                raise FormatError(f"Face corner must be 'v/vt': {corner!r}", field="vt")
            vertex_indices.append(_parse_index(parts[0], "v", vertex_count))
            texture_indices.append(_parse_index(parts[1], "vt", texture_count))
        return cls(vertex_indices, texture_indices)

    @property
    def texture_index_set(self) -> frozenset[int]:
        return frozenset(self.texture_vertex_indices)

    def in_extent(self, extent: Extent, vertices: Sequence[Vertex]) -> bool:
        for i in self.vertex_indices:
            v = vertices[i - 1]
            if extent.contains(v.x, v.y, v.z):
                return True
        return False

    def update_vertex_index(self, old_index: int, new_index: int) -> None:
        self.vertex_indices = [new_index if i == old_index else i for i in self.vertex_indices]

    def update_texture_vertex_index(self, old_index: int, new_index: int) -> None:
        self.texture_vertex_indices = [new_index if i == old_index else i for i in self.texture_vertex_indices]

    def revert(self) -> None:
        self.vertex_indices = list(self._original_vertex_indices)
        self.texture_vertex_indices = list(self._original_texture_vertex_indices)

    def copy(self) -> "Face":
        return Face(
            list(self.vertex_indices),
            list(self.texture_vertex_indices),
            self._original_vertex_indices,
            self._original_texture_vertex_indices,
        )

    def __str__(self) -> str:
        corners = " ".join(f"{v}/{t}" for v, t in zip(self.vertex_indices, self.texture_vertex_indices))
        return f"f {corners}"
