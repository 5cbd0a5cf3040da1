"""Occupancy record for a sliced cube set."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

import json

import numpy as np

from .types import Extent


@dataclass(slots=True)
class CubeMetadata:
    set_size: tuple[int, int, int]
    world_bounds: Extent | None = None
    virtual_world_bounds: Extent | None = None
    texture_set_size: tuple[int, int] = (1, 1)
    vertex_count: int = 0
    cube_exists: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        sx, sy, sz = (int(s) for s in self.set_size)
        if sx <= 0 or sy <= 0 or sz <= 0:
            raise ValueError("set_size must be positive in every axis")
        self.set_size = (sx, sy, sz)
        self.texture_set_size = (int(self.texture_set_size[0]), int(self.texture_set_size[1]))
        self.cube_exists = np.zeros(self.set_size, dtype=bool)

    def exists(self, x: int, y: int, z: int) -> bool:
        return bool(self.cube_exists[x, y, z])

    def mark(self, x: int, y: int, z: int, vertex_count: int = 0) -> None:
        self.cube_exists[x, y, z] = True
        self.vertex_count += int(vertex_count)

    def occupied_cells(self) -> Iterator[tuple[int, int, int]]:
        for x, y, z in np.argwhere(self.cube_exists):
            yield int(x), int(y), int(z)

    @property
    def occupied_count(self) -> int:
        return int(np.count_nonzero(self.cube_exists))

    def to_dict(self) -> dict:
        return {
            "SetSize": {"X": self.set_size[0], "Y": self.set_size[1], "Z": self.set_size[2]},
            "TextureSetSize": {"X": self.texture_set_size[0], "Y": self.texture_set_size[1]},
            "WorldBounds": self.world_bounds.to_dict() if self.world_bounds else None,
            "VirtualWorldBounds": self.virtual_world_bounds.to_dict() if self.virtual_world_bounds else None,
            "VertexCount": self.vertex_count,
            "CubeExists": self.cube_exists.tolist(),
        }

    def write_json(self, path: str | Path) -> Path:
        p = Path(path)
        if p.parent:
            p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return p
