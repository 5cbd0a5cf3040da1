"""Slice a textured OBJ into cubes with per-column packed textures."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List

import json
import logging

from .glb_writer import write_glb_tile
from .metadata import CubeMetadata
from .objio import EBO_SUFFIX, ObjMesh, default_workers
from .packer import DEFAULT_MAX_SIZE, PackingBudgetExceeded
from .texture import PIXEL_BUFFER, TextureSlicer
from .types import RectangleTransform

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SlicingOptions:
    obj: str = ""
    texture: str | None = None
    cube_grid: tuple[int, int, int] = (1, 1, 1)
    texture_slice_x: int = 1
    texture_slice_y: int = 1
    texture_scale: float = 1.0
    mtl_override: str | None = None
    write_ebo: bool = True
    write_glb: bool = False
    max_texture_size: int = DEFAULT_MAX_SIZE
    pixel_buffer: int = PIXEL_BUFFER
    workers: int = field(default_factory=default_workers)
    debug: bool = False

    def validate(self) -> None:
        if not self.obj:
            raise ValueError("obj path is required")
        if len(self.cube_grid) != 3 or any(int(c) < 1 for c in self.cube_grid):
            raise ValueError("cube_grid must be three positive integers")
        if self.texture_slice_x < 1 or self.texture_slice_y < 1:
            raise ValueError("texture slices must be >= 1")
        gx, gy, _gz = self.cube_grid
        if gx % self.texture_slice_x or gy % self.texture_slice_y:
            raise ValueError("cube_grid X/Y must be multiples of the texture slices")
        if self.texture_scale <= 0.0:
            raise ValueError("texture_scale must be > 0")
        if self.max_texture_size < 1:
            raise ValueError("max_texture_size must be >= 1")
        if self.pixel_buffer < 0:
            raise ValueError("pixel_buffer must be >= 0")

    @classmethod
    def from_dict(cls, data: dict) -> "SlicingOptions":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError("unknown slicing options: " + ",".join(unknown))
        kwargs = dict(data)
        if "cube_grid" in kwargs:
            kwargs["cube_grid"] = tuple(int(c) for c in kwargs["cube_grid"])
        return cls(**kwargs)

    @classmethod
    def from_json(cls, text: str) -> "SlicingOptions":
        return cls.from_dict(json.loads(text))


def _write_mtl(path: Path, texture_name: str) -> None:
    if path.exists():
        path.unlink()
    path.write_text(
        "newmtl material_0\nKa 1.0 1.0 1.0\nKd 1.0 1.0 1.0\nd 1.0\nillum 1\n" + f"map_Kd {texture_name}\n",
        encoding="utf-8",
    )


def generate_cubes(options: SlicingOptions, output_dir: str | Path, mesh: ObjMesh | None = None) -> CubeMetadata:
    """Run the whole slicing job and return the populated occupancy grid."""

    options.validate()
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    if mesh is None:
        mesh = ObjMesh.load(
            options.obj,
            lambda n: logger.debug("%d lines processed", n),
            workers=options.workers,
        )
    mesh.update_size()

    gx, gy, gz = (int(c) for c in options.cube_grid)
    metadata = CubeMetadata(
        set_size=(gx, gy, gz),
        world_bounds=mesh.size,
        texture_set_size=(options.texture_slice_x, options.texture_slice_y),
    )

    slicer = TextureSlicer(mesh, options.texture) if options.texture else None
    cubes_per_tile_x = gx // options.texture_slice_x
    cubes_per_tile_y = gy // options.texture_slice_y

    with ThreadPoolExecutor(max_workers=max(1, int(options.workers))) as pool:
        for ty in range(options.texture_slice_y):
            for tx in range(options.texture_slice_x):
                transforms: List[RectangleTransform] = []
                mtl = options.mtl_override
                texture_name: str | None = None

                if slicer is not None:
                    texture_name = f"{tx}_{ty}.jpg"
                    texture_path = out / "texture" / texture_name
                    try:
                        transforms = slicer.generate_texture_tile(
                            texture_path,
                            tx,
                            ty,
                            options.texture_slice_x,
                            options.texture_slice_y,
                            scale=options.texture_scale,
                            max_size=options.max_texture_size,
                            pixel_buffer=options.pixel_buffer,
                            executor=pool,
                        )
                    except PackingBudgetExceeded as exc:
                        logger.error("Texture tile %d, %d skipped: %s", tx, ty, exc)
                        texture_name = None

                    if transforms and texture_name is not None:
                        mtl_name = f"{tx}_{ty}.mtl"
                        _write_mtl(out / mtl_name, f"texture/{texture_name}")
                        mtl = options.mtl_override or mtl_name
                        if options.debug:
                            slicer.markup_texture_transforms(
                                options.texture, transforms, output_path=texture_path, prefix=f"transforms_{tx}_{ty}"
                            )
                    else:
                        texture_name = None

                for x in range(tx * cubes_per_tile_x, (tx + 1) * cubes_per_tile_x):
                    for y in range(ty * cubes_per_tile_y, (ty + 1) * cubes_per_tile_y):
                        for z in range(gz):
                            count = _write_cube(mesh, options, out, x, y, z, mtl, transforms, texture_name, pool)
                            if count:
                                metadata.mark(x, y, z, count)

    metadata.write_json(out / "metadata.json")
    logger.info("Wrote %d cubes, %d vertices", metadata.occupied_count, metadata.vertex_count)
    return metadata


def _write_cube(
    mesh: ObjMesh,
    options: SlicingOptions,
    out: Path,
    x: int,
    y: int,
    z: int,
    mtl: str | None,
    transforms: List[RectangleTransform],
    texture_name: str | None,
    pool: ThreadPoolExecutor,
) -> int:
    gx, gy, gz = options.cube_grid
    extent = mesh.grid_tile_extent(gy, gx, gz, x, y, z)
    tile = mesh.extract(extent)
    if tile is None:
        return 0

    if transforms:
        tile.apply_texture_transforms(transforms)

    obj_path = out / f"{x}_{y}_{z}.obj"
    tile.write_obj(obj_path, mtl, executor=pool)
    if options.write_ebo:
        tile.write_ebo(str(obj_path) + EBO_SUFFIX)
    if options.write_glb:
        write_glb_tile(
            out / f"{x}_{y}_{z}.glb",
            tile,
            texture_uri=(f"texture/{texture_name}" if texture_name else None),
            name=f"{x}_{y}_{z}",
        )
    return tile.vertex_count
