"""Sparse texture generation: pack the referenced parts of a texture per tile."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import List, Sequence

import logging
import math
import os
import threading

from PIL import Image, ImageDraw

from .objio import ObjMesh, remove_stale
from .packer import DEFAULT_MAX_SIZE, next_power_of_two, pack_rectangles
from .types import Extent, Face, RectangleTransform, TextureVertex
from .uv_islands import PixelRect, find_connected_faces, find_uv_rectangles, uv_rect_to_bitmap_rect

logger = logging.getLogger(__name__)

PIXEL_BUFFER = 3


def texture_tile_extent(size: Extent, texture_slice_x: int, texture_slice_y: int, tile_x: int, tile_y: int) -> Extent:
    """X/Y cell of the mesh bounds; texture tiles span the full Z range."""

    cell = size.grid_cell(texture_slice_x, texture_slice_y, 1, tile_x, tile_y, 0)
    cell.z_min = size.z_min
    cell.z_max = size.z_max
    return cell


def compose_atlas(
    source: Image.Image,
    source_rects: Sequence[PixelRect],
    destination_rects: Sequence[tuple[int, int, int, int]],
    size: tuple[int, int],
) -> Image.Image:
    """Copy each source rect pixel-for-pixel to its packed (x, y, w, h) slot."""

    packed = Image.new(source.mode, size)
    if source.mode == "P":
        packed.putpalette(source.getpalette())
        if "transparency" in source.info:
            packed.info["transparency"] = source.info["transparency"]
    for s, (dx, dy, dw, dh) in zip(source_rects, destination_rects):
        region = source.crop(s.box())
        if region.size != (dw, dh):
            region = region.crop((0, 0, dw, dh))
        packed.paste(region, (dx, dy))
    return packed


def generate_uv_transforms(
    original_size: tuple[int, int],
    new_size: tuple[int, int],
    source_rects: Sequence[PixelRect],
    destination_rects: Sequence[tuple[int, int, int, int]],
) -> List[RectangleTransform]:
    ow, oh = (float(original_size[0]), float(original_size[1]))
    nw, nh = (float(new_size[0]), float(new_size[1]))

    out: List[RectangleTransform] = []
    for s, (dx, dy, _dw, _dh) in zip(source_rects, destination_rects):
        out.append(
            RectangleTransform(
                top=1.0 - s.top / oh,
                bottom=1.0 - s.bottom / oh,
                left=s.left / ow,
                right=s.right / ow,
                offset_x=s.left / ow - dx / nw,
                offset_y=s.top / oh - dy / nh,
                scale_x=ow / nw,
                scale_y=oh / nh,
            )
        )
    return out


def save_image(image: Image.Image, output_path: str | Path) -> Path:
    """Write to a temporary sibling first so a failed save never leaves a partial file."""

    p = remove_stale(output_path)
    tmp = p.with_name(f".{p.name}.tmp")
    fmt = Image.registered_extensions().get(p.suffix.lower(), "PNG")
    if fmt == "JPEG" and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    try:
        image.save(tmp, format=fmt)
        os.replace(tmp, p)
    finally:
        if tmp.exists():
            tmp.unlink()
    return p


class TextureSlicer:
    """Builds packed per-tile textures from one shared source image."""

    def __init__(self, mesh: ObjMesh, texture_path: str | Path | None = None) -> None:
        self.mesh = mesh
        self._source: Image.Image | None = None
        self._source_lock = threading.Lock()
        if texture_path is not None:
            with Image.open(texture_path) as img:
                img.load()
                self._source = img.copy()

    def _clone_source(self) -> Image.Image:
        if self._source is None:
            raise ValueError("no source texture loaded")
        with self._source_lock:
            return self._source.copy()

    def faces_in_texture_tile(self, texture_slice_x: int, texture_slice_y: int, tile_x: int, tile_y: int) -> List[Face]:
        if self.mesh.size is None:
            self.mesh.update_size()
        extent = texture_tile_extent(self.mesh.size, texture_slice_x, texture_slice_y, tile_x, tile_y)
        return self.mesh.faces_in_extent(extent)

    def generate_texture_tile(
        self,
        output_path: str | Path,
        tile_x: int,
        tile_y: int,
        texture_slice_x: int,
        texture_slice_y: int,
        *,
        scale: float = 1.0,
        max_size: int = DEFAULT_MAX_SIZE,
        pixel_buffer: int = PIXEL_BUFFER,
        executor=None,
    ) -> List[RectangleTransform]:
        """Write the packed texture for one tile and return its UV transforms.

        Returns an empty list when the tile has no faces. Raises
        ``PackingBudgetExceeded`` when the islands do not fit in ``max_size``;
        nothing is written in that case.
        """

        chunk_faces = self.faces_in_texture_tile(texture_slice_x, texture_slice_y, tile_x, tile_y)
        if not chunk_faces:
            logger.info("No faces found in tile %d, %d.  No texture generated.", tile_x, tile_y)
            return []

        cloned = self._clone_source()
        try:
            original_size = cloned.size
            logger.info("Generating sparse texture for tile %d, %d", tile_x, tile_y)

            grouped = find_connected_faces(chunk_faces, executor)
            uv_rects = find_uv_rectangles(grouped, self.mesh.texture_vertices)
            source_rects = [
                uv_rect_to_bitmap_rect(r, original_size[0], original_size[1], pixel_buffer) for r in uv_rects
            ]

            total_area = sum(r.area for r in source_rects)
            starting_size = next_power_of_two(int(math.sqrt(total_area)))
            destination_rects = pack_rectangles(
                [(r.width, r.height) for r in source_rects], starting_size, starting_size, max_size
            )

            new_size = (
                next_power_of_two(max(x + w for x, _, w, _ in destination_rects)),
                next_power_of_two(max(y + h for _, y, _, h in destination_rects)),
            )

            packed = compose_atlas(cloned, source_rects, destination_rects, new_size)
            if scale != 1:
                packed = packed.resize(
                    (max(1, int(packed.width * scale)), max(1, int(packed.height * scale))),
                    Image.Resampling.BICUBIC,
                )
            save_image(packed, output_path)
        finally:
            cloned.close()

        return generate_uv_transforms(original_size, new_size, source_rects, destination_rects)

    def get_uv_triangles(self, faces: Sequence[Face]) -> List[tuple[TextureVertex, TextureVertex, TextureVertex]]:
        tvs = self.mesh.texture_vertices
        return [
            (
                tvs[f.texture_vertex_indices[0] - 1],
                tvs[f.texture_vertex_indices[1] - 1],
                tvs[f.texture_vertex_indices[2] - 1],
            )
            for f in faces
        ]

    def markup_texture_faces(self, texture_path: str | Path) -> Path:
        """Copy of the texture with every UV triangle outlined in red."""

        output_path = Path(f"{texture_path}_debug.jpg")
        triangles = self.get_uv_triangles(self.mesh.faces)

        with Image.open(texture_path) as src:
            output = src.convert("RGB")
        w, h = output.size
        draw = ImageDraw.Draw(output)
        for tri in triangles:
            poly = [(tv.x * w, (1.0 - tv.y) * h) for tv in tri]
            draw.polygon(poly, outline=(255, 0, 0))

        return save_image(output, output_path)

    def markup_texture_transforms(
        self,
        texture_path: str | Path,
        transforms: Sequence[RectangleTransform],
        uvs: Sequence[TextureVertex] | None = None,
        *,
        output_path: str | Path | None = None,
        prefix: str = "transforms",
    ) -> Path:
        """Outline each transform's source region (red) and optional UVs (green) on a copy of the texture."""

        with Image.open(texture_path) as src:
            output = src.convert("RGB")
        w, h = output.size
        draw = ImageDraw.Draw(output)
        for t in transforms:
            draw.rectangle(t.to_rectangle(w, h), outline=(255, 0, 0), width=10)
        for u in uvs or ():
            cx = int(u.x * w)
            cy = int((1.0 - u.y) * h)
            draw.rectangle((cx - 5, cy - 5, cx + 5, cy + 5), outline=(0, 255, 0), width=10)

        return write_debug_image(output, output_path or texture_path, prefix)


def write_debug_image(image: Image.Image, output_path: str | Path, prefix: str = "error") -> Path:
    directory = Path(output_path).parent
    filename = f"{prefix}-{datetime.now():%Y-%m-%d_%H-%M-%S}.jpeg"
    return save_image(image, directory / filename)
