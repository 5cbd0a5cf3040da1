"""Grouping of faces into UV islands and their texture-space rectangles."""

from __future__ import annotations

from concurrent.futures import Executor
from dataclasses import dataclass
from typing import List, Sequence

import logging
import math

from .types import Face, TextureVertex

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UVRect:
    """Axis-aligned UV rectangle; ``y`` is the top edge (max v)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def bottom(self) -> float:
        return self.y - self.height

    @property
    def right(self) -> float:
        return self.x + self.width

    def contains(self, other: "UVRect") -> bool:
        return (
            self.x <= other.x
            and other.right <= self.right
            and self.bottom <= other.bottom
            and other.y <= self.y
        )


@dataclass(slots=True)
class PixelRect:
    x: int
    y: int
    width: int
    height: int

    @property
    def left(self) -> int:
        return self.x

    @property
    def top(self) -> int:
        return self.y

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    def box(self) -> tuple[int, int, int, int]:
        return (self.left, self.top, self.right, self.bottom)


def _touches(face: Face, frontier: frozenset[int]) -> bool:
    return not frontier.isdisjoint(face.texture_vertex_indices)


def find_connected_faces(faces: Sequence[Face], executor: Executor | None = None) -> List[List[Face]]:
    """Partition faces into groups connected by shared texture-vertex indices."""

    remaining = list(faces)
    grouped: List[List[Face]] = []

    while remaining:
        seed = remaining.pop(0)
        group = [seed]
        grouped.append(group)
        matches = [seed]

        while matches:
            frontier = frozenset(i for m in matches for i in m.texture_vertex_indices)
            if executor is not None:
                hits = list(executor.map(lambda f: _touches(f, frontier), remaining))
            else:
                hits = [_touches(f, frontier) for f in remaining]

            matches = [f for f, hit in zip(remaining, hits) if hit]
            remaining = [f for f, hit in zip(remaining, hits) if not hit]
            group.extend(matches)

    return grouped


def find_uv_rectangles(groups: Sequence[Sequence[Face]], texture_vertices: Sequence[TextureVertex]) -> List[UVRect]:
    """UV bounding box per group, minus rectangles fully covered by another one."""

    rects: List[UVRect] = []
    for group in groups:
        us = []
        vs = []
        for f in group:
            for i in f.texture_vertex_indices:
                tv = texture_vertices[i - 1]
                us.append(tv.x)
                vs.append(tv.y)
        min_x, max_x = min(us), max(us)
        min_y, max_y = min(vs), max(vs)
        rects.append(UVRect(min_x, max_y, max_x - min_x, max_y - min_y))

    clean: List[UVRect] = []
    for i, r in enumerate(rects):
        contained = False
        for j, other in enumerate(rects):
            if i == j:
                continue
            # Exact duplicates: keep the first one.
            if other == r and j > i:
                continue
            if other.contains(r):
                contained = True
                break
        if not contained:
            clean.append(r)

    if len(clean) < len(rects):
        logger.info("Removed %d obscured rectangles", len(rects) - len(clean))

    return clean


def uv_rect_to_bitmap_rect(rect: UVRect, width: int, height: int, pixel_buffer: int = 3) -> PixelRect:
    """Pixel-space rectangle (top-left origin) covering a UV rect, grown by ``pixel_buffer``.

    Edges round outward so the box always covers the island's own UVs.
    """

    left = math.floor(rect.x * width)
    right = math.ceil(rect.right * width)
    top = math.floor((1.0 - rect.y) * height)
    bottom = math.ceil((1.0 - rect.bottom) * height)
    return PixelRect(
        x=left - pixel_buffer,
        y=top - pixel_buffer,
        width=max(1, right - left) + pixel_buffer * 2,
        height=max(1, bottom - top) + pixel_buffer * 2,
    )
