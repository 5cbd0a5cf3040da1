"""MaxRects bin packing for texture atlases."""

from __future__ import annotations

from typing import List, Sequence, Tuple

import logging
import time

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 16384

Rect = Tuple[int, int, int, int]  # x, y, w, h


class PackingBudgetExceeded(ValueError):
    """No canvas up to the maximum size fits every rectangle."""

    def __init__(self, width: int, height: int, max_size: int, count: int) -> None:
        super().__init__(f"Failed to pack {count} rectangles: {width}x{height} exceeds maximum {max_size}")
        self.width = width
        self.height = height
        self.max_size = max_size


def next_power_of_two(x: int) -> int:
    x = int(x)
    if x <= 1:
        return 1
    return 1 << (x - 1).bit_length()


def _intersects(a: Rect, b: Rect) -> bool:
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    return not (ax + aw <= bx or bx + bw <= ax or ay + ah <= by or by + bh <= ay)


def _contained(a: Rect, b: Rect) -> bool:
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    return ax >= bx and ay >= by and ax + aw <= bx + bw and ay + ah <= by + bh


class MaxRectsBinPack:
    """MaxRects packer using the best-area-fit heuristic, no rotation."""

    def __init__(self, width: int, height: int) -> None:
        self.width = int(width)
        self.height = int(height)
        self.free: List[Rect] = [(0, 0, self.width, self.height)]
        self.used: List[Rect] = []

    def insert(self, width: int, height: int) -> Rect | None:
        bw = int(width)
        bh = int(height)
        best: Rect | None = None
        best_area = None
        best_ss = None
        for fx, fy, fw, fh in self.free:
            if bw > fw or bh > fh:
                continue
            area_fit = fw * fh - bw * bh
            ss = min(fw - bw, fh - bh)
            if best_area is None or area_fit < best_area or (area_fit == best_area and ss < best_ss):
                best_area = area_fit
                best_ss = ss
                best = (fx, fy, bw, bh)

        if best is None:
            return None

        self._place(best)
        return best

    def _place(self, placed: Rect) -> None:
        px, py, pw, ph = placed
        pr = px + pw
        pb = py + ph

        new_free: List[Rect] = []
        for fr in self.free:
            if not _intersects(fr, placed):
                new_free.append(fr)
                continue
            fx, fy, fw, fh = fr
            fr_r = fx + fw
            fr_b = fy + fh
            if px > fx:
                new_free.append((fx, fy, px - fx, fh))
            if pr < fr_r:
                new_free.append((pr, fy, fr_r - pr, fh))
            if py > fy:
                new_free.append((fx, fy, fw, py - fy))
            if pb < fr_b:
                new_free.append((fx, pb, fw, fr_b - pb))

        self.free = self._prune(new_free)
        self.used.append(placed)

    @staticmethod
    def _prune(frs: List[Rect]) -> List[Rect]:
        pruned: List[Rect] = []
        for i, a in enumerate(frs):
            if a[2] <= 0 or a[3] <= 0:
                continue
            contained = False
            for j, b in enumerate(frs):
                if i == j:
                    continue
                # Equal rects: drop all but the last copy.
                if _contained(a, b) and (a != b or j > i):
                    contained = True
                    break
            if not contained:
                pruned.append(a)
        return pruned

    def occupancy(self) -> float:
        used = sum(w * h for _, _, w, h in self.used)
        return used / float(self.width * self.height)


def pack_rectangles(
    sizes: Sequence[Tuple[int, int]],
    width: int,
    height: int,
    max_size: int = DEFAULT_MAX_SIZE,
) -> List[Rect]:
    """Place every ``(w, h)`` without overlap, doubling the canvas until it fits.

    The smaller canvas side doubles after a failed attempt (both when square).
    Raises ``PackingBudgetExceeded`` once a side would exceed ``max_size``.
    """

    logger.info("Bin packing %d rectangles", len(sizes))
    start = time.perf_counter()
    width = max(1, int(width))
    height = max(1, int(height))

    while width <= max_size and height <= max_size:
        bp = MaxRectsBinPack(width, height)
        placed: List[Rect] = []
        for w, h in sizes:
            rect = bp.insert(w, h)
            if rect is None:
                break
            placed.append(rect)

        if len(placed) == len(sizes):
            logger.info(
                "Bin packing time for %d by %d texture: %.3fs",
                width,
                height,
                time.perf_counter() - start,
            )
            return placed

        if width == height:
            width *= 2
            height *= 2
        elif width < height:
            width *= 2
        else:
            height *= 2

    raise PackingBudgetExceeded(width, height, max_size, len(sizes))
