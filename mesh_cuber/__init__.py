"""Slice large textured OBJ meshes into grid cubes with packed per-tile textures."""

from .metadata import CubeMetadata
from .objio import ObjMesh, TileMesh
from .packer import PackingBudgetExceeded, pack_rectangles
from .pipeline import SlicingOptions, generate_cubes
from .texture import TextureSlicer
from .types import Extent, Face, FormatError, RectangleTransform, TextureVertex, Vertex

__all__ = [
    "CubeMetadata",
    "Extent",
    "Face",
    "FormatError",
    "ObjMesh",
    "PackingBudgetExceeded",
    "RectangleTransform",
    "SlicingOptions",
    "TextureSlicer",
    "TextureVertex",
    "TileMesh",
    "Vertex",
    "generate_cubes",
    "pack_rectangles",
]
