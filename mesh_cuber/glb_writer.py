"""GLB rendition of a cube for viewers that load glTF directly."""

from __future__ import annotations

from pathlib import Path

import math

import numpy as np
from pygltflib import (
    GLTF2,
    Accessor,
    Asset,
    Attributes,
    Buffer,
    BufferView,
    Image,
    Material,
    Mesh,
    Node,
    PbrMetallicRoughness,
    Primitive,
    Sampler,
    Scene,
    Texture,
    TextureInfo,
)

from .objio import TileMesh, remove_stale


ARRAY_BUFFER = 34962
ELEMENT_ARRAY_BUFFER = 34963

UNSIGNED_INT = 5125
FLOAT = 5126

ACCESSOR_TYPE_SCALAR = "SCALAR"
ACCESSOR_TYPE_VEC3 = "VEC3"
ACCESSOR_TYPE_VEC2 = "VEC2"


def _align4(n: int) -> int:
    return int(math.ceil(n / 4.0) * 4)


def tile_to_arrays(tile: TileMesh, *, flip_v: bool = False) -> dict[str, np.ndarray]:
    """Flat-shaded triangle arrays; polygons are fan-triangulated."""

    corners = tile.corner_array()
    positions = np.stack([corners["x"], corners["y"], corners["z"]], axis=1).astype(np.float32)
    texcoords = np.stack([corners["u"], corners["v"]], axis=1).astype(np.float32)
    if flip_v:
        texcoords[:, 1] = 1.0 - texcoords[:, 1]

    normals = np.zeros_like(positions)
    indices: list[int] = []
    base = 0
    for f in tile.faces:
        n = len(f.vertex_indices)
        p = positions[base : base + n]
        normal = np.cross(p[1] - p[0], p[2] - p[0])
        length = float(np.linalg.norm(normal))
        if length > 0.0:
            normal = normal / length
        normals[base : base + n] = normal
        for k in range(1, n - 1):
            indices.extend((base, base + k, base + k + 1))
        base += n

    return {
        "positions": positions,
        "normals": normals,
        "texcoords": texcoords,
        "indices": np.asarray(indices, dtype=np.uint32),
    }


def write_glb_tile(
    output_path: str | Path,
    tile: TileMesh,
    *,
    texture_uri: str | None = None,
    name: str | None = None,
    flip_v: bool = True,
) -> Path:
    """Write ``tile`` as a single-mesh GLB; the texture is referenced, not embedded."""

    arrays = tile_to_arrays(tile, flip_v=flip_v)
    positions = arrays["positions"]
    normals = arrays["normals"]
    texcoords = arrays["texcoords"]
    indices = arrays["indices"]

    blob = bytearray()
    buffer_views: list[BufferView] = []
    accessors: list[Accessor] = []

    def add_view(data: bytes, target: int | None) -> int:
        offset = len(blob)
        blob.extend(data)
        padded = _align4(len(blob))
        if padded != len(blob):
            blob.extend(b"\x00" * (padded - len(blob)))
        view_index = len(buffer_views)
        buffer_views.append(BufferView(buffer=0, byteOffset=offset, byteLength=len(data), target=target))
        return view_index

    pos_view = add_view(positions.tobytes(), ARRAY_BUFFER)
    pos_accessor_index = len(accessors)
    accessors.append(
        Accessor(
            bufferView=pos_view,
            componentType=FLOAT,
            count=int(positions.shape[0]),
            type=ACCESSOR_TYPE_VEC3,
            min=positions.min(axis=0).tolist(),
            max=positions.max(axis=0).tolist(),
        )
    )

    nrm_view = add_view(normals.tobytes(), ARRAY_BUFFER)
    nrm_accessor_index = len(accessors)
    accessors.append(Accessor(bufferView=nrm_view, componentType=FLOAT, count=int(normals.shape[0]), type=ACCESSOR_TYPE_VEC3))

    uv_view = add_view(texcoords.tobytes(), ARRAY_BUFFER)
    uv_accessor_index = len(accessors)
    accessors.append(Accessor(bufferView=uv_view, componentType=FLOAT, count=int(texcoords.shape[0]), type=ACCESSOR_TYPE_VEC2))

    idx_view = add_view(indices.tobytes(), ELEMENT_ARRAY_BUFFER)
    idx_accessor_index = len(accessors)
    accessors.append(Accessor(bufferView=idx_view, componentType=UNSIGNED_INT, count=int(indices.shape[0]), type=ACCESSOR_TYPE_SCALAR))

    attrs = Attributes(POSITION=pos_accessor_index, NORMAL=nrm_accessor_index, TEXCOORD_0=uv_accessor_index)
    prim = Primitive(attributes=attrs, indices=idx_accessor_index, material=0)

    pbr = PbrMetallicRoughness(baseColorFactor=[1.0, 1.0, 1.0, 1.0], metallicFactor=0.0, roughnessFactor=1.0)
    images: list[Image] = []
    textures: list[Texture] = []
    samplers: list[Sampler] = []
    if texture_uri is not None:
        images.append(Image(uri=texture_uri, name=(f"{name}_tex" if name else None)))
        samplers.append(Sampler(magFilter=9729, minFilter=9729, wrapS=33071, wrapT=33071))
        textures.append(Texture(sampler=0, source=0, name=(f"{name}_texture" if name else None)))
        pbr.baseColorTexture = TextureInfo(index=0)

    gltf = GLTF2(
        asset=Asset(version="2.0", generator="mesh_cuber"),
        buffers=[Buffer(byteLength=0)],
        bufferViews=buffer_views,
        accessors=accessors,
        meshes=[Mesh(primitives=[prim], name=name)],
        images=images,
        samplers=samplers,
        textures=textures,
        materials=[Material(name=(f"{name}_mat" if name else None), pbrMetallicRoughness=pbr, doubleSided=True)],
        nodes=[Node(mesh=0, name=name)],
        scenes=[Scene(nodes=[0])],
        scene=0,
    )

    gltf.buffers[0].byteLength = len(blob)
    gltf.set_binary_blob(bytes(blob))
    p = remove_stale(output_path)
    gltf.save_binary(str(p))
    return p
