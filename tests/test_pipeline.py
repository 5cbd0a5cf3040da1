from __future__ import annotations

import json

import numpy as np
import pytest
from PIL import Image
from pygltflib import GLTF2

from mesh_cuber import cli
from mesh_cuber.glb_writer import tile_to_arrays, write_glb_tile
from mesh_cuber.metadata import CubeMetadata
from mesh_cuber.objio import ObjMesh
from mesh_cuber.pipeline import SlicingOptions, generate_cubes
from mesh_cuber.types import Extent


@pytest.fixture
def texture_path(tmp_path):
    p = tmp_path / "cube.png"
    Image.new("RGB", (64, 64), (200, 100, 50)).save(p)
    return p


def test_metadata_marks_cells():
    md = CubeMetadata(set_size=(2, 3, 1), world_bounds=Extent(0, 1, 0, 1, 0, 1), texture_set_size=(1, 1))
    assert md.cube_exists.shape == (2, 3, 1)
    assert not md.exists(1, 2, 0)

    md.mark(1, 2, 0, vertex_count=12)
    md.mark(0, 0, 0, vertex_count=3)
    assert md.exists(1, 2, 0)
    assert md.vertex_count == 15
    assert sorted(md.occupied_cells()) == [(0, 0, 0), (1, 2, 0)]
    assert md.occupied_count == 2

    d = md.to_dict()
    assert d["SetSize"] == {"X": 2, "Y": 3, "Z": 1}
    assert d["WorldBounds"]["XMax"] == 1
    assert d["VirtualWorldBounds"] is None
    assert d["CubeExists"][1][2][0] is True


def test_metadata_rejects_empty_grid():
    with pytest.raises(ValueError):
        CubeMetadata(set_size=(0, 1, 1))


def test_options_from_json():
    opts = SlicingOptions.from_json(
        json.dumps({"obj": "a.obj", "texture": "a.jpg", "cube_grid": [4, 4, 2], "texture_slice_x": 2, "texture_slice_y": 2})
    )
    assert opts.cube_grid == (4, 4, 2)
    assert opts.texture_scale == 1.0
    opts.validate()

    with pytest.raises(ValueError, match="unknown"):
        SlicingOptions.from_dict({"obj": "a.obj", "bogus": 1})


@pytest.mark.parametrize(
    "changes",
    [
        {"obj": ""},
        {"cube_grid": (0, 1, 1)},
        {"cube_grid": (3, 1, 1), "texture_slice_x": 2},
        {"texture_scale": 0.0},
        {"pixel_buffer": -1},
    ],
)
def test_options_validation(changes):
    opts = SlicingOptions(obj="a.obj")
    for k, v in changes.items():
        setattr(opts, k, v)
    with pytest.raises(ValueError):
        opts.validate()


def test_generate_cubes_geometry_only(tmp_path, cube_path):
    out = tmp_path / "out"
    md = generate_cubes(SlicingOptions(obj=str(cube_path), cube_grid=(2, 1, 1), workers=2), out)

    assert md.occupied_count == 2
    assert md.vertex_count == 16
    assert (out / "0_0_0.obj").exists()
    assert (out / "1_0_0.obj.ebo").exists()
    assert not (out / "texture").exists()
    assert (out / "0_0_0.obj").read_text().splitlines()[1] == "mtllib cube.mtl"

    saved = json.loads((out / "metadata.json").read_text())
    assert saved["VertexCount"] == 16
    assert saved["CubeExists"] == [[[True]], [[True]]]


def test_generate_cubes_with_texture(tmp_path, cube_path, texture_path):
    out = tmp_path / "out"
    opts = SlicingOptions(
        obj=str(cube_path),
        texture=str(texture_path),
        cube_grid=(2, 2, 2),
        write_glb=True,
        workers=2,
        debug=True,
    )
    md = generate_cubes(opts, out)

    assert md.occupied_count == 8
    assert len(list((out / "texture").glob("transforms_0_0-*.jpeg"))) == 1
    assert (out / "texture" / "0_0.jpg").exists()
    assert "map_Kd texture/0_0.jpg" in (out / "0_0.mtl").read_text()

    for x, y, z in md.occupied_cells():
        obj = out / f"{x}_{y}_{z}.obj"
        tile = ObjMesh.load(obj)
        assert tile.mtl == "0_0.mtl"
        for tv in tile.texture_vertices:
            assert 0.0 <= tv.x <= 1.0
            assert 0.0 <= tv.y <= 1.0
        assert (out / f"{x}_{y}_{z}.glb").exists()


def test_write_glb_tile(tmp_path, cube_mesh):
    tile = cube_mesh.extract(cube_mesh.size)
    arrays = tile_to_arrays(tile)
    assert arrays["positions"].shape == (36, 3)
    assert arrays["indices"].shape == (36,)
    assert np.allclose(np.linalg.norm(arrays["normals"], axis=1), 1.0)

    path = write_glb_tile(tmp_path / "cube.glb", tile, texture_uri="texture/0_0.jpg", name="cube")
    gltf = GLTF2().load_binary(str(path))
    assert gltf.accessors[0].count == 36
    assert gltf.images[0].uri == "texture/0_0.jpg"
    assert gltf.meshes[0].name == "cube"


def test_cli_runs_job(tmp_path, cube_path, texture_path, capsys):
    job = tmp_path / "job.json"
    job.write_text(json.dumps({"obj": str(cube_path), "cube_grid": [1, 1, 1]}))
    out = tmp_path / "cli_out"

    rc = cli.main(["--job", str(job), "--texture", str(texture_path), "--grid", "2", "1", "1", "--workers", "2", str(out)])
    assert rc == 0
    assert "Wrote 2 cubes" in capsys.readouterr().out
    assert (out / "1_0_0.obj").exists()
    assert (out / "texture" / "0_0.jpg").exists()


def test_cli_reports_bad_input(tmp_path):
    bad = tmp_path / "bad.obj"
    bad.write_text("v 0 0 zero\n")
    with pytest.raises(SystemExit, match="Could not parse Z"):
        cli.main([str(bad), str(tmp_path / "out")])
