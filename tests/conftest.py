from __future__ import annotations

import pytest

from mesh_cuber.objio import ObjMesh

# Unit cube, one texture vertex per mesh vertex, 12 triangles.
CUBE_OBJ = """\
mtllib cube.mtl
v 0 0 0
v 1 0 0
v 1 1 0
v 0 1 0
v 0 0 1
v 1 0 1
v 1 1 1
v 0 1 1
vt 0.1 0.1
vt 0.2 0.1
vt 0.2 0.2
vt 0.1 0.2
vt 0.6 0.6
vt 0.7 0.6
vt 0.7 0.7
vt 0.6 0.7
f 1/1 3/3 2/2
f 1/1 4/4 3/3
f 5/5 6/6 7/7
f 5/5 7/7 8/8
f 1/1 2/2 6/6
f 1/1 6/6 5/5
f 4/4 8/8 7/7
f 4/4 7/7 3/3
f 1/1 5/5 8/8
f 1/1 8/8 4/4
f 2/2 3/3 7/7
f 2/2 7/7 6/6
"""


@pytest.fixture
def cube_lines() -> list[str]:
    return CUBE_OBJ.splitlines()


@pytest.fixture
def cube_mesh(cube_lines) -> ObjMesh:
    return ObjMesh.load(cube_lines, workers=2)


@pytest.fixture
def cube_path(tmp_path):
    p = tmp_path / "cube.obj"
    p.write_text(CUBE_OBJ, encoding="utf-8")
    return p
