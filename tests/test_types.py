from __future__ import annotations

import pytest

from mesh_cuber.types import Extent, Face, FormatError, RectangleTransform, TextureVertex, Vertex
from mesh_cuber.texture import generate_uv_transforms
from mesh_cuber.uv_islands import PixelRect


def test_vertex_parse():
    v = Vertex.parse("v 1.5 -2 3e2 1.0".split(), index=7)
    assert (v.x, v.y, v.z, v.index) == (1.5, -2.0, 300.0, 7)
    assert str(v) == "v 1.5 -2.0 300.0"


def test_vertex_too_short():
    with pytest.raises(FormatError, match="minimum length 4"):
        Vertex.parse(["v", "1", "2"])


def test_vertex_bad_field_is_named():
    with pytest.raises(FormatError) as err:
        Vertex.parse(["v", "1", "nope", "3"])
    assert err.value.field == "Y"


def test_texture_vertex_parse_and_errors():
    tv = TextureVertex.parse(["vt", "0.25", "0.75", "0"], index=3)
    assert (tv.x, tv.y, tv.index, tv.transformed) == (0.25, 0.75, 3, False)
    with pytest.raises(FormatError, match="minimum length 3"):
        TextureVertex.parse(["vt", "0.1"])
    with pytest.raises(FormatError) as err:
        TextureVertex.parse(["vt", "x", "0.1"])
    assert err.value.field == "X"


def test_face_parse_variants():
    f = Face.parse("f 1/2 3/4/9 5/6".split(), vertex_count=5, texture_count=6)
    assert f.vertex_indices == [1, 3, 5]
    assert f.texture_vertex_indices == [2, 4, 6]
    assert str(f) == "f 1/2 3/4 5/6"

    rel = Face.parse("f -1/-1 -2/-2 -3/-3".split(), vertex_count=10, texture_count=4)
    assert rel.vertex_indices == [10, 9, 8]
    assert rel.texture_vertex_indices == [4, 3, 2]


def test_face_parse_errors():
    with pytest.raises(FormatError, match="minimum length 4"):
        Face.parse("f 1/1 2/2".split())
    with pytest.raises(FormatError):
        Face.parse("f 1 2 3".split())
    with pytest.raises(FormatError):
        Face.parse("f 1//4 2//4 3//4".split())
    with pytest.raises(FormatError):
        Face.parse("f a/1 2/2 3/3".split())


def test_face_update_and_revert():
    f = Face([4, 5, 4], [7, 8, 9])
    f.update_vertex_index(4, 1)
    f.update_texture_vertex_index(9, 2)
    assert f.vertex_indices == [1, 5, 1]
    assert f.texture_vertex_indices == [7, 8, 2]

    f.revert()
    assert f.vertex_indices == [4, 5, 4]
    assert f.texture_vertex_indices == [7, 8, 9]


def test_face_copy_is_independent():
    f = Face([1, 2, 3], [1, 2, 3])
    g = f.copy()
    g.update_vertex_index(1, 9)
    assert f.vertex_indices == [1, 2, 3]
    g.revert()
    assert g.vertex_indices == [1, 2, 3]


def test_face_in_extent_any_corner():
    verts = [Vertex(0, 0, 0, 1), Vertex(5, 5, 5, 2), Vertex(9, 9, 9, 3)]
    f = Face([1, 2, 3], [1, 1, 1])
    assert f.in_extent(Extent(4, 6, 4, 6, 4, 6), verts)
    assert not f.in_extent(Extent(1, 2, 1, 2, 1, 2), verts)
    assert f.texture_index_set == frozenset({1})


def test_extent_grid_cell():
    e = Extent(0.0, 10.0, -4.0, 4.0, 0.0, 2.0)
    cell = e.grid_cell(2, 4, 1, 1, 3, 0)
    assert (cell.x_min, cell.x_max) == (5.0, 10.0)
    assert (cell.y_min, cell.y_max) == (2.0, 4.0)
    assert (cell.z_min, cell.z_max) == (0.0, 2.0)
    assert Extent.from_dict(e.to_dict()) == e


def test_rectangle_transform_contains():
    t = RectangleTransform(top=0.75, bottom=0.5, left=0.25, right=0.5, offset_x=0, offset_y=0, scale_x=1, scale_y=1)
    assert t.contains_point(0.25, 0.75)
    assert t.contains_point(0.3, 0.6)
    assert not t.contains_point(0.6, 0.6)
    assert t.to_rectangle(100, 100) == (25, 25, 50, 50)


def test_texture_vertex_transform_maps_corners():
    (t,) = generate_uv_transforms((100, 100), (64, 64), [PixelRect(10, 20, 30, 40)], [(0, 0, 30, 40)])

    top_left = TextureVertex(0.1, 0.8)
    top_left.transform(t)
    assert top_left.x == pytest.approx(0.0)
    assert top_left.y == pytest.approx(1.0)

    bottom_right = TextureVertex(0.4, 0.4)
    bottom_right.transform(t)
    assert bottom_right.x == pytest.approx(30 / 64)
    assert bottom_right.y == pytest.approx(1 - 40 / 64)


def test_texture_vertex_transform_is_idempotent():
    (t,) = generate_uv_transforms((100, 100), (64, 64), [PixelRect(10, 20, 30, 40)], [(5, 5, 30, 40)])
    tv = TextureVertex(0.2, 0.6)
    tv.transform(t)
    once = (tv.x, tv.y)
    tv.transform(t)
    assert (tv.x, tv.y) == once
    assert tv.transformed


def test_face_index_past_records_read():
    with pytest.raises(FormatError, match="v index out of range"):
        Face.parse("f 1/1 2/2 99/3".split(), vertex_count=3, texture_count=3)
    with pytest.raises(FormatError, match="vt index out of range"):
        Face.parse("f 1/1 2/2 3/4".split(), vertex_count=3, texture_count=3)
    assert Face.parse("f 1/1 2/2 3/3".split(), vertex_count=3, texture_count=3).vertex_indices == [1, 2, 3]
