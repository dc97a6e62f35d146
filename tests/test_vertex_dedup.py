import numpy as np

from itpmesh.converter import convert_mesh
from itpmesh.mesh_data import VertexAttributes
from itpmesh.scene_source import SourceMesh
from itpmesh.vertex_dedup import VertexDeduplicator


def test_equal_corners_get_the_same_index():
    dedup = VertexDeduplicator("m")
    a = VertexAttributes(position=(1.0, 2.0, 3.0), uv=(0.5, 0.25))
    b = VertexAttributes(position=(1.0, 2.0, 3.0), uv=(0.5, 0.25))

    assert dedup.insert(a, 0) == dedup.insert(b, 0) == 0
    assert dedup.mesh.vertex_count == 1


def test_equality_is_bitwise_on_float32():
    assert VertexAttributes(position=(0.1, 0.0, 0.0)) == VertexAttributes(position=(np.float32(0.1), 0.0, 0.0))
    assert hash(VertexAttributes(position=(0.1, 0.0, 0.0))) == hash(VertexAttributes(position=(np.float32(0.1), 0.0, 0.0)))
    assert VertexAttributes(position=(0.0, 0.0, 0.0)) != VertexAttributes(position=(-0.0, 0.0, 0.0))
    assert VertexAttributes(position=(0.0, 0.0, 0.0)) != VertexAttributes(
        position=(0.0, 0.0, 0.0), bone_weights=(255, 0, 0, 0)
    )


def test_triangle_winding_is_reversed():
    dedup = VertexDeduplicator("m")
    corners = [(i, VertexAttributes(position=(float(i), 0.0, 0.0))) for i in range(3)]

    assert dedup.add_polygon(corners) == (2, 1, 0)
    assert dedup.mesh.triangles == [(2, 1, 0)]


def test_control_point_map_only_records_new_vertices():
    dedup = VertexDeduplicator("m")
    shared = VertexAttributes(position=(0.0, 0.0, 0.0))
    dedup.insert(shared, 0)
    dedup.insert(shared, 5)
    dedup.insert(VertexAttributes(position=(0.0, 0.0, 0.0), normal=(0.0, 1.0, 0.0)), 0)

    assert dedup.mesh.control_point_map == {0: [0, 1]}
    assert dedup.mesh.first_vertex_index(0) == 0
    assert dedup.mesh.first_vertex_index(5) is None


def test_single_triangle_without_attributes():
    source = SourceMesh(
        name="Tri",
        control_points=np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]),
        polygons=[[0, 1, 2]],
    )
    mesh = convert_mesh(source).mesh

    assert mesh.vertex_count == 3
    assert mesh.triangles == [(2, 1, 0)]
    fmt = mesh.format
    assert not (fmt.has_normal or fmt.has_tan or fmt.has_uv or fmt.has_skin)


def test_quad_with_shared_attributes_is_not_duplicated(quad_mesh):
    mesh = convert_mesh(quad_mesh).mesh

    assert mesh.vertex_count == 4
    assert mesh.triangles == [(2, 1, 0), (3, 2, 0)]
    assert mesh.control_point_map == {0: [0], 1: [1], 2: [2], 3: [3]}


def test_control_point_splits_on_differing_normals(split_mesh):
    mesh = convert_mesh(split_mesh).mesh

    assert mesh.vertex_count == 5
    assert mesh.control_point_map == {0: [0, 3], 1: [1], 2: [2], 3: [4]}
    assert mesh.triangles == [(2, 1, 0), (4, 2, 3)]
    assert all(i < mesh.vertex_count for tri in mesh.triangles for i in tri)
