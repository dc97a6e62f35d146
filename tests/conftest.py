import numpy as np
import pytest

from itpmesh.scene_source import GeometryElement, MappingMode, SourceMesh


def translation(x, y, z):
    """Row-vector translation matrix."""
    m = np.eye(4)
    m[3, :3] = (x, y, z)
    return m


@pytest.fixture
def quad_mesh():
    """Two triangles sharing an edge; every attribute is mapped per control point."""
    return SourceMesh(
        name="Quad",
        control_points=np.array(
            [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 1.0, 0.0], [0.0, 1.0, 0.0]]
        ),
        polygons=[[0, 1, 2], [0, 2, 3]],
        normals=GeometryElement(
            values=np.array([[0.0, 0.0, 1.0]] * 4), mapping_mode=MappingMode.ByControlPoint
        ),
        uvs=GeometryElement(
            values=np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]]),
            mapping_mode=MappingMode.ByControlPoint,
        ),
    )


@pytest.fixture
def split_mesh():
    """Like quad_mesh, but control point 0 has a different normal in each triangle."""
    normals = np.array(
        [
            [0.0, 0.0, 1.0], [0.0, 0.0, 1.0], [0.0, 0.0, 1.0],
            [0.0, 1.0, 0.0], [0.0, 0.0, 1.0], [0.0, 0.0, 1.0],
        ]
    )
    return SourceMesh(
        name="Split",
        control_points=np.array(
            [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 1.0, 0.0], [0.0, 1.0, 0.0]]
        ),
        polygons=[[0, 1, 2], [0, 2, 3]],
        normals=GeometryElement(values=normals, mapping_mode=MappingMode.ByPolygonVertex),
    )
