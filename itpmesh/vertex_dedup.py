from typing import Dict, Iterable, Optional, Tuple

from itpmesh.mesh_data import MeshBuffer, VertexAttributes, VertexFormat


class VertexDeduplicator:
    """
    Collapses face corners with bitwise-identical attributes into one vertex.

    Corners are fed polygon by polygon. The buffer only grows: a corner either
    reuses the index of an earlier identical corner or appends a new vertex,
    and new vertices are recorded under the control point that produced them.
    """

    def __init__(self, name: str, vertex_format: Optional[VertexFormat] = None):
        self.mesh = MeshBuffer(name=name, format=vertex_format or VertexFormat())
        self._index_of: Dict[VertexAttributes, int] = {}

    def insert(self, corner: VertexAttributes, control_point: int) -> int:
        index = self._index_of.get(corner)
        if index is not None:
            return index

        index = len(self.mesh.verts)
        self._index_of[corner] = index
        self.mesh.verts.append(corner)
        self.mesh.control_point_map.setdefault(control_point, []).append(index)
        return index

    def add_polygon(self, corners: Iterable[Tuple[int, VertexAttributes]]) -> Tuple[int, ...]:
        """Insert (control point, attributes) corners and store the triangle with reversed winding."""
        indices = [self.insert(attributes, control_point) for control_point, attributes in corners]
        triangle = tuple(reversed(indices))
        self.mesh.triangles.append(triangle)
        return triangle
