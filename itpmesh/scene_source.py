import json
import os
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pyrr

from itpmesh.debug_console import DebugConsole


# ==========================================================================
# 1. ENUMS and Errors
# ==========================================================================
class MappingMode:
    ByControlPoint = "by_control_point"
    ByPolygonVertex = "by_polygon_vertex"
    # Recognised but not resolved per corner; the attribute reads as absent.
    ByPolygon = "by_polygon"
    AllSame = "all_same"


class ReferenceMode:
    Direct = "direct"
    IndexToDirect = "index_to_direct"


class SceneLoadError(ValueError):
    """The scene file could not be read or does not describe a mesh scene."""


# ==========================================================================
# 2. Scene Data Structures
# ==========================================================================
@dataclass
class GeometryElement:
    """A per-mesh attribute layer (normals, tangents or UVs)."""

    values: np.ndarray  # Shape: (num_values, 2 or 3)
    mapping_mode: str = MappingMode.ByPolygonVertex
    reference_mode: str = ReferenceMode.Direct
    indices: Optional[np.ndarray] = None

    def _lookup(self, index: int):
        if self.reference_mode == ReferenceMode.IndexToDirect:
            if self.indices is None or index >= len(self.indices):
                return None
            index = int(self.indices[index])
        if index < 0 or index >= len(self.values):
            return None
        return tuple(float(v) for v in self.values[index])

    def value_at(self, control_point: int, polygon_vertex: int) -> Optional[Tuple[float, ...]]:
        """Resolve the value for one corner, or None for unsupported mapping modes."""
        if self.mapping_mode == MappingMode.ByControlPoint:
            return self._lookup(control_point)
        if self.mapping_mode == MappingMode.ByPolygonVertex:
            return self._lookup(polygon_vertex)
        return None


@dataclass
class SkinCluster:
    """One bone's weighted subset of control points, copied out of the scene."""

    bone_name: str
    indices: Sequence[int]
    weights: Sequence[float]
    # node-parent chain of the bone, nearest ancestor first
    ancestors: Tuple[str, ...] = ()
    link_bind: pyrr.Matrix44 = field(default_factory=pyrr.Matrix44.identity)
    mesh_bind: pyrr.Matrix44 = field(default_factory=pyrr.Matrix44.identity)


@dataclass
class ShapeTarget:
    control_points: np.ndarray  # Shape: (num_control_points, 3)
    normals: Optional[GeometryElement] = None
    tangents: Optional[GeometryElement] = None


@dataclass
class BlendShapeChannel:
    name: str
    targets: List[ShapeTarget] = field(default_factory=list)


@dataclass
class Corner:
    """Raw attributes of one face corner as the scene provides them."""

    control_point: int
    position: Tuple[float, float, float]
    normal: Optional[Tuple[float, ...]] = None
    tangent: Optional[Tuple[float, ...]] = None
    uv: Optional[Tuple[float, ...]] = None


@dataclass
class SourceMesh:
    name: str
    control_points: np.ndarray  # Shape: (num_control_points, 3)
    polygons: List[List[int]] = field(default_factory=list)
    normals: Optional[GeometryElement] = None
    tangents: Optional[GeometryElement] = None
    uvs: Optional[GeometryElement] = None
    skin_clusters: List[SkinCluster] = field(default_factory=list)
    blend_channels: List[BlendShapeChannel] = field(default_factory=list)

    @property
    def control_point_count(self) -> int:
        return len(self.control_points)

    def iter_polygons(self) -> Iterator[List[Corner]]:
        """Yield the corners of each polygon in polygon order, then corner order."""
        polygon_vertex = 0
        for polygon in self.polygons:
            corners = []
            for control_point in polygon:
                position = tuple(float(v) for v in self.control_points[control_point][:3])
                corners.append(
                    Corner(
                        control_point=control_point,
                        position=position,
                        normal=self.normals.value_at(control_point, polygon_vertex) if self.normals else None,
                        tangent=self.tangents.value_at(control_point, polygon_vertex) if self.tangents else None,
                        uv=self.uvs.value_at(control_point, polygon_vertex) if self.uvs else None,
                    )
                )
                polygon_vertex += 1
            yield corners


# ==========================================================================
# 3. JSON Scene Reader
# ==========================================================================
def _read_matrix(data, mesh_name: str) -> pyrr.Matrix44:
    if data is None:
        return pyrr.Matrix44.identity()
    values = np.asarray(data, dtype=np.float64)
    if values.size != 16:
        raise SceneLoadError(f"Mesh '{mesh_name}': bind matrix needs 16 values, got {values.size}.")
    return pyrr.Matrix44(values.reshape(4, 4))


def _read_points(data, width: int, what: str) -> np.ndarray:
    values = np.asarray(data if data is not None else [], dtype=np.float64)
    if values.size == 0:
        return np.zeros((0, width), dtype=np.float64)
    if values.ndim != 2 or values.shape[1] < width:
        raise SceneLoadError(f"{what}: expected rows of {width} values.")
    return values[:, :width]


def _read_element(data, width: int, what: str) -> Optional[GeometryElement]:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise SceneLoadError(f"{what}: expected an object with mapping and values.")
    indices = data.get("indices")
    return GeometryElement(
        values=_read_points(data.get("values"), width, what),
        mapping_mode=data.get("mapping", MappingMode.ByPolygonVertex),
        reference_mode=data.get("reference", ReferenceMode.Direct),
        indices=np.asarray(indices, dtype=np.int64) if indices is not None else None,
    )


def _ancestor_chain(nodes: dict, bone: str) -> Tuple[str, ...]:
    """Walk a node -> parent table upward from bone, stopping at any repeat."""
    chain = []
    seen = {bone}
    parent = nodes.get(bone)
    while parent is not None and parent not in seen:
        chain.append(parent)
        seen.add(parent)
        parent = nodes.get(parent)
    return tuple(chain)


def _read_mesh(data: dict, index: int) -> SourceMesh:
    name = data.get("name") or f"mesh_{index}"
    if "control_points" not in data or "polygons" not in data:
        raise SceneLoadError(f"Mesh '{name}' is missing control_points or polygons.")

    mesh = SourceMesh(
        name=name,
        control_points=_read_points(data["control_points"], 3, f"Mesh '{name}' control_points"),
        polygons=[list(map(int, polygon)) for polygon in data["polygons"]],
        normals=_read_element(data.get("normals"), 3, f"Mesh '{name}' normals"),
        tangents=_read_element(data.get("tangents"), 3, f"Mesh '{name}' tangents"),
        uvs=_read_element(data.get("uvs"), 2, f"Mesh '{name}' uvs"),
    )
    for polygon in mesh.polygons:
        if any(cp < 0 or cp >= mesh.control_point_count for cp in polygon):
            raise SceneLoadError(f"Mesh '{name}' references a control point outside its range.")

    nodes = data.get("nodes") or {}
    if not isinstance(nodes, dict):
        raise SceneLoadError(f"Mesh '{name}': nodes must map each node to its parent.")
    for cluster in data.get("skin", []):
        bone = cluster["bone"]
        mesh.skin_clusters.append(
            SkinCluster(
                bone_name=bone,
                indices=[int(i) for i in cluster.get("indices", [])],
                weights=[float(w) for w in cluster.get("weights", [])],
                ancestors=_ancestor_chain(nodes, bone) if nodes else tuple(cluster.get("ancestors", [])),
                link_bind=_read_matrix(cluster.get("link_bind"), name),
                mesh_bind=_read_matrix(cluster.get("mesh_bind"), name),
            )
        )

    for channel in data.get("blendshapes", []):
        mesh.blend_channels.append(
            BlendShapeChannel(
                name=channel["name"],
                targets=[
                    ShapeTarget(
                        control_points=_read_points(
                            target.get("control_points"), 3, f"Blendshape '{channel['name']}'"
                        ),
                        normals=_read_element(target.get("normals"), 3, f"Blendshape '{channel['name']}' normals"),
                        tangents=_read_element(target.get("tangents"), 3, f"Blendshape '{channel['name']}' tangents"),
                    )
                    for target in channel.get("targets", [])
                ],
            )
        )
    return mesh


def parse_scene(data: dict) -> List[SourceMesh]:
    """Build source meshes from an already decoded scene document."""
    if not isinstance(data, dict) or not isinstance(data.get("meshes"), list):
        raise SceneLoadError("Scene document has no 'meshes' list.")
    try:
        return [_read_mesh(mesh, i) for i, mesh in enumerate(data["meshes"])]
    except SceneLoadError:
        raise
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise SceneLoadError(f"Malformed scene data: {e}") from e


class SceneSource:
    """Reads a JSON scene description holding pre-triangulated meshes."""

    def __init__(self, filepath):
        self.filepath = filepath
        self.meshes = []

    def load(self) -> List[SourceMesh]:
        if not os.path.exists(self.filepath):
            raise FileNotFoundError(f"File not found: {self.filepath}")
        try:
            with open(self.filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise SceneLoadError(f"Failed to read scene {self.filepath}: {e}") from e
        self.meshes = parse_scene(data)
        DebugConsole.log(f"Loaded {len(self.meshes)} mesh(es) from {os.path.basename(self.filepath)}")
        return self.meshes
