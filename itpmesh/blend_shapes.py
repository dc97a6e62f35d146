from typing import Iterable, List, Optional

import numpy as np

from itpmesh.debug_console import DebugConsole
from itpmesh.mesh_data import BlendShape, MeshBuffer, VertexFormat
from itpmesh.scene_source import BlendShapeChannel, GeometryElement, MappingMode, ShapeTarget


def _per_control_point(element: Optional[GeometryElement]) -> bool:
    return element is not None and element.mapping_mode == MappingMode.ByControlPoint


def _element_values(element: GeometryElement, count: int) -> np.ndarray:
    values = np.zeros((count, 3), dtype=np.float32)
    for i in range(count):
        value = element.value_at(i, i)
        if value is not None:
            values[i] = value[:3]
    return values


class BlendShapeDeltaComputer:
    """
    Computes morph deltas against a finished MeshBuffer.

    Deltas are taken per control point against the first vertex that control
    point produced, then copied to every vertex it was split into, so split
    vertices always move together.
    """

    def __init__(self, base: MeshBuffer, control_point_count: int):
        self.base = base
        self.control_point_count = control_point_count

    def compute_deltas(
        self, channel_name: str, target_index: int, target_count: int, target: ShapeTarget
    ) -> Optional[BlendShape]:
        name = channel_name if target_count == 1 else f"{channel_name}_target{target_index}"
        positions = np.asarray(target.control_points, dtype=np.float32).reshape(-1, 3)
        if len(positions) != self.control_point_count:
            DebugConsole.warning(
                f"Blend target control point count ({len(positions)}) != base control point count "
                f"({self.control_point_count}) for channel '{channel_name}' target {target_index}. "
                f"Skipping target."
            )
            return None

        shape_format = VertexFormat(
            has_normal=self.base.format.has_normal and _per_control_point(target.normals),
            has_tan=self.base.format.has_tan and _per_control_point(target.tangents),
        )
        normals = _element_values(target.normals, len(positions)) if shape_format.has_normal else None
        tangents = _element_values(target.tangents, len(positions)) if shape_format.has_tan else None

        vertex_count = self.base.vertex_count
        position_deltas = np.zeros((vertex_count, 3), dtype=np.float32)
        normal_deltas = np.zeros((vertex_count, 3), dtype=np.float32)
        tangent_deltas = np.zeros((vertex_count, 3), dtype=np.float32)

        for control_point in range(self.control_point_count):
            first = self.base.first_vertex_index(control_point)
            if first is None:
                continue
            indices = self.base.control_point_map[control_point]
            base_vert = self.base.verts[first]
            position_deltas[indices] = positions[control_point] - np.asarray(base_vert.position, dtype=np.float32)
            if normals is not None:
                normal_deltas[indices] = normals[control_point] - np.asarray(base_vert.normal, dtype=np.float32)
            if tangents is not None:
                tangent_deltas[indices] = tangents[control_point] - np.asarray(base_vert.tangent, dtype=np.float32)

        for array in (position_deltas, normal_deltas, tangent_deltas):
            array.setflags(write=False)

        DebugConsole.log(
            f"Found blendshape channel '{channel_name}' target {target_index} -> '{name}' "
            f"(control points: {self.control_point_count})"
        )
        return BlendShape(
            name=name,
            format=shape_format,
            position_deltas=position_deltas,
            normal_deltas=normal_deltas,
            tangent_deltas=tangent_deltas,
        )

    def compute_channel(self, channel: BlendShapeChannel) -> List[BlendShape]:
        shapes = []
        for t, target in enumerate(channel.targets):
            shape = self.compute_deltas(channel.name, t, len(channel.targets), target)
            if shape is not None:
                shapes.append(shape)
        return shapes


def compute_blend_shapes(
    base: MeshBuffer, control_point_count: int, channels: Iterable[BlendShapeChannel]
) -> List[BlendShape]:
    computer = BlendShapeDeltaComputer(base, control_point_count)
    shapes = []
    for channel in channels:
        shapes.extend(computer.compute_channel(channel))
    return shapes
