"""
ITP JSON writers for meshes (.itpmesh3), skeletons (.itpskel) and blendshapes (.itpblend)
"""
import json
from pathlib import Path
from typing import List

import numpy as np

from itpmesh.debug_console import DebugConsole
from itpmesh.mesh_data import BlendShape, Bone, ConvertedMesh, MeshBuffer, VertexAttributes, VertexFormat

MESH_VERSION = 3
SKELETON_VERSION = 1
BLEND_VERSION = 1


def _f32(value) -> float:
    # shortest text that round-trips the float32 value
    return float(str(np.float32(value)))


def _floats(values) -> List[float]:
    return [_f32(v) for v in values]


def vertex_format_document(vertex_format: VertexFormat) -> List[dict]:
    entries = [{"name": "position", "type": "float", "count": 3}]
    if vertex_format.has_normal:
        entries.append({"name": "normal", "type": "float", "count": 3})
    if vertex_format.has_tan:
        entries.append({"name": "tangent", "type": "float", "count": 3})
    if vertex_format.has_skin:
        entries.append({"name": "bones", "type": "byte", "count": 4})
        entries.append({"name": "weights", "type": "byte", "count": 4})
    if vertex_format.has_uv:
        entries.append({"name": "texcoord", "type": "float", "count": 2})
    return entries


def vertex_row(vert: VertexAttributes, vertex_format: VertexFormat) -> list:
    row = _floats(vert.position)
    if vertex_format.has_normal:
        row += _floats(vert.normal)
    if vertex_format.has_tan:
        row += _floats(vert.tangent)
    if vertex_format.has_skin:
        row += [int(b) for b in vert.bone_ids]
        row += [int(w) for w in vert.bone_weights]
    if vertex_format.has_uv:
        row += _floats(vert.uv)
    return row


def mesh_document(mesh: MeshBuffer) -> dict:
    return {
        "metadata": {"type": "itpmesh", "version": MESH_VERSION},
        "material": f"Assets/Materials/{mesh.name}.itpmat",
        "vertexformat": vertex_format_document(mesh.format),
        "vertices": [vertex_row(v, mesh.format) for v in mesh.verts],
        "indices": [list(triangle) for triangle in mesh.triangles],
    }


def skeleton_document(bones: List[Bone]) -> dict:
    return {
        "metadata": {"type": "itpskel", "version": SKELETON_VERSION},
        "bonecount": len(bones),
        "bones": [
            {
                "name": bone.name,
                "parentIndex": bone.parent_index,
                "bindPose": {
                    "rot": _floats(bone.local_bind_rotation),
                    "trans": _floats(bone.local_bind_translation),
                },
            }
            for bone in bones
        ],
    }


def blend_shape_document(shape: BlendShape) -> dict:
    deltas = []
    for i in range(len(shape)):
        row = _floats(shape.position_deltas[i])
        if shape.format.has_normal:
            row += _floats(shape.normal_deltas[i])
        if shape.format.has_tan:
            row += _floats(shape.tangent_deltas[i])
        deltas.append(row)
    return {
        "metadata": {"type": "itpblend", "version": BLEND_VERSION},
        "name": shape.name,
        "vertexformat": vertex_format_document(shape.format),
        "deltas": deltas,
    }


class MeshWriter:
    """Destination for converted meshes; write() returns the files it produced."""

    def write(self, converted: ConvertedMesh) -> List[str]:
        raise NotImplementedError


class JsonMeshWriter(MeshWriter):
    def __init__(self, output_folder):
        self.output_folder = Path(output_folder)
        self.output_folder.mkdir(parents=True, exist_ok=True)

    def _dump(self, document: dict, filename: str) -> str:
        path = self.output_folder / filename
        with open(path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent="\t")
            f.write("\n")
        return str(path)

    def write(self, converted: ConvertedMesh) -> List[str]:
        mesh = converted.mesh
        written = [self._dump(mesh_document(mesh), f"{mesh.name}.itpmesh3")]

        if mesh.format.has_skin:
            written.append(self._dump(skeleton_document(converted.bones), f"{mesh.name}.itpskel"))

        for shape in converted.blend_shapes:
            DebugConsole.log(f"    {shape.name} (deltas: {len(shape)})")
            written.append(self._dump(blend_shape_document(shape), f"{shape.name}.itpblend"))
        return written
