import os
from dataclasses import dataclass
from typing import List, Optional

from itpmesh.blend_shapes import compute_blend_shapes
from itpmesh.debug_console import DebugConsole
from itpmesh.mesh_data import NO_INFLUENCE, ConvertedMesh, VertexAttributes, VertexFormat
from itpmesh.scene_source import Corner, SceneSource, SourceMesh
from itpmesh.skin_packer import SkinWeightPacker
from itpmesh.vertex_dedup import VertexDeduplicator

_ZERO3 = (0.0, 0.0, 0.0)


@dataclass
class ExportOptions:
    export_skin: bool = False
    export_blendshapes: bool = False


def _corner_attributes(corner: Corner, influence) -> VertexAttributes:
    uv = (0.0, 0.0)
    if corner.uv is not None:
        # flip V
        uv = (corner.uv[0], 1.0 - corner.uv[1])
    return VertexAttributes(
        position=corner.position,
        normal=tuple(corner.normal[:3]) if corner.normal is not None else _ZERO3,
        tangent=tuple(corner.tangent[:3]) if corner.tangent is not None else _ZERO3,
        uv=uv,
        bone_ids=influence.bone_ids,
        bone_weights=influence.weights,
    )


def convert_mesh(source: SourceMesh, options: Optional[ExportOptions] = None) -> ConvertedMesh:
    """
    Run one source mesh through the pipeline.

    Skin packing runs first when enabled because the packed bone bytes are part
    of each vertex's identity; deduplication always runs; blendshape deltas are
    computed last against the finished vertex buffer.
    """
    options = options or ExportOptions()
    vertex_format = VertexFormat(
        has_normal=source.normals is not None,
        has_tan=source.tangents is not None,
        has_uv=source.uvs is not None,
    )

    influences = None
    bones = []
    if options.export_skin and source.skin_clusters:
        packer = SkinWeightPacker(source.control_point_count, source.name)
        influences, bones = packer.pack(source.skin_clusters)
        vertex_format.has_skin = bool(bones)

    dedup = VertexDeduplicator(source.name, vertex_format)
    for corners in source.iter_polygons():
        dedup.add_polygon(
            (
                corner.control_point,
                _corner_attributes(
                    corner, influences[corner.control_point] if vertex_format.has_skin else NO_INFLUENCE
                ),
            )
            for corner in corners
        )
    mesh = dedup.mesh

    blend_shapes = []
    if options.export_blendshapes and source.blend_channels:
        blend_shapes = compute_blend_shapes(mesh, source.control_point_count, source.blend_channels)

    return ConvertedMesh(
        mesh=mesh,
        bones=bones if vertex_format.has_skin else [],
        blend_shapes=blend_shapes,
    )


def convert_scene(scene_path, writer, options: Optional[ExportOptions] = None) -> List[str]:
    """
    Convert and write every mesh of a scene file, one mesh at a time.

    Load failures propagate to the caller; everything past loading only warns.
    Returns the paths written.
    """
    options = options or ExportOptions()
    meshes = SceneSource(scene_path).load()

    written = []
    for source in meshes:
        converted = convert_mesh(source, options)
        DebugConsole.info(
            f"{converted.mesh.name}: {converted.mesh.vertex_count} verts, "
            f"{len(converted.mesh.triangles)} tris, {len(converted.bones)} bones, "
            f"{len(converted.blend_shapes)} blendshapes"
        )
        written.extend(writer.write(converted))

    if not meshes:
        DebugConsole.warning(f"No meshes found in {os.path.basename(str(scene_path))}")
    return written
