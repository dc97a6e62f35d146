import json

import numpy as np
import pytest

from itpmesh.scene_source import (
    GeometryElement,
    MappingMode,
    ReferenceMode,
    SceneLoadError,
    SceneSource,
    parse_scene,
)

SCENE = {
    "meshes": [
        {
            "name": "Body",
            "control_points": [[0, 0, 0], [1, 0, 0], [0, 1, 0]],
            "polygons": [[0, 1, 2]],
            "normals": {
                "mapping": "by_polygon_vertex",
                "reference": "index_to_direct",
                "values": [[0, 0, 1], [0, 1, 0]],
                "indices": [0, 1, 0],
            },
            "uvs": {"mapping": "by_control_point", "values": [[0, 0], [1, 0], [0, 1]]},
            "skin": [
                {
                    "bone": "Root",
                    "ancestors": ["Armature"],
                    "indices": [0, 1, 2],
                    "weights": [1, 1, 1],
                    "link_bind": [1, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1, 0, 0, 2, 0, 1],
                }
            ],
            "blendshapes": [{"name": "Puff", "targets": [{"control_points": [[0, 0, 1], [1, 0, 1], [0, 1, 1]]}]}],
        }
    ]
}


def _write(tmp_path, text):
    path = tmp_path / "scene.json"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_reads_meshes(tmp_path):
    meshes = SceneSource(_write(tmp_path, json.dumps(SCENE))).load()

    assert len(meshes) == 1
    body = meshes[0]
    assert body.name == "Body"
    assert body.control_point_count == 3
    assert body.skin_clusters[0].ancestors == ("Armature",)
    assert np.asarray(body.skin_clusters[0].link_bind)[3, :3] == pytest.approx([0, 2, 0])
    assert body.blend_channels[0].targets[0].control_points.shape == (3, 3)


def test_corners_resolve_indexed_and_per_point_elements():
    body = parse_scene(SCENE)[0]
    corners = next(body.iter_polygons())

    assert [c.control_point for c in corners] == [0, 1, 2]
    assert [c.normal for c in corners] == [(0.0, 0.0, 1.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0)]
    assert corners[2].uv == (0.0, 1.0)
    assert corners[1].tangent is None


def test_unsupported_mapping_reads_as_absent():
    element = GeometryElement(np.ones((1, 3)), mapping_mode=MappingMode.AllSame)
    assert element.value_at(0, 0) is None


def test_index_out_of_range_reads_as_absent():
    element = GeometryElement(
        np.ones((1, 3)), MappingMode.ByControlPoint, ReferenceMode.IndexToDirect, indices=np.array([3])
    )
    assert element.value_at(0, 0) is None
    assert element.value_at(1, 1) is None


def test_missing_file_is_fatal(tmp_path):
    with pytest.raises(FileNotFoundError):
        SceneSource(tmp_path / "nope.json").load()


@pytest.mark.parametrize(
    "text",
    [
        "{not json",
        json.dumps({"objects": []}),
        json.dumps({"meshes": [{"name": "NoPolys", "control_points": [[0, 0, 0]]}]}),
        json.dumps({"meshes": [{"control_points": [[0, 0, 0]], "polygons": [[0, 1, 2]]}]}),
        json.dumps({"meshes": [{"control_points": [], "polygons": [], "skin": [{"indices": []}]}]}),
        json.dumps({"meshes": [{"control_points": [], "polygons": [], "skin": [{"bone": "b", "link_bind": [1, 2]}]}]}),
        json.dumps({"meshes": [{"control_points": [], "polygons": [], "normals": [[0, 0, 1]]}]}),
        json.dumps({"meshes": [{"control_points": [], "polygons": [], "uvs": 7}]}),
        json.dumps({"meshes": [{"control_points": [], "polygons": [], "skin": [["Root"]]}]}),
        json.dumps({"meshes": [{"control_points": [], "polygons": [], "nodes": ["Root"]}]}),
        json.dumps({"meshes": [{"control_points": [], "polygons": [], "blendshapes": [{"name": "S", "targets": [[0]]}]}]}),
    ],
)
def test_malformed_scenes_raise_scene_load_error(tmp_path, text):
    with pytest.raises(SceneLoadError):
        SceneSource(_write(tmp_path, text)).load()


def _rigged(nodes, bones):
    return {
        "meshes": [
            {
                "name": "Rig",
                "control_points": [],
                "polygons": [],
                "nodes": nodes,
                "skin": [{"bone": bone, "ancestors": ["Ignored"]} for bone in bones],
            }
        ]
    }


def test_node_table_builds_ancestor_chains():
    nodes = {"Hand": "Arm", "Arm": "Spine", "Spine": "Hips", "Hips": "Armature"}
    rig = parse_scene(_rigged(nodes, ["Hips", "Hand"]))[0]

    assert rig.skin_clusters[0].ancestors == ("Armature",)
    assert rig.skin_clusters[1].ancestors == ("Arm", "Spine", "Hips", "Armature")


def test_cyclic_node_table_stops_at_repeat():
    rig = parse_scene(_rigged({"A": "B", "B": "C", "C": "A"}, ["A", "B"]))[0]

    assert rig.skin_clusters[0].ancestors == ("B", "C")
    assert rig.skin_clusters[1].ancestors == ("C", "A")
