import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np
import pyrr

from itpmesh.debug_console import DebugConsole
from itpmesh.mesh_data import NO_INFLUENCE, Bone, SkinInfluence
from itpmesh.scene_source import SkinCluster

MAX_BONES = 256  # bone index must fit in a byte
MAX_INFLUENCES = 4
WEIGHT_TOTAL = 255


# ==============================================================================
# 1. Rotation helpers
# ==============================================================================
def euler_xyz_from_matrix(matrix) -> np.ndarray:
    """
    Extract XYZ Euler angles in degrees from a row-vector transform.

    The upper 3x3 of a row-vector matrix is the transpose of the column-vector
    rotation R = Rz @ Ry @ Rx, i.e. X is applied first. Axis scale is removed
    before decomposing.
    """
    basis = np.array(matrix, dtype=np.float64)[:3, :3]
    lengths = np.linalg.norm(basis, axis=1)
    lengths[lengths == 0] = 1.0
    basis = basis / lengths[:, None]

    sin_y = float(np.clip(-basis[0, 2], -1.0, 1.0))
    y = math.asin(sin_y)
    if abs(sin_y) < 1.0 - 1e-6:
        x = math.atan2(basis[1, 2], basis[2, 2])
        z = math.atan2(basis[0, 1], basis[0, 0])
    else:
        # gimbal lock: fold Z into X
        x = math.atan2(-basis[2, 1], basis[1, 1])
        z = 0.0
    return np.degrees([x, y, z])


def quaternion_from_euler_xyz(degrees) -> Tuple[float, float, float, float]:
    """Half-angle product of qz * qy * qx, returned as (x, y, z, w)."""
    hx, hy, hz = (math.radians(a) * 0.5 for a in degrees)
    cx, sx = math.cos(hx), math.sin(hx)
    cy, sy = math.cos(hy), math.sin(hy)
    cz, sz = math.cos(hz), math.sin(hz)
    return (
        sx * cy * cz - cx * sy * sz,
        cx * sy * cz + sx * cy * sz,
        cx * cy * sz - sx * sy * cz,
        cx * cy * cz + sx * sy * sz,
    )


def _safe_inverse(matrix) -> np.ndarray:
    if np.linalg.det(matrix) != 0:
        return pyrr.matrix44.inverse(matrix)
    return pyrr.matrix44.create_identity()


# ==============================================================================
# 2. Weight quantization
# ==============================================================================
def quantize_influences(influences: Sequence[Tuple[int, float]]) -> SkinInfluence:
    """
    Pack (bone id, weight) pairs into four byte slots summing to 255.

    The strongest four influences are kept (ties keep insertion order) and
    normalized by their own sum. The last used slot takes whatever is left of
    255 after rounding the others.
    """
    ranked = sorted(influences, key=lambda item: item[1], reverse=True)[:MAX_INFLUENCES]
    total = sum(weight for _, weight in ranked)
    if not ranked or total <= 0:
        return NO_INFLUENCE

    bone_ids = [0] * MAX_INFLUENCES
    weights = [0] * MAX_INFLUENCES
    for slot, (bone_id, weight) in enumerate(ranked):
        bone_ids[slot] = bone_id
        weights[slot] = min(WEIGHT_TOTAL, int(math.floor(weight / total * WEIGHT_TOTAL + 0.5)))

    last = len(ranked) - 1
    residual = WEIGHT_TOTAL - sum(weights[:last])
    if residual < 0:
        # the earlier slots all rounded up; take the excess from the largest
        weights[0] += residual
        residual = 0
    weights[last] = residual
    return SkinInfluence(bone_ids=tuple(bone_ids), weights=tuple(weights))


# ==============================================================================
# 3. Packer
# ==============================================================================
@dataclass
class _BoneRecord:
    name: str
    ancestors: Tuple[str, ...]
    bind: np.ndarray  # bone bind relative to the mesh bind


class SkinWeightPacker:
    """Turns skin clusters into per-control-point byte influences and a bone list."""

    def __init__(self, control_point_count: int, mesh_name: str = ""):
        self.control_point_count = control_point_count
        self.mesh_name = mesh_name
        self._records: List[_BoneRecord] = []
        self._bone_ids: Dict[str, int] = {}
        self._dropped = set()
        self._influences: List[List[Tuple[int, float]]] = [[] for _ in range(control_point_count)]

    def pack(self, clusters: Iterable[SkinCluster]) -> Tuple[List[SkinInfluence], List[Bone]]:
        for cluster in clusters:
            bone_id = self._register_bone(cluster)
            if bone_id is None:
                continue
            self._accumulate(bone_id, cluster)

        if self._dropped:
            DebugConsole.warning(
                f"Mesh '{self.mesh_name}': more than {MAX_BONES} bones, dropped {len(self._dropped)} "
                f"bone(s) and their influences: {', '.join(sorted(self._dropped))}"
            )

        influences = [quantize_influences(entries) for entries in self._influences]
        return influences, self._build_bones()

    def _register_bone(self, cluster: SkinCluster):
        name = cluster.bone_name
        bind = pyrr.matrix44.multiply(np.asarray(cluster.link_bind), _safe_inverse(np.asarray(cluster.mesh_bind)))

        bone_id = self._bone_ids.get(name)
        if bone_id is not None:
            record = self._records[bone_id]
            if not np.any(record.bind[3, :3]):
                record.bind = bind
            return bone_id

        if len(self._records) >= MAX_BONES:
            self._dropped.add(name)
            return None

        bone_id = len(self._records)
        self._bone_ids[name] = bone_id
        self._records.append(_BoneRecord(name=name, ancestors=tuple(cluster.ancestors), bind=bind))
        return bone_id

    def _accumulate(self, bone_id: int, cluster: SkinCluster):
        for control_point, weight in zip(cluster.indices, cluster.weights):
            weight = float(weight)
            if not math.isfinite(weight) or not weight > 0:
                continue
            if control_point < 0 or control_point >= self.control_point_count:
                continue
            self._influences[control_point].append((bone_id, weight))

    def _closes_cycle(self, parents: List[int], candidate: int, bone_id: int) -> bool:
        # links among resolved bones never loop, so this walk ends
        j = candidate
        while 0 <= j < len(parents):
            j = parents[j]
        return j == bone_id

    def _resolve_parents(self) -> List[int]:
        """Nearest registered ancestor per bone, refusing any link that would loop."""
        parents = []
        for bone_id, record in enumerate(self._records):
            parent_index = -1
            for ancestor in record.ancestors:
                candidate = self._bone_ids.get(ancestor)
                if candidate is None or candidate == bone_id:
                    continue
                if self._closes_cycle(parents, candidate, bone_id):
                    DebugConsole.warning(
                        f"Mesh '{self.mesh_name}': bone '{record.name}' would loop back through "
                        f"'{ancestor}', skipping that ancestor."
                    )
                    continue
                parent_index = candidate
                break
            parents.append(parent_index)
        return parents

    def _build_bones(self) -> List[Bone]:
        bones = []
        parents = self._resolve_parents()
        for record, parent_index in zip(self._records, parents):
            local = record.bind
            if parent_index >= 0:
                local = pyrr.matrix44.multiply(record.bind, _safe_inverse(self._records[parent_index].bind))

            bones.append(
                Bone(
                    name=record.name,
                    parent_index=parent_index,
                    local_bind_translation=tuple(float(v) for v in local[3, :3]),
                    local_bind_rotation=quaternion_from_euler_xyz(euler_xyz_from_matrix(local)),
                )
            )
            DebugConsole.log(f"  bone [{len(bones) - 1:3d}] {record.name} <- {parent_index}")
        return bones
