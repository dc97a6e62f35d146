import struct
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np


# ==============================================================================
# 1. Vertex key
# ==============================================================================
# position(3) normal(3) tangent(3) uv(2) as float32, bone ids(4) + weights(4) as bytes
_VERTEX_LAYOUT = struct.Struct("<11f8B")
_HASH_WORDS = struct.Struct("<13I")

_MASK64 = 0xFFFFFFFFFFFFFFFF
_GOLDEN64 = 0x9E3779B97F4A7C15


def _mix64(value: int) -> int:
    """splitmix64 finalizer."""
    value = (value ^ (value >> 30)) * 0xBF58476D1CE4E5B9 & _MASK64
    value = (value ^ (value >> 27)) * 0x94D049BB133111EB & _MASK64
    return value ^ (value >> 31)


def hash_vertex_bytes(packed: bytes) -> int:
    """Combine the 32-bit words of a packed vertex into a stable 64-bit hash."""
    h = 0
    for word in _HASH_WORDS.unpack(packed):
        h ^= (_mix64(word) + _GOLDEN64 + (h << 6) + (h >> 2)) & _MASK64
    return h


@dataclass(frozen=True, eq=False)
class VertexAttributes:
    """
    One face corner's attribute tuple, and the deduplication key.

    Floats are snapped to float32 on construction. Two instances compare equal
    only when every float32 bit pattern and every byte matches, so 0.0 and -0.0
    are different vertices.
    """

    position: Tuple[float, float, float]
    normal: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    tangent: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    uv: Tuple[float, float] = (0.0, 0.0)
    bone_ids: Tuple[int, int, int, int] = (0, 0, 0, 0)
    bone_weights: Tuple[int, int, int, int] = (0, 0, 0, 0)

    def __post_init__(self):
        packed = _VERTEX_LAYOUT.pack(
            *self.position,
            *self.normal,
            *self.tangent,
            *self.uv,
            *self.bone_ids,
            *self.bone_weights,
        )
        values = _VERTEX_LAYOUT.unpack(packed)
        object.__setattr__(self, "position", values[0:3])
        object.__setattr__(self, "normal", values[3:6])
        object.__setattr__(self, "tangent", values[6:9])
        object.__setattr__(self, "uv", values[9:11])
        object.__setattr__(self, "bone_ids", values[11:15])
        object.__setattr__(self, "bone_weights", values[15:19])
        object.__setattr__(self, "_packed", packed)
        object.__setattr__(self, "_hash", hash_vertex_bytes(packed))

    def __eq__(self, other):
        if not isinstance(other, VertexAttributes):
            return NotImplemented
        return self._packed == other._packed

    def __hash__(self):
        return self._hash


# ==============================================================================
# 2. Mesh, skeleton and blendshape records
# ==============================================================================
@dataclass
class VertexFormat:
    has_normal: bool = False
    has_tan: bool = False
    has_uv: bool = False
    has_skin: bool = False


@dataclass(frozen=True)
class SkinInfluence:
    """Four (bone index, byte weight) slots for one control point."""

    bone_ids: Tuple[int, int, int, int] = (0, 0, 0, 0)
    weights: Tuple[int, int, int, int] = (0, 0, 0, 0)


NO_INFLUENCE = SkinInfluence()


@dataclass
class Bone:
    name: str
    parent_index: int = -1
    local_bind_translation: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    # (x, y, z, w)
    local_bind_rotation: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)


@dataclass
class MeshBuffer:
    """Deduplicated vertices and triangles of one mesh."""

    name: str
    format: VertexFormat = field(default_factory=VertexFormat)
    verts: List[VertexAttributes] = field(default_factory=list)
    triangles: List[Tuple[int, int, int]] = field(default_factory=list)
    # original control point -> new vertex indices, in creation order
    control_point_map: Dict[int, List[int]] = field(default_factory=dict)

    @property
    def vertex_count(self) -> int:
        return len(self.verts)

    def first_vertex_index(self, control_point: int) -> Optional[int]:
        indices = self.control_point_map.get(control_point)
        return indices[0] if indices else None


@dataclass
class BlendShape:
    """Per-vertex morph deltas, row-aligned with the owning MeshBuffer.verts."""

    name: str
    format: VertexFormat
    position_deltas: np.ndarray  # Shape: (num_verts, 3), dtype: float32
    normal_deltas: np.ndarray  # zero when format.has_normal is False
    tangent_deltas: np.ndarray  # zero when format.has_tan is False

    def __len__(self):
        return len(self.position_deltas)


@dataclass
class ConvertedMesh:
    """Everything the writer needs for one mesh."""

    mesh: MeshBuffer
    bones: List[Bone] = field(default_factory=list)
    blend_shapes: List[BlendShape] = field(default_factory=list)
