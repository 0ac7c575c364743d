"""Minimal scene graph used by the rig, the camera and the render device."""
from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from . import quat

_uid = itertools.count(1)


@dataclass(eq=False)
class Material:
    """Flat-shaded surface colour, optionally modulated by a texture."""

    color: Tuple[int, int, int]
    texture: Optional[np.ndarray] = None  # HxWx3 uint8
    uid: int = field(default_factory=lambda: next(_uid))


@dataclass(eq=False)
class Mesh:
    """Triangle mesh in node-local coordinates."""

    vertices: np.ndarray  # (N, 3) float
    faces: np.ndarray  # (M, 3) int
    material: Material
    uvs: Optional[np.ndarray] = None  # (N, 2) float
    uid: int = field(default_factory=lambda: next(_uid))


class Node:
    """Transform node with optional mesh and children."""

    def __init__(
        self,
        name: str = "",
        position=(0.0, 0.0, 0.0),
        mesh: Optional[Mesh] = None,
    ) -> None:
        self.name = name
        self.position = np.array(position, dtype=np.float64)
        self.quaternion = quat.identity()
        self.scale = np.ones(3)
        self.mesh = mesh
        self.parent: Optional[Node] = None
        self.children: List[Node] = []
        self.matrix_world = np.eye(4)

    def add(self, child: "Node") -> "Node":
        if child.parent is not None:
            child.parent.children.remove(child)
        child.parent = self
        self.children.append(child)
        return child

    def traverse(self) -> Iterator["Node"]:
        yield self
        for child in self.children:
            yield from child.traverse()

    def local_matrix(self) -> np.ndarray:
        return quat.compose(self.position, self.quaternion, self.scale)

    def update_world_matrix(self) -> None:
        """Recompute world matrices for this node and its descendants."""
        parent = self.parent.matrix_world if self.parent is not None else np.eye(4)
        self._update(parent)

    def _update(self, parent_world: np.ndarray) -> None:
        self.matrix_world = parent_world @ self.local_matrix()
        for child in self.children:
            child._update(self.matrix_world)

    def world_position(self) -> np.ndarray:
        return self.matrix_world[:3, 3].copy()


@dataclass(eq=False)
class Light:
    """Ambient light when ``position`` is ``None``, directional otherwise."""

    intensity: float
    position: Optional[Tuple[float, float, float]] = None
    color: Tuple[int, int, int] = (255, 255, 255)

    @property
    def is_ambient(self) -> bool:
        return self.position is None


class Scene:
    """Flat list of root objects and lights rendered together.

    Adding a node to a scene does not re-parent it, so a character can be
    shown by a preview scene and an export scene at the same time.
    """

    def __init__(self) -> None:
        self.objects: List[Node] = []
        self.lights: List[Light] = []

    def add(self, item) -> None:
        target = self.lights if isinstance(item, Light) else self.objects
        if item not in target:
            target.append(item)

    def remove(self, item) -> None:
        target = self.lights if isinstance(item, Light) else self.objects
        if item in target:
            target.remove(item)

    def __contains__(self, item) -> bool:
        return item in self.objects or item in self.lights


class Character:
    """A loaded humanoid: scene root, humanoid bone lookup and expression channels.

    ``bones`` may omit any humanoid bone and ``expressions`` only lists the
    channels the asset supports; callers treat anything missing as absent.
    """

    def __init__(
        self,
        scene: Node,
        bones: Dict[str, Node],
        expressions: Optional[Dict[str, float]] = None,
        character_id: Optional[int] = None,
        on_update=None,
    ) -> None:
        self.scene = scene
        self.bones = dict(bones)
        self.expressions: Dict[str, float] = dict(expressions or {})
        self.character_id = character_id
        self.rig = None  # MotionRig captured once at load, see rig.rig_for
        self._on_update = on_update

    def bone(self, name: str) -> Optional[Node]:
        return self.bones.get(name)

    def set_expression(self, name: str, value: float) -> bool:
        """Set channel *name* to *value* clamped to ``[0, 1]``; ``False`` if absent."""
        if name not in self.expressions:
            return False
        self.expressions[name] = min(1.0, max(0.0, float(value)))
        return True

    def update(self, dt: float) -> None:
        """Push expression weights into the geometry and refresh world matrices."""
        if self._on_update is not None:
            self._on_update(self, dt)
        self.scene.update_world_matrix()

    def dispose(self, device) -> int:
        """Release the render resources this character holds on *device*."""
        return device.release(self.scene)


def default_lights() -> List[Light]:
    """Bright ambient + key/fill/rim rig so faces never go dark."""
    return [
        Light(1.35),
        Light(2.2, (0.0, 1.2, 2.2)),
        Light(1.0, (-2.2, 1.4, 1.0)),
        Light(0.7, (2.2, 0.8, -1.8)),
    ]


def world_bounds(root: Node) -> Tuple[np.ndarray, np.ndarray]:
    """Return ``(min, max)`` corners of all meshes under *root* in world space.

    World matrices must be current. An empty subtree yields a zero box at the
    root's world position.
    """
    lo = np.full(3, np.inf)
    hi = np.full(3, -np.inf)
    for node in root.traverse():
        if node.mesh is None:
            continue
        verts = node.mesh.vertices
        world = verts @ node.matrix_world[:3, :3].T + node.matrix_world[:3, 3]
        lo = np.minimum(lo, world.min(axis=0))
        hi = np.maximum(hi, world.max(axis=0))
    if not np.all(np.isfinite(lo)):
        p = root.world_position()
        return p, p.copy()
    return lo, hi


def box_mesh(
    size: Tuple[float, float, float],
    material: Material,
    center=(0.0, 0.0, 0.0),
) -> Mesh:
    """Axis aligned box mesh with outward facing triangles and face UVs."""
    sx, sy, sz = (s / 2.0 for s in size)
    cx, cy, cz = center
    # corners counter-clockwise seen from outside
    quads = [
        [(-1, -1, 1), (1, -1, 1), (1, 1, 1), (-1, 1, 1)],  # +z (front)
        [(1, -1, -1), (-1, -1, -1), (-1, 1, -1), (1, 1, -1)],  # -z
        [(1, -1, 1), (1, -1, -1), (1, 1, -1), (1, 1, 1)],  # +x
        [(-1, -1, -1), (-1, -1, 1), (-1, 1, 1), (-1, 1, -1)],  # -x
        [(-1, 1, 1), (1, 1, 1), (1, 1, -1), (-1, 1, -1)],  # +y
        [(-1, -1, -1), (1, -1, -1), (1, -1, 1), (-1, -1, 1)],  # -y
    ]
    corner_uv = [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)]
    verts: List[Tuple[float, float, float]] = []
    uvs: List[Tuple[float, float]] = []
    faces: List[Tuple[int, int, int]] = []
    for quad in quads:
        base = len(verts)
        for (x, y, z), uv in zip(quad, corner_uv):
            verts.append((cx + x * sx, cy + y * sy, cz + z * sz))
            uvs.append(uv)
        faces.append((base, base + 1, base + 2))
        faces.append((base, base + 2, base + 3))
    return Mesh(
        vertices=np.array(verts, dtype=np.float64),
        faces=np.array(faces, dtype=np.int32),
        material=material,
        uvs=np.array(uvs, dtype=np.float64),
    )


def find_nodes(root: Node) -> Dict[str, Node]:
    """Map node names to nodes (first occurrence wins)."""
    out: Dict[str, Node] = {}
    for node in root.traverse():
        if node.name and node.name not in out:
            out[node.name] = node
    return out
