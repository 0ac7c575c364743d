"""Motion rig: rest-pose snapshot plus delta application on humanoid bones."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Tuple

import numpy as np

from . import quat
from .scene import Character, Node

BONE_NAMES: Tuple[str, ...] = (
    "hips",
    "spine",
    "chest",
    "neck",
    "head",
    "leftUpperArm",
    "leftLowerArm",
    "leftHand",
    "rightUpperArm",
    "rightLowerArm",
    "rightHand",
)

Euler = Tuple[float, float, float]


def _frozen(arr: np.ndarray) -> np.ndarray:
    out = np.array(arr, dtype=np.float64, copy=True)
    out.setflags(write=False)
    return out


@dataclass(frozen=True)
class BoneState:
    node: Node
    rest_quaternion: np.ndarray


@dataclass(frozen=True)
class RootState:
    node: Node
    rest_quaternion: np.ndarray
    rest_position: np.ndarray


class MotionRig:
    """Live bone nodes of one character and their captured rest values.

    Offsets are deltas from rest: call :meth:`reset` before evaluating a frame,
    otherwise rotations compound from frame to frame.
    """

    def __init__(self, bones: Mapping[str, BoneState], root: RootState) -> None:
        self.bones: Dict[str, BoneState] = dict(bones)
        self.root = root

    def has_bone(self, name: str) -> bool:
        return name in self.bones

    def reset(self) -> None:
        self.root.node.quaternion = self.root.rest_quaternion.copy()
        self.root.node.position = self.root.rest_position.copy()
        for entry in self.bones.values():
            entry.node.quaternion = entry.rest_quaternion.copy()

    def apply_bone_offset(self, name: str, euler: Euler, strength: float = 1.0) -> None:
        """Post-multiply bone *name* by the ``XYZ`` rotation ``euler * strength``."""
        entry = self.bones.get(name)
        if entry is None:
            return
        x, y, z = euler
        q = quat.from_euler(x * strength, y * strength, z * strength)
        entry.node.quaternion = quat.multiply(entry.node.quaternion, q)

    def apply_root_offset(self, yaw: float = 0.0, y_offset: float = 0.0, strength: float = 1.0) -> None:
        """Set the root to rest composed with a yaw and lifted by *y_offset* (both scaled)."""
        q = quat.from_euler(0.0, yaw * strength, 0.0)
        node = self.root.node
        node.quaternion = quat.multiply(self.root.rest_quaternion, q)
        position = self.root.rest_position.copy()
        position[1] += y_offset * strength
        node.position = position

    def snapshot(self) -> Dict[str, np.ndarray]:
        """Current local quaternions (plus ``root`` / ``root.position``) for comparisons."""
        out = {name: entry.node.quaternion.copy() for name, entry in self.bones.items()}
        out["root"] = self.root.node.quaternion.copy()
        out["root.position"] = self.root.node.position.copy()
        return out


def create_rig(character: Character) -> MotionRig:
    """Capture the rest pose of *character*.

    Bones missing from the humanoid mapping are skipped; offsets targeting them
    later are no-ops.
    """
    bones: Dict[str, BoneState] = {}
    for name in BONE_NAMES:
        node = character.bone(name)
        if node is None:
            logging.debug("rig: bone %s not present", name)
            continue
        bones[name] = BoneState(node, _frozen(node.quaternion))
    root = character.scene
    return MotionRig(bones, RootState(root, _frozen(root.quaternion), _frozen(root.position)))


def rig_for(character: Character) -> MotionRig:
    """Return the rig of *character*, capturing its rest pose on first use.

    Loaders call this right after building the character so the rest values
    come from the unposed asset; later callers share the same rig.
    """
    if character.rig is None:
        character.rig = create_rig(character)
    return character.rig
