"""Deterministic camera placement from body landmarks and framing parameters."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from . import quat
from .scene import Character, world_bounds

FRAMINGS = ("fullBody", "waistToHead", "face")
PANS = ("left", "center", "right")
ANGLES = ("front", "frontRight", "frontLeft")

# Orbit around the vertical axis through the target, in degrees.
ANGLE_DEGREES = {"front": 0.0, "frontRight": -25.0, "frontLeft": 25.0}

_DIST_SCALE = {"face": 0.78, "waistToHead": 0.92, "fullBody": 1.12}


# turns the -Z forward, +Y up camera frame into OpenCV's +Z forward, Y down one
_TO_OPENCV = Rotation.from_euler("x", math.pi)


class PerspectiveCamera:
    """Pinhole camera looking down its local ``-Z`` axis.

    :meth:`extrinsics` and :meth:`intrinsics` describe it in OpenCV's camera
    model so points can be projected with :func:`cv2.projectPoints`.
    """

    def __init__(self, fov: float = 30.0, aspect: float = 1.0, near: float = 0.1, far: float = 100.0) -> None:
        self.fov = fov
        self.aspect = aspect
        self.near = near
        self.far = far
        self.position = np.array([0.0, 1.0, 3.0])
        self.quaternion = quat.identity()

    def look_at(self, target) -> None:
        self.quaternion = quat.look_at_rotation(self.position, target)

    def extrinsics(self) -> Tuple[Rotation, np.ndarray]:
        """World-to-camera rotation and translation; camera-space ``z`` is the depth."""
        world_to_camera = _TO_OPENCV * quat.rotation(self.quaternion).inv()
        return world_to_camera, -world_to_camera.apply(self.position)

    def intrinsics(self, width: int, height: int) -> np.ndarray:
        """3x3 camera matrix for a ``width`` x ``height`` pixel target."""
        half_fov = math.tan(math.radians(self.fov) / 2)
        fy = height * 0.5 / half_fov
        fx = width * 0.5 / (half_fov * self.aspect)
        return np.array([[fx, 0.0, width * 0.5], [0.0, fy, height * 0.5], [0.0, 0.0, 1.0]])


@dataclass(frozen=True)
class CameraPose:
    position: Tuple[float, float, float]
    target: Tuple[float, float, float]


def _clamp(value: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, value))


def _bone_y(character: Character, name: str):
    node = character.bone(name)
    if node is None:
        return None
    return float(node.world_position()[1])


def compute_camera_pose(
    character: Character,
    camera: PerspectiveCamera,
    framing: str = "fullBody",
    pan: str = "center",
    angle: str = "front",
) -> CameraPose:
    """Return where the camera should sit and look for the current pose.

    World matrices of the character are refreshed first; the camera is only
    read for its lens (``fov``/``aspect``).
    """
    character.scene.update_world_matrix()
    lo, hi = world_bounds(character.scene)
    size = hi - lo
    center = (lo + hi) / 2

    head_y = _bone_y(character, "head")
    hips_y = _bone_y(character, "hips")
    if head_y is None:
        head_y = center[1] + size[1] * 0.45
    if hips_y is None:
        hips_y = center[1] - size[1] * 0.10
    span = max(0.001, head_y - hips_y)

    target = center.copy()
    if framing == "face":
        target[1] = head_y + span * 0.2
        frame_height = _clamp(span * 0.14, size[1] * 0.055, size[1] * 0.12)
    elif framing == "waistToHead":
        target[1] = hips_y + span
        frame_height = _clamp(span * 0.20, size[1] * 0.07, size[1] * 0.16)
    else:
        target[1] = center[1] + size[1] * 0.05
        frame_height = _clamp(size[1] * 1.18, size[1] * 0.85, size[1] * 1.35)

    # moving the target the other way shifts the figure toward the pan side
    pan_sign = {"left": 1.0, "right": -1.0}.get(pan, 0.0)
    target[0] += (size[0] * 0.12 if framing == "face" else size[0] * 0.22) * pan_sign

    half_fov = math.tan(math.radians(camera.fov) / 2)
    fit_height = frame_height * 0.5 / half_fov
    fit_width = size[0] * 0.5 / (half_fov * max(0.001, camera.aspect))
    distance = max(fit_height, fit_width) * _DIST_SCALE.get(framing, _DIST_SCALE["fullBody"])

    position = np.array([0.0, target[1], distance])
    theta = math.radians(ANGLE_DEGREES.get(angle, 0.0))
    if theta:
        pivot = np.array([target[0], position[1], target[2]])
        position = pivot + Rotation.from_euler("y", theta).apply(position - pivot)

    return CameraPose(
        position=tuple(float(v) for v in position),
        target=tuple(float(v) for v in target),
    )


def apply_camera_pose(
    character: Character,
    camera: PerspectiveCamera,
    framing: str = "fullBody",
    pan: str = "center",
    angle: str = "front",
) -> np.ndarray:
    """Move *camera* to the computed pose, aim it and return the target."""
    pose = compute_camera_pose(character, camera, framing, pan, angle)
    camera.position = np.array(pose.position)
    target = np.array(pose.target)
    camera.look_at(target)
    return target
