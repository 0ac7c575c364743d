"""Quaternion and matrix helpers on top of :class:`scipy.spatial.transform.Rotation`.

Quaternions are ``numpy`` arrays in the scalar-last ``(x, y, z, w)`` layout
``Rotation.as_quat`` returns. Euler angles use the intrinsic ``XYZ`` order,
so ``from_euler(x, y, z)`` equals ``qx * qy * qz``.
"""
from __future__ import annotations

from typing import Sequence

import numpy as np
from scipy.spatial.transform import Rotation


def rotation(q) -> Rotation:
    return Rotation.from_quat(np.asarray(q, dtype=np.float64))


def identity() -> np.ndarray:
    return Rotation.identity().as_quat()


def from_axis_angle(axis: Sequence[float], angle: float) -> np.ndarray:
    ax = np.asarray(axis, dtype=np.float64)
    n = float(np.linalg.norm(ax))
    if n < 1e-12:
        return identity()
    return Rotation.from_rotvec(ax / n * angle).as_quat()


def multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Return the product ``a * b`` (apply ``b`` first)."""
    return (rotation(a) * rotation(b)).as_quat()


def from_euler(x: float, y: float, z: float) -> np.ndarray:
    return Rotation.from_euler("XYZ", [x, y, z]).as_quat()


def to_matrix(q: np.ndarray) -> np.ndarray:
    return rotation(q).as_matrix()


def from_matrix(m: np.ndarray) -> np.ndarray:
    return Rotation.from_matrix(np.asarray(m, dtype=np.float64)).as_quat()


def compose(position: np.ndarray, q: np.ndarray, scale: np.ndarray) -> np.ndarray:
    """Build a 4x4 affine matrix from translation, rotation and scale."""
    out = np.eye(4)
    out[:3, :3] = to_matrix(q) * np.asarray(scale, dtype=np.float64)[None, :]
    out[:3, 3] = position
    return out


def look_at_rotation(eye: np.ndarray, target: np.ndarray, up=(0.0, 1.0, 0.0)) -> np.ndarray:
    """Quaternion orienting a camera at *eye* so its -Z axis faces *target*."""
    eye = np.asarray(eye, dtype=np.float64)
    target = np.asarray(target, dtype=np.float64)
    z = eye - target
    if float(np.linalg.norm(z)) < 1e-12:
        z = np.array([0.0, 0.0, 1.0])
    z = z / np.linalg.norm(z)
    x = np.cross(np.asarray(up, dtype=np.float64), z)
    if float(np.linalg.norm(x)) < 1e-12:
        # up is parallel to the view direction
        z = z + np.array([1e-4, 0.0, 0.0])
        z = z / np.linalg.norm(z)
        x = np.cross(np.asarray(up, dtype=np.float64), z)
    x = x / np.linalg.norm(x)
    y = np.cross(z, x)
    return from_matrix(np.stack([x, y, z], axis=1))


def same_rotation(a: np.ndarray, b: np.ndarray, atol: float = 1e-9) -> bool:
    """Return ``True`` when *a* and *b* describe the same rotation (``q ~ -q``)."""
    qa, qb = rotation(a).as_quat(), rotation(b).as_quat()
    return abs(abs(float(np.dot(qa, qb))) - 1.0) <= atol
