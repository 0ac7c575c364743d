"""Off-screen software render device.

Triangles are projected through OpenCV's pinhole camera model, back faces culled
and the rest painted far to near with flat Lambert shading tinted by the light
colours. Geometry, materials and textures are "uploaded" into a registry on
first use and stay there between frames until released explicitly.
"""
from __future__ import annotations

import contextlib
import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import cv2
import numpy as np

from . import config
from .camera import PerspectiveCamera
from .scene import Light, Mesh, Node, Scene


class ExportError(RuntimeError):
    """A GIF export failed; no partial output is produced."""


class RenderDeviceBusy(ExportError):
    """The device is already serving another export."""


@dataclass
class _Geometry:
    vertices: np.ndarray
    faces: np.ndarray
    uvs: Optional[np.ndarray]


@dataclass
class _MaterialEntry:
    color: np.ndarray  # float RGB


class RenderDevice:
    """Owns the colour target and the uploaded resources."""

    def __init__(self, width: Optional[int] = None, height: Optional[int] = None, supersample: int = 2) -> None:
        self.width = width or config.EXPORT_SIZE
        self.height = height or config.EXPORT_SIZE
        self.supersample = max(1, int(supersample))
        self._target = np.zeros((self.height * self.supersample, self.width * self.supersample, 3), dtype=np.uint8)
        self._geometries: Dict[int, _Geometry] = {}
        self._materials: Dict[int, _MaterialEntry] = {}
        self._textures: Dict[int, np.ndarray] = {}
        self._busy = False
        self.disposed = False

    # -- resources ---------------------------------------------------------

    def stats(self) -> Dict[str, int]:
        return {
            "geometries": len(self._geometries),
            "materials": len(self._materials),
            "textures": len(self._textures),
        }

    def _upload(self, mesh: Mesh) -> Tuple[_Geometry, _MaterialEntry, Optional[np.ndarray]]:
        geo = self._geometries.get(mesh.uid)
        if geo is None:
            uvs = None if mesh.uvs is None else np.array(mesh.uvs, dtype=np.float32)
            geo = _Geometry(np.array(mesh.vertices, dtype=np.float64), np.array(mesh.faces), uvs)
            self._geometries[mesh.uid] = geo
        mat = mesh.material
        entry = self._materials.get(mat.uid)
        if entry is None:
            entry = _MaterialEntry(np.array(mat.color, dtype=np.float32))
            self._materials[mat.uid] = entry
        tex = None
        if mat.texture is not None:
            tex = self._textures.get(mat.uid)
            if tex is None:
                tex = np.array(mat.texture, dtype=np.float32)
                self._textures[mat.uid] = tex
        return geo, entry, tex

    def release(self, node: Node) -> int:
        """Free every resource used by meshes under *node*; returns the count freed."""
        freed = 0
        for child in node.traverse():
            mesh = child.mesh
            if mesh is None:
                continue
            freed += self._geometries.pop(mesh.uid, None) is not None
            freed += self._materials.pop(mesh.material.uid, None) is not None
            freed += self._textures.pop(mesh.material.uid, None) is not None
        if freed:
            logging.debug("render device released %d resources under %s", freed, node.name or "node")
        return freed

    def dispose(self) -> None:
        self._geometries.clear()
        self._materials.clear()
        self._textures.clear()
        self.disposed = True

    @contextlib.contextmanager
    def exclusive(self) -> Iterator["RenderDevice"]:
        """Hold the device for one export; overlapping holders are rejected."""
        if self._busy:
            raise RenderDeviceBusy("render device is busy with another export")
        self._busy = True
        try:
            yield self
        finally:
            self._busy = False

    # -- drawing -----------------------------------------------------------

    def render(self, scene: Scene, camera: PerspectiveCamera, clear_color=(255, 255, 255)) -> np.ndarray:
        """Render *scene* and return an ``(height, width, 3)`` RGB ``uint8`` frame.

        World matrices of the scene objects must be current.
        """
        if self.disposed:
            raise RuntimeError("render device has been disposed")
        target = self._target
        target[:] = clear_color
        th, tw = target.shape[:2]

        world_to_camera, tvec = camera.extrinsics()
        rvec = world_to_camera.as_rotvec()
        camera_matrix = camera.intrinsics(tw, th)
        cam_pos = np.asarray(camera.position, dtype=np.float64)
        ambient, directional = _split_lights(scene.lights)

        tris: List[tuple] = []
        for root in scene.objects:
            for node in root.traverse():
                if node.mesh is None:
                    continue
                geo, mat, tex = self._upload(node.mesh)
                world = _world_vertices(node, geo)
                depth = world_to_camera.apply(world)[:, 2] + tvec[2]
                pixels, _ = cv2.projectPoints(world, rvec, tvec, camera_matrix, None)
                clip = (camera.near, camera.far)
                tris.extend(
                    _faces(world, depth, pixels.reshape(-1, 2), geo, mat, tex, cam_pos, clip, ambient, directional)
                )

        tris.sort(key=lambda tri: tri[0], reverse=True)
        for _, pts, color, uv, tex, shade in tris:
            if tex is None:
                cv2.fillConvexPoly(target, np.round(pts * 16).astype(np.int32), color, lineType=cv2.LINE_8, shift=4)
            else:
                _fill_textured(target, pts, uv, tex, shade)

        if self.supersample == 1:
            return target.copy()
        return cv2.resize(target, (self.width, self.height), interpolation=cv2.INTER_AREA)


def _split_lights(lights: List[Light]) -> Tuple[np.ndarray, List[Tuple[np.ndarray, np.ndarray]]]:
    """Sum ambient lights and normalise directional ones; intensities are RGB."""
    ambient = np.zeros(3)
    directional: List[Tuple[np.ndarray, np.ndarray]] = []
    for light in lights:
        radiance = light.intensity * np.asarray(light.color, dtype=np.float64) / 255.0
        if light.is_ambient:
            ambient += radiance
            continue
        direction = np.asarray(light.position, dtype=np.float64)
        norm = float(np.linalg.norm(direction))
        if norm > 1e-9:
            directional.append((direction / norm, radiance))
    return ambient, directional


def _world_vertices(node: Node, geo: _Geometry) -> np.ndarray:
    m = node.matrix_world
    return np.ascontiguousarray(geo.vertices @ m[:3, :3].T + m[:3, 3])


def _faces(world, depth, pixels, geo, mat, tex, cam_pos, clip, ambient, directional):
    near, far = clip
    out = []
    for a, b, c in geo.faces:
        if min(depth[a], depth[b], depth[c]) < near or max(depth[a], depth[b], depth[c]) > far:
            continue
        v0, v1, v2 = world[a], world[b], world[c]
        normal = np.cross(v1 - v0, v2 - v0)
        length = float(np.linalg.norm(normal))
        if length < 1e-12:
            continue
        normal /= length
        centroid = (v0 + v1 + v2) / 3.0
        if float(np.dot(normal, centroid - cam_pos)) >= 0.0:
            continue
        irradiance = ambient + sum(r * max(0.0, float(np.dot(normal, d))) for d, r in directional)
        shade = np.minimum(1.0, irradiance / math.pi)
        idx = [a, b, c]
        pts = pixels[idx].astype(np.float64)
        mean_depth = float(depth[a] + depth[b] + depth[c]) / 3.0
        color = tuple(int(v) for v in np.clip(mat.color * shade, 0, 255))
        uv = None if tex is None or geo.uvs is None else geo.uvs[idx]
        out.append((mean_depth, pts, color, uv, tex if uv is not None else None, shade))
    return out


def _fill_textured(target: np.ndarray, pts: np.ndarray, uv: np.ndarray, tex: np.ndarray, shade: np.ndarray) -> None:
    th, tw = target.shape[:2]
    x0 = max(0, int(math.floor(pts[:, 0].min())))
    y0 = max(0, int(math.floor(pts[:, 1].min())))
    x1 = min(tw, int(math.ceil(pts[:, 0].max())) + 1)
    y1 = min(th, int(math.ceil(pts[:, 1].max())) + 1)
    if x0 >= x1 or y0 >= y1:
        return
    tex_h, tex_w = tex.shape[:2]
    src = np.float32([[u * (tex_w - 1), (1.0 - v) * (tex_h - 1)] for u, v in uv])
    dst = (pts - (x0, y0)).astype(np.float32)
    transform = cv2.getAffineTransform(src, dst)
    patch = cv2.warpAffine(
        tex, transform, (x1 - x0, y1 - y0), flags=cv2.INTER_NEAREST, borderMode=cv2.BORDER_REPLICATE
    )
    mask = np.zeros((y1 - y0, x1 - x0), dtype=np.uint8)
    cv2.fillConvexPoly(mask, np.round(dst * 16).astype(np.int32), 1, lineType=cv2.LINE_8, shift=4)
    region = target[y0:y1, x0:x1]
    inside = mask > 0
    region[inside] = np.clip(patch[inside] * shade, 0, 255).astype(np.uint8)


_shared: Optional[RenderDevice] = None


def shared_device() -> RenderDevice:
    """Lazily created device reused by every export in the process."""
    global _shared
    if _shared is None or _shared.disposed:
        _shared = RenderDevice()
        logging.debug("created shared render device %dx%d", _shared.width, _shared.height)
    return _shared


def dispose_shared_device() -> None:
    global _shared
    if _shared is not None:
        _shared.dispose()
        _shared = None
