"""Fixed-length GIF export: pose, render, overlay, quantize, encode."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from . import config
from .camera import PerspectiveCamera, compute_camera_pose
from .gif import GifEncoder, apply_palette, quantize
from .mannequin import load_character
from .motion import apply_relaxed_pose, evaluate
from .overlay import draw_overlay
from .render import ExportError, RenderDevice, RenderDeviceBusy, shared_device
from .rig import MotionRig, rig_for
from .scene import Character, Scene, default_lights
from .styles import background_rgb, speech_style

__all__ = [
    "CameraParams",
    "ExportError",
    "GifBlob",
    "MotionParams",
    "OverlayParams",
    "RenderDeviceBusy",
    "export_gif",
    "frame_camera",
    "frame_times",
    "generate_gif",
    "make_camera",
]

ProgressFn = Callable[[int], None]


@dataclass(frozen=True)
class MotionParams:
    preset: str = "wave"
    strength: float = 1.0
    speed: float = 1.0


@dataclass(frozen=True)
class CameraParams:
    framing: str = "fullBody"
    pan: str = "center"
    angle: str = "front"


@dataclass(frozen=True)
class OverlayParams:
    text: str = "Hello"
    position: str = "bottomCenter"
    render_mode: str = "bubble"
    style: str = "classic"


@dataclass(frozen=True)
class GifBlob:
    data: bytes
    frame_count: int
    width: int
    height: int
    mime_type: str = config.EXPORT_MIME_TYPE

    def __len__(self) -> int:
        return len(self.data)


def frame_times(frame_count: int = config.EXPORT_FRAME_COUNT, duration: float = config.EXPORT_DURATION):
    """Timestamps of every exported frame; the loop end itself is excluded."""
    dt = duration / frame_count
    return [i * dt for i in range(frame_count)]


def make_camera() -> PerspectiveCamera:
    return PerspectiveCamera(fov=30.0, aspect=1.0, near=0.1, far=100.0)


def frame_camera(character: Character, rig: MotionRig, camera: PerspectiveCamera, params: CameraParams) -> np.ndarray:
    """Place *camera* for *params* around the relaxed stance; returns the look-at target.

    The rig is left reset to rest.
    """
    rig.reset()
    apply_relaxed_pose(rig)
    character.update(0.0)
    pose = compute_camera_pose(character, camera, params.framing, params.pan, params.angle)
    rig.reset()
    character.update(0.0)
    camera.position = np.array(pose.position)
    target = np.array(pose.target)
    camera.look_at(target)
    return target


async def export_gif(
    character: Character,
    motion: MotionParams = MotionParams(),
    camera_params: CameraParams = CameraParams(),
    overlay: OverlayParams = OverlayParams(),
    background: str = "white",
    device: Optional[RenderDevice] = None,
    rig: Optional[MotionRig] = None,
    on_progress: Optional[ProgressFn] = None,
) -> GifBlob:
    """Render the loop of *character* into an in-memory GIF.

    Progress is reported as an integer percentage. Any failure inside the
    frame loop is raised as :class:`ExportError`; the character is detached,
    its device resources released and the rig reset in every case.
    """
    device = device or shared_device()
    rig = rig or rig_for(character)
    size = config.EXPORT_SIZE
    frame_count = config.EXPORT_FRAME_COUNT
    delay = round(1000 / config.EXPORT_FPS)
    dt = config.EXPORT_DURATION / frame_count
    clear = background_rgb(background)
    colors = speech_style(overlay.style).colors()

    with device.exclusive():
        if on_progress:
            on_progress(0)
        logging.info(
            "export start: preset=%s frames=%d size=%d", motion.preset, frame_count, size
        )
        scene = Scene()
        scene.add(character.scene)
        lights = default_lights()
        for light in lights:
            scene.add(light)
        try:
            camera = make_camera()
            target = frame_camera(character, rig, camera, camera_params)

            encoder = GifEncoder()
            for i, t in enumerate(frame_times(frame_count, config.EXPORT_DURATION)):
                rig.reset()
                evaluate(rig, character, t, motion.preset, motion.strength, motion.speed)
                character.update(dt)
                camera.look_at(target)

                rgb = device.render(scene, camera, clear_color=clear)
                if rgb.shape[:2] != (size, size):
                    raise ExportError(f"render target is {rgb.shape[1]}x{rgb.shape[0]}, expected {size}x{size}")
                surface = np.dstack([rgb, np.full((size, size), 255, dtype=np.uint8)])
                draw_overlay(
                    surface, size, size, t, overlay.text, overlay.position, overlay.render_mode, colors
                )

                palette = quantize(surface, 256)
                index = apply_palette(surface, palette)
                encoder.write_frame(index, size, size, palette, delay, repeat=0 if i == 0 else None)

                if on_progress:
                    on_progress(round((i + 1) / frame_count * 100))
                if i % 2 == 1:
                    await asyncio.sleep(0)

            encoder.finish()
            data = encoder.bytes()
        except ExportError:
            raise
        except Exception as exc:
            logging.warning("export failed: %s", exc)
            raise ExportError(f"Failed to generate the GIF: {exc}") from exc
        finally:
            scene.remove(character.scene)
            for light in lights:
                scene.remove(light)
            device.release(character.scene)
            rig.reset()
            character.update(0.0)

    logging.info("export done: %d frames, %d bytes", frame_count, len(data))
    return GifBlob(data=data, frame_count=encoder.frame_count, width=size, height=size)


async def generate_gif(
    character_id: int,
    motion: MotionParams = MotionParams(),
    camera_params: CameraParams = CameraParams(),
    overlay: OverlayParams = OverlayParams(),
    background: str = "white",
    device: Optional[RenderDevice] = None,
    on_progress: Optional[ProgressFn] = None,
) -> GifBlob:
    """Load the character for *character_id* and export its loop."""
    character = await load_character(character_id)
    return await export_gif(
        character, motion, camera_params, overlay, background, device=device, on_progress=on_progress
    )
