"""Interactive session: current character plus a live preview loop."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import numpy as np

from . import config
from .assets import InvalidCharacterId
from .camera import PerspectiveCamera
from .export import CameraParams, MotionParams, OverlayParams, frame_camera, make_camera
from .mannequin import load_character
from .motion import evaluate
from .overlay import draw_overlay
from .render import RenderDevice
from .rig import MotionRig, rig_for
from .scene import Character, Scene, default_lights
from .styles import background_rgb, speech_style

LOAD_ERROR_MESSAGE = "Failed to load the character. Check the ID."

Loader = Callable[[int], Awaitable[Character]]


class CharacterSession:
    """Holds at most one loaded character; newer loads supersede older ones."""

    def __init__(self, device: Optional[RenderDevice] = None, loader: Loader = load_character) -> None:
        self.device = device or RenderDevice()
        self._loader = loader
        self._token = 0
        self.character: Optional[Character] = None
        self.rig: Optional[MotionRig] = None
        self.error: Optional[str] = None
        self.loading = False

    async def load(self, character_id) -> Optional[Character]:
        """Load *character_id*; returns ``None`` when superseded or failed."""
        self._token += 1
        token = self._token
        self._drop_current()
        self.error = None
        self.loading = True
        try:
            character = await self._loader(character_id)
        except InvalidCharacterId as exc:
            if token == self._token:
                self.error = str(exc)
                self.loading = False
            return None
        except Exception as exc:
            logging.warning("character %r failed to load: %s", character_id, exc)
            if token == self._token:
                self.error = LOAD_ERROR_MESSAGE
                self.loading = False
            return None

        if token != self._token:
            logging.debug("discarding superseded character %r", character_id)
            character.dispose(self.device)
            return None
        self.character = character
        self.rig = rig_for(character)
        self.loading = False
        return character

    def _drop_current(self) -> None:
        if self.character is not None:
            self.character.dispose(self.device)
        self.character = None
        self.rig = None

    def close(self) -> None:
        self._token += 1
        self._drop_current()
        self.loading = False


class PreviewLoop:
    """Re-renders the session character about once per display refresh.

    The camera pose is recomputed only when the character or the framing
    parameters change; the look-at target is re-applied on every tick.
    """

    def __init__(
        self,
        session: CharacterSession,
        motion: MotionParams = MotionParams(),
        camera_params: CameraParams = CameraParams(),
        overlay: OverlayParams = OverlayParams(),
        background: str = "white",
        interval: float = 1 / 60,
        on_frame: Optional[Callable[[np.ndarray], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.motion = motion
        self.camera_params = camera_params
        self.overlay = overlay
        self.background = background
        self.interval = interval
        self.on_frame = on_frame
        self._clock = clock
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._started_at = 0.0
        self._last_tick: Optional[float] = None
        self.camera: PerspectiveCamera = make_camera()
        self._camera_key = None
        self._target = np.zeros(3)
        self._scene = Scene()
        for light in default_lights():
            self._scene.add(light)
        self._shown: Optional[Character] = None
        self.frames_rendered = 0
        self.camera_updates = 0

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Schedule ticks on *loop* (the running loop by default)."""
        self.stop()
        self._loop = loop or asyncio.get_running_loop()
        self._started_at = self._clock()
        self._last_tick = None
        self._handle = self._loop.call_later(self.interval, self._tick)

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _tick(self) -> None:
        self._handle = None
        try:
            self.render_frame()
        finally:
            if self._loop is not None and not self._loop.is_closed():
                self._handle = self._loop.call_later(self.interval, self._tick)

    def _sync_character(self) -> Optional[Character]:
        character = self.session.character
        if character is not self._shown:
            if self._shown is not None:
                self._scene.remove(self._shown.scene)
            if character is not None:
                self._scene.add(character.scene)
            self._shown = character
            self._camera_key = None
        return character

    def render_frame(self, t: Optional[float] = None) -> Optional[np.ndarray]:
        """Pose, render and overlay one preview frame; ``None`` without a character."""
        character = self._sync_character()
        rig = self.session.rig
        if character is None or rig is None:
            return None

        now = self._clock()
        dt = 0.0 if self._last_tick is None else now - self._last_tick
        self._last_tick = now
        if t is None:
            t = (now - self._started_at) % config.LOOP_DURATION

        params = self.camera_params
        key = (id(character), params.framing, params.pan, params.angle)
        if key != self._camera_key:
            self._target = frame_camera(character, rig, self.camera, params)
            self._camera_key = key
            self.camera_updates += 1

        rig.reset()
        evaluate(rig, character, t, self.motion.preset, self.motion.strength, self.motion.speed)
        character.update(dt)
        self.camera.look_at(self._target)

        device = self.session.device
        rgb = device.render(self._scene, self.camera, clear_color=background_rgb(self.background))
        h, w = rgb.shape[:2]
        surface = np.dstack([rgb, np.full((h, w), 255, dtype=np.uint8)])
        draw_overlay(
            surface, w, h, t,
            self.overlay.text, self.overlay.position, self.overlay.render_mode,
            speech_style(self.overlay.style).colors(),
        )
        self.frames_rendered += 1
        if self.on_frame is not None:
            self.on_frame(surface)
        return surface
