import asyncio

import numpy as np
import pytest

cv2 = pytest.importorskip("cv2")

from pose_reel.assets import InvalidCharacterId
from pose_reel.export import CameraParams, MotionParams, OverlayParams, frame_camera, make_camera
from pose_reel.mannequin import build_mannequin, load_character
from pose_reel.render import RenderDevice
from pose_reel.rig import create_rig
from pose_reel.session import LOAD_ERROR_MESSAGE, CharacterSession, PreviewLoop


class SpyDevice(RenderDevice):
    def __init__(self):
        super().__init__(48, 48, supersample=1)
        self.released = []

    def release(self, node):
        self.released.append(node)
        return super().release(node)


class FakeHandle:
    def __init__(self, callback):
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    def __init__(self):
        self.handles = []

    def call_later(self, delay, callback):
        handle = FakeHandle(callback)
        self.handles.append(handle)
        return handle

    def is_closed(self):
        return False

    def pending(self):
        return [h for h in self.handles if not h.cancelled and not getattr(h, "fired", False)]

    def fire(self):
        (handle,) = self.pending()
        handle.fired = True
        handle.callback()


def _loaded_session(character_id=4274):
    session = CharacterSession(device=SpyDevice())
    asyncio.run(session.load(character_id))
    return session


def test_load_success():
    session = _loaded_session(31)
    assert session.character.character_id == 31
    assert session.rig is not None
    assert session.error is None
    assert not session.loading


def test_invalid_id_sets_validation_message():
    session = CharacterSession(device=SpyDevice())
    assert asyncio.run(session.load(0)) is None
    assert session.character is None
    assert "Invalid character ID" in session.error


def test_loader_failure_sets_generic_message():
    async def broken(character_id):
        raise RuntimeError("network down")

    session = CharacterSession(device=SpyDevice(), loader=broken)
    assert asyncio.run(session.load(5)) is None
    assert session.error == LOAD_ERROR_MESSAGE
    assert not session.loading


def test_newer_load_supersedes_older():
    gate = {}

    async def slow_loader(character_id):
        if character_id == 1:
            gate["first"] = asyncio.Event()
            await gate["first"].wait()
        return await load_character(character_id)

    session = CharacterSession(device=SpyDevice(), loader=slow_loader)

    async def main():
        first = asyncio.create_task(session.load(1))
        await asyncio.sleep(0)
        second = await session.load(2)
        gate["first"].set()
        return await first, second

    first, second = asyncio.run(main())
    assert first is None
    assert second is session.character
    assert session.character.character_id == 2
    assert any(node.name == "root" and node is not session.character.scene for node in session.device.released)


def test_reload_releases_previous_character():
    device = RenderDevice(48, 48, supersample=1)
    session = CharacterSession(device=device)
    asyncio.run(session.load(3))
    preview = PreviewLoop(session)
    preview.render_frame(0.5)
    assert device.stats()["geometries"] > 0

    asyncio.run(session.load(4))
    assert device.stats()["geometries"] == 0
    session.close()
    assert session.character is None


def test_preview_without_character_renders_nothing():
    preview = PreviewLoop(CharacterSession(device=SpyDevice()))
    assert preview.render_frame(0.0) is None
    assert preview.frames_rendered == 0


def test_preview_recomputes_camera_only_on_changes():
    session = _loaded_session()
    frames = []
    preview = PreviewLoop(session, MotionParams("idleTurn"), on_frame=frames.append)
    preview.render_frame(0.1)
    preview.render_frame(0.2)
    assert preview.camera_updates == 1
    preview.camera_params = CameraParams("face", "left")
    preview.render_frame(0.3)
    assert preview.camera_updates == 2
    assert len(frames) == 3
    assert frames[-1].shape == (48, 48, 4)


def test_preview_matches_export_camera():
    session = _loaded_session()
    params = CameraParams("waistToHead", "right", "frontLeft")
    preview = PreviewLoop(session, camera_params=params)
    preview.render_frame(0.0)

    other = build_mannequin(4274)
    camera = make_camera()
    target = frame_camera(other, create_rig(other), camera, params)
    assert np.allclose(preview.camera.position, camera.position)
    assert np.allclose(preview._target, target)


def test_preview_draws_overlay():
    session = _loaded_session()
    plain = PreviewLoop(session, overlay=OverlayParams("")).render_frame(1.0)
    speech = PreviewLoop(session, overlay=OverlayParams("Hello", "middleCenter")).render_frame(1.0)
    assert not np.array_equal(plain, speech)


def test_start_stop_keeps_a_single_timer():
    session = _loaded_session()
    loop = FakeLoop()
    preview = PreviewLoop(session, clock=lambda: 10.0)
    preview.start(loop)
    preview.start(loop)
    assert len(loop.pending()) == 1
    assert preview.running

    loop.fire()
    loop.fire()
    assert preview.frames_rendered == 2
    assert len(loop.pending()) == 1

    preview.stop()
    assert not preview.running
    assert loop.pending() == []


def test_preview_runs_on_asyncio_loop():
    session = _loaded_session()
    preview = PreviewLoop(session, interval=0.001)

    async def main():
        preview.start()
        await asyncio.sleep(0.05)
        preview.stop()
        count = preview.frames_rendered
        await asyncio.sleep(0.02)
        return count

    count = asyncio.run(main())
    assert count > 0
    assert preview.frames_rendered == count
