"""Palette quantization and animated GIF encoding on top of Pillow."""
from __future__ import annotations

import io
from typing import Optional

import numpy as np
from PIL import Image


def _rgb_image(rgba: np.ndarray) -> Image.Image:
    arr = np.ascontiguousarray(np.asarray(rgba, dtype=np.uint8)[:, :, :3])
    return Image.fromarray(arr)


def quantize(rgba: np.ndarray, max_colors: int = 256) -> np.ndarray:
    """Return a ``(K, 3)`` ``uint8`` palette (``K <= max_colors``) for *rgba*."""
    max_colors = max(1, min(256, int(max_colors)))
    img = _rgb_image(rgba).quantize(colors=max_colors, method=Image.Quantize.MEDIANCUT, dither=Image.Dither.NONE)
    flat = img.getpalette() or [0, 0, 0]
    count = min(max_colors, len(flat) // 3)
    return np.array(flat[: count * 3], dtype=np.uint8).reshape(count, 3)


def _palette_image(palette: np.ndarray) -> Image.Image:
    flat = np.asarray(palette, dtype=np.uint8).reshape(-1).tolist()
    pimg = Image.new("P", (1, 1))
    # pad with the last colour so every padding entry duplicates a real one
    pimg.putpalette(flat + flat[-3:] * ((768 - len(flat)) // 3))
    return pimg


def apply_palette(rgba: np.ndarray, palette: np.ndarray) -> np.ndarray:
    """Map every pixel of *rgba* to the nearest entry of *palette*; ``(H, W)`` indices."""
    count = len(palette)
    mapped = _rgb_image(rgba).quantize(palette=_palette_image(palette), dither=Image.Dither.NONE)
    index = np.array(mapped, dtype=np.uint8)
    if count < 256:
        np.minimum(index, count - 1, out=index)
    return index


def _screen_header_length(data: bytes) -> int:
    """Bytes taken by the signature, the screen descriptor and the global colour table."""
    flags = data[10]
    if not flags & 0x80:
        return 13
    return 13 + 3 * (2 << (flags & 0x07))


class GifEncoder:
    """Streams indexed frames into one GIF.

    Pillow encodes every frame on its own, with the frame palette as a local
    colour table, and the image block is appended to the stream right away.
    Identical consecutive frames therefore stay separate frames. ``repeat`` is
    only honoured on the first frame (``0`` loops forever, ``None`` plays
    once); delays are milliseconds, stored in the format's 10 ms units.
    """

    def __init__(self) -> None:
        self._stream = io.BytesIO()
        self._frames = 0
        self._finished = False

    @property
    def frame_count(self) -> int:
        """Image blocks written to the stream so far."""
        return self._frames

    def write_frame(
        self,
        index: np.ndarray,
        width: int,
        height: int,
        palette: np.ndarray,
        delay: int,
        repeat: Optional[int] = None,
    ) -> None:
        if self._finished:
            raise RuntimeError("encoder already finished")
        index = np.ascontiguousarray(np.asarray(index, dtype=np.uint8).reshape(height, width))
        img = Image.frombytes("P", (width, height), index.tobytes())
        img.putpalette(np.asarray(palette, dtype=np.uint8).reshape(-1).tolist())

        first = self._frames == 0
        params = {
            "format": "GIF",
            "duration": int(delay),
            "optimize": False,
            "interlace": False,
            "include_color_table": True,
        }
        if first and repeat is not None:
            params["loop"] = repeat
        buf = io.BytesIO()
        img.save(buf, **params)
        data = buf.getvalue()
        # the trailer closes the whole stream in finish()
        if first:
            self._stream.write(data[:-1])
        else:
            self._stream.write(data[_screen_header_length(data):-1])
        self._frames += 1

    def finish(self) -> None:
        if self._finished:
            return
        if not self._frames:
            raise RuntimeError("no frames written")
        self._stream.write(b";")
        self._finished = True

    def bytes(self) -> bytes:
        if not self._finished:
            raise RuntimeError("call finish() before bytes()")
        return self._stream.getvalue()
