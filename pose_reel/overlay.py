"""Speech overlay: pixel-art text and comic bubble composited onto RGBA frames."""
from __future__ import annotations

import functools
import math
import re
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from . import config
from .styles import RGBA, SpeechColors, speech_style

MAX_SPEECH_CHARS = 24
SPEECH_PRESETS = ("Hello", "GM", "Thanks", "Welcome", "LFG", "Nice!")

POSITIONS = (
    "topLeft", "topCenter", "topRight",
    "middleLeft", "middleCenter", "middleRight",
    "bottomLeft", "bottomCenter", "bottomRight",
)
RENDER_MODES = ("bubble", "textOnly")

FADE_IN = 0.2
FADE_OUT_START = 2.6
FADE_OUT_END = 3.0
MIN_OPACITY = 0.001

PIXEL_SCALE = 6
SRC_FONT_MAX = 12
SRC_FONT_MIN = 8
TEXT_WIDTH_FRACTION = 0.64
SHADOW_RGBA: RGBA = (0, 0, 0, round(0.25 * 255))

PAD_X = 14
PAD_Y = 12
MIN_BUBBLE_W = 120
MIN_BUBBLE_H = 56
BORDER = 4
RADIUS = 8
TAIL_W = 16
TAIL_H = 10
BUBBLE_SHADOW_OFFSET = 4
BUBBLE_SHADOW_RGBA: RGBA = (0, 0, 0, round(0.18 * 255))

_WHITESPACE = re.compile(r"\s+")


def _clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return min(hi, max(lo, value))


def normalize_speech(text: Optional[str]) -> str:
    """Trim, collapse whitespace (newlines included) and cap the length."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text.strip())[:MAX_SPEECH_CHARS]


def entrance_progress(t: float) -> float:
    return _clamp(t / FADE_IN)


def overlay_opacity(t: float) -> float:
    """Fade in over the first 0.2 s, fade out over the last 0.4 s of the loop."""
    fade_in = entrance_progress(t)
    fade_out = 1.0 - _clamp((t - FADE_OUT_START) / (FADE_OUT_END - FADE_OUT_START))
    return _clamp(fade_in * fade_out)


def overlay_scale(t: float) -> float:
    p = entrance_progress(t)
    return 0.95 + (1.0 - 0.95) * p


def margin_for(width: int, height: int) -> int:
    return round(min(width, height) * 0.06)


@dataclass(frozen=True)
class Anchor:
    x: float
    y: float
    h_align: str  # left | center | right
    v_align: str  # top | middle | bottom


def anchor_for(position: str, width: int, height: int, margin: int) -> Anchor:
    """Reference point of one of the 3x3 anchor positions."""
    is_left = position.endswith("Left")
    is_right = position.endswith("Right")
    is_top = position.startswith("top")
    is_bottom = position.startswith("bottom")
    x = margin if is_left else width - margin if is_right else width * 0.5
    y = margin if is_top else height - margin if is_bottom else height * 0.5
    return Anchor(
        x,
        y,
        "left" if is_left else "right" if is_right else "center",
        "top" if is_top else "bottom" if is_bottom else "middle",
    )


# ---------------------------------------------------------------------------
# Pixel text
# ---------------------------------------------------------------------------

@functools.lru_cache(maxsize=16)
def _font(size: int):
    if config.SPEECH_FONT:
        return ImageFont.truetype(config.SPEECH_FONT, size)
    return ImageFont.load_default(size=size)


def measure_text(text: str, font_px: int) -> float:
    return float(_font(font_px).getlength(text))


@dataclass(frozen=True)
class PixelTextLayout:
    font_px: int
    src_width: int
    src_height: int

    @property
    def dst_width(self) -> int:
        return self.src_width * PIXEL_SCALE

    @property
    def dst_height(self) -> int:
        return self.src_height * PIXEL_SCALE


def layout_pixel_text(text: str, max_width: float) -> PixelTextLayout:
    """Largest source font (12 down to 8 px) whose upscaled width fits *max_width*.

    Text too wide even at 8 px is laid out at 7 px.
    """
    font_px = SRC_FONT_MAX
    while font_px >= SRC_FONT_MIN:
        if measure_text(text, font_px) * PIXEL_SCALE <= max_width:
            break
        font_px -= 1
    src_w = max(1, math.ceil(measure_text(text, font_px)) + 8)
    src_h = max(1, math.ceil(font_px * 1.4))
    return PixelTextLayout(font_px, src_w, src_h)


def render_pixel_text(text: str, layout: PixelTextLayout, color: RGBA) -> np.ndarray:
    """Draw *text* small with a 1 px shadow and upscale with nearest neighbour."""
    img = Image.new("RGBA", (layout.src_width, layout.src_height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    font = _font(layout.font_px)
    left, top, right, bottom = font.getbbox(text)
    x = layout.src_width // 2 - (left + right) / 2
    y = layout.src_height // 2 - (top + bottom) / 2
    draw.text((x + 1, y + 1), text, font=font, fill=SHADOW_RGBA)
    draw.text((x, y), text, font=font, fill=color)
    small = np.asarray(img)
    return cv2.resize(small, (layout.dst_width, layout.dst_height), interpolation=cv2.INTER_NEAREST)


# ---------------------------------------------------------------------------
# Compositing
# ---------------------------------------------------------------------------

def _paste_rgba(dst: np.ndarray, src: np.ndarray, x: int, y: int) -> None:
    """Alpha-over *src* onto *dst* (both RGBA uint8) with its corner at ``(x, y)``."""
    h, w = src.shape[:2]
    H, W = dst.shape[:2]
    x0 = max(0, x)
    y0 = max(0, y)
    x1 = min(W, x + w)
    y1 = min(H, y + h)
    if x0 >= x1 or y0 >= y1:
        return
    src_roi = src[y0 - y : y1 - y, x0 - x : x1 - x].astype(np.float32) / 255.0
    roi = dst[y0:y1, x0:x1].astype(np.float32) / 255.0
    sa = src_roi[:, :, 3:4]
    da = roi[:, :, 3:4]
    out_a = sa + da * (1 - sa)
    rgb = src_roi[:, :, :3] * sa + roi[:, :, :3] * da * (1 - sa)
    rgb = np.divide(rgb, out_a, out=np.zeros_like(rgb), where=out_a > 0)
    out = np.concatenate([rgb, out_a], axis=2)
    dst[y0:y1, x0:x1] = np.clip(out * 255.0 + 0.5, 0, 255).astype(np.uint8)


@dataclass(frozen=True)
class BubbleLayout:
    x: float  # relative to the anchor
    y: float
    width: int
    height: int
    tail: str  # up | down
    tail_center_x: float


def layout_bubble(anchor: Anchor, text_layout: PixelTextLayout, width: int, margin: int) -> BubbleLayout:
    bubble_w = min(width - margin * 2, max(MIN_BUBBLE_W, text_layout.dst_width + PAD_X * 2))
    bubble_h = max(MIN_BUBBLE_H, text_layout.dst_height + PAD_Y * 2)
    bx = 0.0 if anchor.h_align == "left" else -bubble_w if anchor.h_align == "right" else -bubble_w / 2
    by = 0.0 if anchor.v_align == "top" else -bubble_h if anchor.v_align == "bottom" else -bubble_h / 2
    tail = "up" if anchor.v_align == "bottom" else "down"
    # tail leans toward the screen centre
    inset = min(28.0, bubble_w * 0.22)
    if anchor.h_align == "right":
        tail_cx = bx + inset
    elif anchor.h_align == "left":
        tail_cx = bx + bubble_w - inset
    else:
        tail_cx = bx + bubble_w / 2
    return BubbleLayout(bx, by, int(round(bubble_w)), int(round(bubble_h)), tail, tail_cx)


def render_bubble(layout: BubbleLayout, colors: SpeechColors) -> Tuple[np.ndarray, int, int]:
    """Return the bubble sprite and the bubble's top-left offset inside it."""
    bw, bh = layout.width, layout.height
    pad = BORDER
    ox = pad
    oy = pad + (TAIL_H if layout.tail == "up" else 0)
    canvas_w = bw + BUBBLE_SHADOW_OFFSET + 2 * pad
    canvas_h = bh + BUBBLE_SHADOW_OFFSET + TAIL_H + 2 * pad
    img = Image.new("RGBA", (canvas_w, canvas_h), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)

    s = BUBBLE_SHADOW_OFFSET
    draw.rounded_rectangle((ox + s, oy + s, ox + s + bw, oy + s + bh), radius=RADIUS, fill=BUBBLE_SHADOW_RGBA)
    half = BORDER // 2
    draw.rounded_rectangle(
        (ox - half, oy - half, ox + bw + half, oy + bh + half),
        radius=RADIUS,
        fill=colors.fill,
        outline=colors.frame,
        width=BORDER,
    )

    tail_x = _clamp(
        layout.tail_center_x - TAIL_W / 2 - layout.x,
        RADIUS + 6,
        bw - RADIUS - 6 - TAIL_W,
    ) + ox
    if layout.tail == "down":
        base_y = oy + bh
        tip = (tail_x + TAIL_W / 2, base_y + TAIL_H)
    else:
        base_y = oy
        tip = (tail_x + TAIL_W / 2, base_y - TAIL_H)
    points = [(tail_x, base_y), (tail_x + TAIL_W, base_y), tip]
    draw.polygon(points, fill=colors.fill, outline=colors.frame, width=BORDER)
    return np.array(img), ox, oy


def _scaled(sprite: np.ndarray, scale: float) -> np.ndarray:
    if abs(scale - 1.0) < 1e-9:
        return sprite
    h, w = sprite.shape[:2]
    size = (max(1, int(round(w * scale))), max(1, int(round(h * scale))))
    return cv2.resize(sprite, size, interpolation=cv2.INTER_NEAREST)


def draw_overlay(
    surface: np.ndarray,
    width: int,
    height: int,
    t: float,
    text: Optional[str],
    position: str = "bottomCenter",
    render_mode: str = "bubble",
    colors: Optional[SpeechColors] = None,
) -> None:
    """Composite the speech overlay for time *t* onto *surface* in place.

    *surface* is an ``(height, width, 4)`` ``uint8`` array. Empty text and
    near-zero opacity leave it untouched.
    """
    line = normalize_speech(text)
    if not line:
        return
    opacity = overlay_opacity(t)
    if opacity <= MIN_OPACITY:
        return
    if colors is None:
        colors = speech_style("classic").colors()

    scale = overlay_scale(t)
    margin = margin_for(width, height)
    anchor = anchor_for(position, width, height, margin)
    bubble = layout_bubble(anchor, layout_pixel_text(line, width * TEXT_WIDTH_FRACTION), width, margin)
    text_layout = layout_pixel_text(line, bubble.width - PAD_X * 2)
    text_img = render_pixel_text(line, text_layout, colors.text)

    if render_mode == "bubble":
        sprite, ox, oy = render_bubble(bubble, colors)
    else:
        sprite = np.zeros((bubble.height, bubble.width, 4), dtype=np.uint8)
        ox = oy = 0
    cx = ox + bubble.width / 2
    cy = oy + bubble.height / 2
    _paste_rgba(
        sprite,
        text_img,
        int(round(cx - text_layout.dst_width / 2)),
        int(round(cy - text_layout.dst_height / 2)),
    )

    sprite = _scaled(sprite, scale)
    alpha = sprite[:, :, 3].astype(np.float32) * opacity
    sprite = sprite.copy()
    sprite[:, :, 3] = np.clip(alpha + 0.5, 0, 255).astype(np.uint8)
    x = int(round(anchor.x + (bubble.x - ox) * scale))
    y = int(round(anchor.y + (bubble.y - oy) * scale))
    _paste_rgba(surface, sprite, x, y)
