import numpy as np
import pytest

cv2 = pytest.importorskip("cv2")

from pose_reel import overlay
from pose_reel.overlay import (
    POSITIONS,
    anchor_for,
    draw_overlay,
    layout_bubble,
    layout_pixel_text,
    margin_for,
    normalize_speech,
    overlay_opacity,
    render_pixel_text,
)

W = H = 512


def _blank():
    return np.zeros((H, W, 4), dtype=np.uint8)


def _bbox(surface):
    ys, xs = np.nonzero(surface[:, :, 3])
    return xs.min(), ys.min(), xs.max(), ys.max()


def test_normalize_speech():
    assert normalize_speech("  Hello\nworld ") == "Hello world"
    assert normalize_speech("x" * 30) == "x" * 24
    assert normalize_speech("   ") == ""
    assert normalize_speech(None) == ""


@pytest.mark.parametrize(
    "t, expected",
    [(0.0, 0.0), (0.1, 0.5), (0.2, 1.0), (1.5, 1.0), (2.6, 1.0), (2.8, 0.5), (3.0, 0.0)],
)
def test_opacity_envelope(t, expected):
    assert overlay_opacity(t) == pytest.approx(expected)


def test_scale_grows_to_full_size():
    assert overlay.overlay_scale(0.0) == pytest.approx(0.95)
    assert overlay.overlay_scale(0.5) == 1.0


@pytest.mark.parametrize("t", [0.0, 3.0])
def test_invisible_frames_leave_surface_untouched(t):
    surface = _blank()
    draw_overlay(surface, W, H, t, "Hello")
    assert not surface.any()


def test_empty_text_is_a_noop():
    surface = _blank()
    draw_overlay(surface, W, H, 1.0, " \n ")
    assert not surface.any()


@pytest.mark.parametrize("position", POSITIONS)
def test_anchor_positions(position):
    surface = _blank()
    draw_overlay(surface, W, H, 1.0, "Hello", position)
    x0, y0, x1, y1 = _bbox(surface)
    assert x0 >= 0 and y0 >= 0 and x1 < W and y1 < H
    cx, cy = (x0 + x1) / 2, (y0 + y1) / 2
    if position.endswith("Left"):
        assert cx < W / 2 - 50
    elif position.endswith("Right"):
        assert cx > W / 2 + 50
    else:
        assert abs(cx - W / 2) < 8
    if position.startswith("top"):
        assert cy < H / 2 - 50
    elif position.startswith("bottom"):
        assert cy > H / 2 + 50
    else:
        assert abs(cy - H / 2) < 12


@pytest.mark.parametrize("position", POSITIONS)
def test_tail_points_into_the_frame(position):
    margin = margin_for(W, H)
    anchor = anchor_for(position, W, H, margin)
    layout = layout_bubble(anchor, layout_pixel_text("Hello", W * 0.64), W, margin)
    assert layout.tail == ("up" if position.startswith("bottom") else "down")
    middle = layout.x + layout.width / 2
    if position.endswith("Left"):
        assert layout.tail_center_x > middle
    elif position.endswith("Right"):
        assert layout.tail_center_x < middle
    else:
        assert layout.tail_center_x == pytest.approx(middle)


def test_bubble_fits_inside_margins():
    margin = margin_for(W, H)
    anchor = anchor_for("middleCenter", W, H, margin)
    layout = layout_bubble(anchor, layout_pixel_text("W" * 24, W * 0.64), W, margin)
    assert layout.width <= W - 2 * margin
    assert layout.height >= overlay.MIN_BUBBLE_H


def test_pixel_text_shrinks_long_lines():
    short = layout_pixel_text("Hi", W * 0.64)
    assert short.font_px == overlay.SRC_FONT_MAX
    long = layout_pixel_text("W" * 24, W * 0.64)
    # nothing fits, so the loop steps one size past the smallest it tries
    assert long.font_px == overlay.SRC_FONT_MIN - 1
    assert long.src_height == 10
    assert long.dst_width == long.src_width * overlay.PIXEL_SCALE


def test_pixel_text_is_blocky():
    layout = layout_pixel_text("GM", 300)
    img = render_pixel_text("GM", layout, (10, 20, 30, 255))
    assert img.shape == (layout.dst_height, layout.dst_width, 4)
    blocks = img.reshape(layout.src_height, 6, layout.src_width, 6, 4)
    assert np.array_equal(blocks, np.broadcast_to(blocks[:, :1, :, :1], blocks.shape))
    assert (img[:, :, 3] > 0).any()


def test_text_only_mode_draws_less_than_bubble():
    bubble = _blank()
    text_only = _blank()
    draw_overlay(bubble, W, H, 1.0, "Thanks", "middleCenter", "bubble")
    draw_overlay(text_only, W, H, 1.0, "Thanks", "middleCenter", "textOnly")
    painted = np.count_nonzero(text_only[:, :, 3])
    assert 0 < painted < np.count_nonzero(bubble[:, :, 3])


def test_fade_scales_alpha():
    full = _blank()
    half = _blank()
    draw_overlay(full, W, H, 1.0, "LFG")
    draw_overlay(half, W, H, 2.8, "LFG")
    assert half[:, :, 3].max() < full[:, :, 3].max()
