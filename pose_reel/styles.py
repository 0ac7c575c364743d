"""Background and speech bubble colour presets."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Tuple

from PIL import ImageColor

RGBA = Tuple[int, int, int, int]

DEFAULT_BACKGROUND = "white"

BACKGROUND_PRESETS: Dict[str, str] = {
    "white": "#ffffff",
    "dark": "#0a0a0a",
    # blues
    "newPunkBlue": "#2a3f6e",
    "midnightNavy": "#0f1b2d",
    "deepIndigo": "#1b2140",
    "slateBlue": "#3b4a63",
    "smokeBlue": "#5a6f86",
    # pop
    "popYellow": "#ffe600",
    "lemonYellow": "#fff06a",
    "sunflower": "#ffcc33",
    "electricCyan": "#00d7ff",
    "hotMagenta": "#ff2fb3",
    "popCoral": "#ff6b4a",
    # greens
    "stormTeal": "#1b4a4c",
    "petrolGreen": "#123c3a",
    "sage": "#7d8d7a",
    "moss": "#556a55",
    "oliveDrab": "#4c4a2b",
    # earth
    "warmSand": "#d6c6a8",
    "paperBeige": "#f1eadf",
    "clay": "#b08a77",
    "terracottaDust": "#8f5f4d",
    # muted
    "dustyRose": "#b58a93",
    "mauve": "#7f6377",
    "plumInk": "#2c1f2b",
    "charcoal": "#1a1a1f",
}


@dataclass(frozen=True)
class SpeechStyle:
    label: str
    text: str
    frame: str
    fill: str

    def colors(self) -> "SpeechColors":
        return SpeechColors(parse_color(self.text), parse_color(self.frame), parse_color(self.fill))


@dataclass(frozen=True)
class SpeechColors:
    text: RGBA
    frame: RGBA
    fill: RGBA


_WHITE_FILL = "rgba(255,255,255,0.96)"


def _ink(label: str, hex_color: str, fill: str = _WHITE_FILL) -> SpeechStyle:
    # frame and text share one colour
    return SpeechStyle(label, hex_color, hex_color, fill)


DEFAULT_SPEECH_STYLE = "classic"

SPEECH_STYLES: Dict[str, SpeechStyle] = {
    "classic": SpeechStyle("Classic (Black/White)", "rgba(0,0,0,0.95)", "rgba(0,0,0,0.98)", _WHITE_FILL),
    "inverse": SpeechStyle("Inverse (White/Ink)", "rgba(255,255,255,0.97)", "rgba(255,255,255,0.98)", "rgba(20,20,26,0.92)"),
    "newPunk": _ink("New Punk (Blue)", "#2a3f6e"),
    "popYellow": _ink("Pop Yellow", "#111114", "rgba(255, 230, 0, 0.96)"),
    "mint": _ink("Mint", "#006a7c"),
    "electricCyan": _ink("Electric Cyan", "#00a9c9"),
    "hotMagenta": _ink("Hot Magenta", "#d1007a"),
    "popCoral": _ink("Pop Coral", "#c43a22"),
    "charcoal": _ink("Charcoal", "#1a1a1f"),
}

_RGBA_FN = re.compile(
    r"^rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*(?:,\s*([0-9]*\.?[0-9]+)\s*)?\)$",
    re.IGNORECASE,
)


def parse_color(value: str) -> RGBA:
    """Parse ``#rgb``/``#rrggbb``/``rgb()``/``rgba()`` (CSS float alpha) into RGBA."""
    text = value.strip()
    m = _RGBA_FN.match(text)
    if m:
        r, g, b = (min(255, int(c)) for c in m.group(1, 2, 3))
        alpha = 1.0 if m.group(4) is None else min(1.0, max(0.0, float(m.group(4))))
        return r, g, b, int(round(alpha * 255))
    try:
        rgb = ImageColor.getrgb(text)
    except ValueError as exc:
        raise ValueError(f"invalid color: {value}") from exc
    if len(rgb) == 4:
        return rgb  # type: ignore[return-value]
    return rgb[0], rgb[1], rgb[2], 255


def background_rgb(mode: str) -> Tuple[int, int, int]:
    """RGB of background preset *mode*; unknown modes fall back to white."""
    r, g, b, _ = parse_color(BACKGROUND_PRESETS.get(mode, BACKGROUND_PRESETS[DEFAULT_BACKGROUND]))
    return r, g, b


def speech_style(style_id: str) -> SpeechStyle:
    """Speech preset *style_id*; unknown ids fall back to ``classic``."""
    return SPEECH_STYLES.get(style_id, SPEECH_STYLES[DEFAULT_SPEECH_STYLE])
