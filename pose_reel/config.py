"""Configuration helpers for pose_reel."""
from __future__ import annotations

import os

# Character IDs accepted by the asset endpoints.
MIN_CHARACTER_ID = 1
MAX_CHARACTER_ID = 20000
DEFAULT_CHARACTER_ID = 4274

# Length of one motion loop; presets are tuned against it.
LOOP_DURATION = 3.0

# GIF export (square output)
EXPORT_SIZE = 512
EXPORT_FPS = 12
EXPORT_DURATION = LOOP_DURATION
EXPORT_FRAME_COUNT = round(EXPORT_FPS * EXPORT_DURATION)
EXPORT_MIME_TYPE = "image/gif"

# Same-origin proxy paths (can be overridden via environment)
ASSET_PREFIX = os.environ.get("POSE_REEL_ASSET_PREFIX") or "/api/vrm"
SPRITE_PREFIX = os.environ.get("POSE_REEL_SPRITE_PREFIX") or "/api/sprites"

# Optional TrueType font for the speech overlay; Pillow's bundled font otherwise.
SPEECH_FONT = os.environ.get("POSE_REEL_FONT") or None
