"""Argument validation helpers for the pose_reel CLI."""
from __future__ import annotations

from argparse import Namespace
from typing import List

from . import camera, overlay, styles
from .assets import is_valid_character_id
from .config import MAX_CHARACTER_ID, MIN_CHARACTER_ID
from .motion import MOTION_SPEEDS, MOTION_STRENGTHS, PRESETS


def _as_float(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def validate_args(args: Namespace) -> List[str]:
    """Validate parsed CLI arguments.

    Returns a list of human readable error messages. The caller should abort
    if the list is non-empty. Values coming from YAML presets bypass argparse
    ``choices``, so everything is checked here again.
    """
    errors: List[str] = []
    if args.id is not None and not is_valid_character_id(args.id):
        errors.append(f"--id must be an integer in {MIN_CHARACTER_ID}..{MAX_CHARACTER_ID}")
    if args.motion not in PRESETS:
        errors.append(f"--motion unknown preset: {args.motion}")
    if _as_float(args.strength) not in MOTION_STRENGTHS:
        errors.append(f"--strength must be one of {', '.join(str(s) for s in MOTION_STRENGTHS)}")
    if _as_float(args.speed) not in MOTION_SPEEDS:
        errors.append(f"--speed must be one of {', '.join(str(s) for s in MOTION_SPEEDS)}")
    if args.framing not in camera.FRAMINGS:
        errors.append(f"--framing must be one of {', '.join(camera.FRAMINGS)}")
    if args.pan not in camera.PANS:
        errors.append(f"--pan must be one of {', '.join(camera.PANS)}")
    if args.angle not in camera.ANGLES:
        errors.append(f"--angle must be one of {', '.join(camera.ANGLES)}")
    if args.position not in overlay.POSITIONS:
        errors.append(f"--position must be one of {', '.join(overlay.POSITIONS)}")
    if args.render_mode not in overlay.RENDER_MODES:
        errors.append(f"--render-mode must be one of {', '.join(overlay.RENDER_MODES)}")
    if args.style not in styles.SPEECH_STYLES:
        errors.append(f"--style unknown speech style: {args.style}")
    if args.background not in styles.BACKGROUND_PRESETS:
        errors.append(f"--background unknown background: {args.background}")
    text = args.text or ""
    if "\n" in text or "\r" in text:
        errors.append("--text must be a single line")
    return errors
