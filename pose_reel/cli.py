"""Command line interface for pose_reel."""
from __future__ import annotations

import argparse
import asyncio
import logging
import random
import sys
from pathlib import Path
from typing import List

import yaml

from . import config
from .assets import (
    CharacterLoadError,
    InvalidCharacterId,
    download_filename,
    parse_lineup,
    random_character_id,
    share_lineup,
)
from .export import CameraParams, ExportError, MotionParams, OverlayParams, generate_gif
from .motion import PRESETS
from .overlay import SPEECH_PRESETS, normalize_speech
from .render import dispose_shared_device
from .validate import validate_args


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Render a posed character loop to an animated GIF")
    parser.add_argument("--preset", action="append", default=[], help="Path to YAML preset overriding defaults")
    parser.add_argument("--id", type=int, default=config.DEFAULT_CHARACTER_ID, help="Character ID")
    parser.add_argument("--random-id", action="store_true", help="Pick a random character ID")
    parser.add_argument("--seed", type=int, default=None, help="Seed for --random-id")
    parser.add_argument("--motion", default="wave", help="Motion preset id (see --list-presets)")
    parser.add_argument("--strength", type=float, default=1.0, help="Motion strength: 0.5, 1.0 or 1.5")
    parser.add_argument("--speed", type=float, default=1.0, help="Motion speed: 0.8, 1.0 or 1.2")
    parser.add_argument("--framing", default="fullBody", help="fullBody, waistToHead or face")
    parser.add_argument("--pan", default="center", help="left, center or right")
    parser.add_argument("--angle", default="front", help="front, frontRight or frontLeft")
    parser.add_argument("--text", default="Hello", help=f"Speech text (single line, 24 chars max), e.g. {', '.join(SPEECH_PRESETS)}")
    parser.add_argument("--position", default="bottomCenter", help="Speech anchor, e.g. topLeft")
    parser.add_argument("--render-mode", dest="render_mode", default="bubble", help="bubble or textOnly")
    parser.add_argument("--style", default="classic", help="Speech style preset")
    parser.add_argument("--background", default="white", help="Background preset")
    parser.add_argument("--out", default=None, help="Output GIF path")
    parser.add_argument("--list-presets", action="store_true", help="List motion presets and exit")
    parser.add_argument("--lineup", default=None, help="Comma separated IDs; prints a share URL and exits")
    parser.add_argument("--share-base", default="http://localhost:3000/", help="Base URL for --lineup")
    parser.add_argument("--validate", action="store_true", help="Validate arguments and exit")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    prelim, _ = parser.parse_known_args(argv)
    for path in prelim.preset:
        with open(path, "r", encoding="utf8") as fh:
            data = yaml.safe_load(fh) or {}
        parser.set_defaults(**data)
    return parser.parse_args(argv)


def _fail(errors: List[str]) -> None:
    for e in errors:
        print(f"validation error: {e}", file=sys.stderr)
    raise SystemExit(1)


def main(argv: List[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(message)s",
    )

    if args.list_presets:
        for preset_id, info in PRESETS.items():
            loop = " (loop)" if info.looping else ""
            print(f"{preset_id}\t{info.label}\t{info.description}{loop}")
        return

    if args.lineup is not None:
        result = share_lineup(args.share_base, parse_lineup(args.lineup))
        print(result.url)
        return

    if args.random_id:
        rng = random.Random(args.seed) if args.seed is not None else None
        args.id = random_character_id(rng)
        logging.info("random character id=%d", args.id)

    errs = validate_args(args)
    if errs:
        _fail(errs)
    if args.validate:
        return

    text = normalize_speech(args.text)
    if text != " ".join((args.text or "").split()):
        logging.warning("speech text truncated to %r", text)

    out = Path(args.out or download_filename(args.id))
    try:
        blob = asyncio.run(
            generate_gif(
                args.id,
                MotionParams(args.motion, float(args.strength), float(args.speed)),
                CameraParams(args.framing, args.pan, args.angle),
                OverlayParams(text, args.position, args.render_mode, args.style),
                args.background,
                on_progress=lambda p: logging.debug("progress %d%%", p),
            )
        )
    except (InvalidCharacterId, CharacterLoadError, ExportError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1)
    finally:
        dispose_shared_device()

    out.write_bytes(blob.data)
    logging.info("wrote %s (%d frames, %d bytes)", out, blob.frame_count, len(blob))
    print(out)


if __name__ == "__main__":  # pragma: no cover
    main()
