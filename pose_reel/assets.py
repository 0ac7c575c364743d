"""Character IDs, asset URLs and lineup (share link) encoding."""
from __future__ import annotations

import logging
import math
import random
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from . import config

SPRITE_GRID = (8, 8)  # columns, rows
SPRITE_CACHE_CONTROL = "public, max-age=31536000, immutable"
LINEUP_PARAM = "ids"

_SEPARATORS = re.compile(r"[\s,]+")


class InvalidCharacterId(ValueError):
    """Character ID outside the accepted range."""


class CharacterLoadError(RuntimeError):
    """Character asset could not be fetched or parsed."""


def is_valid_character_id(value) -> bool:
    try:
        num = float(value)
    except (TypeError, ValueError):
        return False
    if not math.isfinite(num) or num != math.floor(num):
        return False
    return config.MIN_CHARACTER_ID <= num <= config.MAX_CHARACTER_ID


def validate_character_id(value) -> int:
    """Return *value* as ``int`` or raise :class:`InvalidCharacterId`."""
    if isinstance(value, bool) or not is_valid_character_id(value):
        raise InvalidCharacterId(
            f"Invalid character ID: {value!r} "
            f"(expected an integer {config.MIN_CHARACTER_ID}-{config.MAX_CHARACTER_ID})"
        )
    return int(value)


def clamp_character_id(raw) -> int:
    """Map free-form input into the valid range (non-numeric → default)."""
    try:
        num = float(raw)
    except (TypeError, ValueError):
        return config.DEFAULT_CHARACTER_ID
    if not math.isfinite(num):
        return config.DEFAULT_CHARACTER_ID
    return int(min(config.MAX_CHARACTER_ID, max(config.MIN_CHARACTER_ID, math.floor(num))))


def random_character_id(rng: Optional[random.Random] = None) -> int:
    """Uniformly pick an ID from the accepted range."""
    return (rng or random).randint(config.MIN_CHARACTER_ID, config.MAX_CHARACTER_ID)


def character_asset_url(character_id: int) -> str:
    """Same-origin proxy path for the rigged humanoid asset."""
    return f"{config.ASSET_PREFIX.rstrip('/')}/{validate_character_id(character_id)}"


def sprite_url(character_id: int) -> str:
    """Same-origin proxy path for the sprite sheet (``SPRITE_GRID`` cells)."""
    return f"{config.SPRITE_PREFIX.rstrip('/')}/{validate_character_id(character_id)}"


def download_filename(character_id: int, when: Optional[datetime] = None) -> str:
    ts = (when or datetime.now()).strftime("%Y%m%d-%H%M%S")
    return f"pose-reel-{character_id}-{ts}.gif"


# ---------------------------------------------------------------------------
# Lineup
# ---------------------------------------------------------------------------

def parse_lineup(text: str) -> List[int]:
    """Parse comma/whitespace separated IDs.

    Non-numeric and out-of-range tokens are dropped, numeric tokens floored.
    Falls back to ``[DEFAULT_CHARACTER_ID]`` when nothing survives.
    """
    ids: List[int] = []
    for token in _SEPARATORS.split(text or ""):
        if not token:
            continue
        try:
            num = float(token)
        except ValueError:
            continue
        if not math.isfinite(num):
            continue
        value = math.floor(num)
        if config.MIN_CHARACTER_ID <= value <= config.MAX_CHARACTER_ID:
            ids.append(int(value))
    return ids or [config.DEFAULT_CHARACTER_ID]


def serialize_lineup(ids: Sequence[int]) -> str:
    return ",".join(str(int(i)) for i in ids)


def lineup_share_url(base_url: str, ids: Sequence[int]) -> str:
    """Return *base_url* with the ``ids`` query parameter set to the lineup."""
    parts = urlsplit(base_url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != LINEUP_PARAM]
    query.append((LINEUP_PARAM, serialize_lineup(ids)))
    return urlunsplit(parts._replace(query=urlencode(query, safe=",")))


def lineup_from_url(url: str) -> Optional[List[int]]:
    """Lineup stored in *url*, or ``None`` when the parameter is absent."""
    for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key == LINEUP_PARAM:
            return parse_lineup(value)
    return None


@dataclass(frozen=True)
class ShareResult:
    url: str
    copied: bool
    message: str


def share_lineup(
    base_url: str,
    ids: Sequence[int],
    copy: Optional[Callable[[str], None]] = None,
) -> ShareResult:
    """Build the share URL and try to copy it with *copy*.

    Without a working clipboard the URL is handed back for manual copying.
    """
    url = lineup_share_url(base_url, ids)
    if copy is None:
        return ShareResult(url, False, f"Copy Share URL: {url}")
    try:
        copy(url)
    except Exception as exc:  # clipboard backends raise anything
        logging.warning("clipboard copy failed: %s", exc)
        return ShareResult(url, False, f"Copy Share URL: {url}")
    return ShareResult(url, True, "Share URL copied to clipboard.")
