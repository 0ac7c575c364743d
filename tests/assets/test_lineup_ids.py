import math
import random
from datetime import datetime

import pytest

from pose_reel import assets, config
from pose_reel.assets import (
    InvalidCharacterId,
    clamp_character_id,
    is_valid_character_id,
    lineup_from_url,
    lineup_share_url,
    parse_lineup,
    share_lineup,
    validate_character_id,
)


@pytest.mark.parametrize("value", [1, 20000, 4274, "17", 12.0])
def test_valid_ids(value):
    assert is_valid_character_id(value)
    assert validate_character_id(value) == int(float(value))


@pytest.mark.parametrize("value", [0, 20001, -5, 1.5, math.nan, math.inf, "abc", None, True])
def test_invalid_ids(value):
    with pytest.raises(InvalidCharacterId):
        validate_character_id(value)


def test_clamp_character_id():
    assert clamp_character_id("99999") == config.MAX_CHARACTER_ID
    assert clamp_character_id(-3) == config.MIN_CHARACTER_ID
    assert clamp_character_id("12.9") == 12
    assert clamp_character_id("meebit") == config.DEFAULT_CHARACTER_ID


def test_random_id_is_in_range_and_seedable():
    a = assets.random_character_id(random.Random(5))
    b = assets.random_character_id(random.Random(5))
    assert a == b
    assert config.MIN_CHARACTER_ID <= a <= config.MAX_CHARACTER_ID


def test_asset_urls(monkeypatch):
    monkeypatch.setattr(config, "ASSET_PREFIX", "/api/vrm/")
    monkeypatch.setattr(config, "SPRITE_PREFIX", "/api/sprites")
    assert assets.character_asset_url(42) == "/api/vrm/42"
    assert assets.sprite_url(42) == "/api/sprites/42"
    with pytest.raises(InvalidCharacterId):
        assets.character_asset_url(0)


def test_sprite_sheet_constants():
    assert assets.SPRITE_GRID == (8, 8)
    assert "immutable" in assets.SPRITE_CACHE_CONTROL


def test_download_filename():
    name = assets.download_filename(7, datetime(2024, 3, 9, 14, 5, 6))
    assert name == "pose-reel-7-20240309-140506.gif"


@pytest.mark.parametrize(
    "text, ids",
    [
        ("1,2,3", [1, 2, 3]),
        ("  10  20\n30 ", [10, 20, 30]),
        ("5, x, 0, 20001, 7.8", [5, 7]),
        ("", [config.DEFAULT_CHARACTER_ID]),
        ("nope, , ,", [config.DEFAULT_CHARACTER_ID]),
    ],
)
def test_parse_lineup(text, ids):
    assert parse_lineup(text) == ids


def test_share_url_keeps_other_params():
    url = lineup_share_url("https://example.test/app?mode=dark&ids=9", [3, 1, 2])
    assert url == "https://example.test/app?mode=dark&ids=3,1,2"
    assert lineup_from_url(url) == [3, 1, 2]
    assert lineup_from_url("https://example.test/app") is None


def test_share_lineup_without_clipboard():
    result = share_lineup("http://localhost:3000/", [4])
    assert not result.copied
    assert result.url in result.message


def test_share_lineup_clipboard_failure_falls_back(caplog):
    def broken(_):
        raise OSError("no clipboard")

    result = share_lineup("http://localhost:3000/", [4, 5], copy=broken)
    assert not result.copied
    assert "ids=4,5" in result.message
    assert "no clipboard" in caplog.text


def test_share_lineup_copies():
    copied = []
    result = share_lineup("http://localhost:3000/", [8], copy=copied.append)
    assert result.copied
    assert copied == ["http://localhost:3000/?ids=8"]
