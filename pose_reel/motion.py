from __future__ import annotations

"""Procedural motion presets evaluated on a :class:`~pose_reel.rig.MotionRig`.

Every preset is a pure function of ``t`` (seconds into the loop), the phase
derived from the speed, and the strength. Nothing is carried between frames:
callers reset the rig, call :func:`evaluate` and then update the character.
"""

from dataclasses import dataclass
import logging
import math
from typing import Callable, Dict, Tuple

from . import config
from .rig import MotionRig
from .scene import Character

TAU = math.pi * 2

MOTION_STRENGTHS: Tuple[float, ...] = (0.5, 1.0, 1.5)
MOTION_SPEEDS: Tuple[float, ...] = (0.8, 1.0, 1.2)

# Channel aliases across asset generations; only present channels are touched.
EXPRESSION_ALIASES: Dict[str, Tuple[str, ...]] = {
    "blink": ("blink", "blinkLeft", "blinkRight", "Blink", "blink_l", "blink_r"),
    "smile": ("happy", "joy", "smile", "Joy"),
}

BLINK_INTERVAL = 1.5


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return min(hi, max(lo, value))


def smoothstep01(t: float) -> float:
    x = clamp(t)
    return x * x * (3 - 2 * x)


def pulse01(t: float, center: float, width: float) -> float:
    """Single bump in ``[0, 1]`` peaking at *center*, zero beyond *width*."""
    x = clamp(1 - abs(t - center) / max(1e-6, width))
    return x * x


def cycles_for_speed(speed: float) -> int:
    """Whole cycles per loop, so every speed closes the loop seamlessly."""
    if speed == 0.8:
        return 2
    if speed == 1.2:
        return 4
    return 3


def turns_for_speed(speed: float) -> int:
    """Whole turntable revolutions per loop."""
    return 2 if speed == 1.2 else 1


def set_expression_family(character: Character, family: str, value: float) -> None:
    for name in EXPRESSION_ALIASES[family]:
        character.set_expression(name, value)


def _blink(character: Character, t: float) -> None:
    set_expression_family(character, "blink", pulse01(t % BLINK_INTERVAL, 0.08, 0.06))


def _bounce01(phase: float) -> float:
    return 0.5 - 0.5 * math.cos(2 * phase)


# ---------------------------------------------------------------------------
# Base poses
# ---------------------------------------------------------------------------

_RELAXED_LEFT = (
    ("leftUpperArm", (0.08, 0.0, 1.22)),
    ("leftLowerArm", (-0.06, 0.0, 0.02)),
    ("leftHand", (0.0, 0.04, 0.04)),
)
_RELAXED_RIGHT = (
    ("rightUpperArm", (0.08, 0.0, -1.22)),
    ("rightLowerArm", (-0.06, 0.0, -0.02)),
    ("rightHand", (0.0, -0.04, -0.04)),
)


def apply_relaxed_pose(rig: MotionRig, left: bool = True, right: bool = True) -> None:
    """Lower the arms from the T-pose into a natural stance."""
    if left:
        for name, euler in _RELAXED_LEFT:
            rig.apply_bone_offset(name, euler)
    if right:
        for name, euler in _RELAXED_RIGHT:
            rig.apply_bone_offset(name, euler)


def apply_strict_pose(rig: MotionRig) -> None:
    """Arms hanging straight down with no elbow or wrist bend."""
    rig.apply_bone_offset("leftUpperArm", (0.0, 0.0, math.pi / 2))
    rig.apply_bone_offset("rightUpperArm", (0.0, 0.0, -math.pi / 2))


# ---------------------------------------------------------------------------
# Gestures
# ---------------------------------------------------------------------------

def _wave(rig, character, t, phase, strength, speed):
    swing = math.sin(phase * 2.2)
    swing_fast = math.sin(phase * 4.4)
    # arm placement is fixed, strength scales the swing only
    rig.apply_bone_offset("rightUpperArm", (-0.85, -0.55, 0.25))
    rig.apply_bone_offset("rightUpperArm", (0.0, 0.35 * swing, 0.0), strength)
    rig.apply_bone_offset("rightLowerArm", (0.50, 0.0, 0.1))
    rig.apply_bone_offset("rightLowerArm", (0.0, 0.0, 0.0), strength)
    rig.apply_bone_offset("rightHand", (0.0, 0.55, 0.2))
    rig.apply_bone_offset("rightHand", (0.0, 0.08 * swing_fast, 0.05 * swing), strength)
    rig.apply_bone_offset("head", (0.05, 0.0, -0.18), strength)
    set_expression_family(character, "smile", 0.35 * strength)


def _hand_down(rig, character, t, phase, strength, speed):
    p = smoothstep01(t / 0.9)
    rig.apply_bone_offset("rightUpperArm", (0.0, 0.55 * p, -1.22 - 0.12 * p))
    rig.apply_bone_offset("rightLowerArm", (0.0, 0.7 * p, 0.0))
    rig.apply_bone_offset("rightHand", (0.0, -0.04, -0.04))
    rig.apply_bone_offset("head", (0.06 * p, 0.0, 0.0), strength)
    rig.apply_bone_offset("chest", (-0.03 * p, 0.0, 0.0), strength)
    set_expression_family(character, "smile", 0.15 * strength)


def _nod(rig, character, t, phase, strength, speed):
    nod = math.sin(phase * 1.3)
    rig.apply_bone_offset("head", (0.38 * nod, 0.0, 0.0), strength)
    rig.apply_bone_offset("neck", (0.12 * nod, 0.0, 0.0), strength)


def _bow(rig, character, t, phase, strength, speed):
    bow = math.sin(clamp(t / 1.2) * math.pi)
    idle = 0.15 * math.sin(phase * 1.5)
    rig.apply_bone_offset("chest", (-(0.55 * bow + 0.05 * idle), 0.0, 0.0), strength)
    rig.apply_bone_offset("spine", (-(0.35 * bow + 0.03 * idle), 0.0, 0.0), strength)
    rig.apply_bone_offset("head", (0.08 * bow, 0.0, 0.0), strength)
    set_expression_family(character, "smile", 0.22 * strength)


def _point(rig, character, t, phase, strength, speed):
    sway = math.sin(phase * 0.8)
    rig.apply_root_offset(yaw=0.10 * sway, y_offset=0.005 * math.sin(phase * 1.6), strength=strength)
    rig.apply_bone_offset("rightUpperArm", (-0.25, 1.25, 0.0), strength)
    rig.apply_bone_offset("rightLowerArm", (-0.02, 0.10, 0.0), strength)
    rig.apply_bone_offset("rightHand", (0.0, -(0.10 + 0.08 * sway), 0.08), strength)
    rig.apply_bone_offset("head", (0.0, 0.18, 0.0), strength)


def _shrug(rig, character, t, phase, strength, speed):
    tilt = math.sin(phase)
    rig.apply_bone_offset("chest", (-0.05, 0.0, 0.0), strength)
    rig.apply_root_offset(y_offset=0.015, strength=strength)
    rig.apply_bone_offset("leftUpperArm", (0.10, 0.0, 0.35), strength)
    rig.apply_bone_offset("rightUpperArm", (0.10, 0.0, -0.35), strength)
    rig.apply_bone_offset("head", (0.0, 0.0, 0.22 * tilt), strength)


def _spin_pose(rig, character, t, phase, strength, speed):
    p = smoothstep01(t / 2.5)
    rig.apply_root_offset(yaw=math.radians(160) * p, strength=strength)
    rig.apply_bone_offset("chest", (-0.05, 0.0, 0.0), strength)
    set_expression_family(character, "smile", 0.18 * strength)


def _jump(rig, character, t, phase, strength, speed):
    jump = math.sin(phase)
    up = max(0.0, jump)
    landing = max(0.0, -jump)
    y = 0.12 * up * up
    sink = -0.03 * landing * landing
    rig.apply_root_offset(y_offset=y + sink, strength=strength)
    rig.apply_bone_offset("leftUpperArm", (-0.25 * up, 0.0, 0.12), strength)
    rig.apply_bone_offset("rightUpperArm", (-0.25 * up, 0.0, -0.12), strength)
    rig.apply_bone_offset("chest", (-0.12 * landing, 0.0, 0.0), strength)


def _guts_rise(t: float) -> float:
    return smoothstep01(t / 0.5)


def _guts_pose(rig, character, t, phase, strength, speed):
    rise = _guts_rise(t)
    pump = math.sin(phase)
    rig.apply_bone_offset("rightUpperArm", (0.0, 0.35 * rise, -0.15 * rise))
    rig.apply_bone_offset("rightUpperArm", (0.0, 0.0, 0.12 * pump), strength)
    rig.apply_bone_offset("rightLowerArm", (0.0, 0.0, 1.45 * rise))
    rig.apply_bone_offset("rightLowerArm", (0.0, 0.0, 0.15 * pump), strength)
    rig.apply_bone_offset("rightHand", (0.0, 0.0, 0.2 * rise))
    rig.apply_bone_offset("head", (0.0, 0.0, -0.08 * rise), strength)
    set_expression_family(character, "smile", 0.3 * strength)


def _guts_pose_double(rig, character, t, phase, strength, speed):
    rise = _guts_rise(t)
    pump = math.sin(phase)
    for side, sign in (("right", 1.0), ("left", -1.0)):
        rig.apply_bone_offset(f"{side}UpperArm", (0.0, sign * 0.35 * rise, -sign * 0.15 * rise))
        rig.apply_bone_offset(f"{side}UpperArm", (0.0, 0.0, sign * 0.12 * pump), strength)
        rig.apply_bone_offset(f"{side}LowerArm", (0.0, 0.0, sign * 1.45 * rise))
        rig.apply_bone_offset(f"{side}LowerArm", (0.0, 0.0, sign * 0.15 * pump), strength)
        rig.apply_bone_offset(f"{side}Hand", (0.0, 0.0, sign * 0.2 * rise))
    rig.apply_bone_offset("chest", (0.04 * rise, 0.0, 0.0), strength)
    set_expression_family(character, "smile", 0.4 * strength)


# ---------------------------------------------------------------------------
# Idles
# ---------------------------------------------------------------------------

def _idle_cool(rig, character, t, phase, strength, speed):
    breathe = math.sin(phase)
    rig.apply_bone_offset("chest", (0.04 * breathe, 0.0, 0.0), strength)
    rig.apply_bone_offset("head", (0.02 * breathe, 0.18 * math.sin(phase * 0.5), 0.0), strength)
    _blink(character, t)
    set_expression_family(character, "smile", 0.12 * strength)


def _idle_bounce(rig, character, t, phase, strength, speed):
    b = _bounce01(phase)
    rig.apply_root_offset(y_offset=0.03 * b, strength=strength)
    rig.apply_bone_offset("chest", (-0.03 * b, 0.0, 0.0), strength)
    rig.apply_bone_offset("head", (0.05 * math.sin(2 * phase), 0.0, 0.0), strength)
    rig.apply_bone_offset("leftUpperArm", (0.0, 0.0, 0.06 * b), strength)
    rig.apply_bone_offset("rightUpperArm", (0.0, 0.0, -0.06 * b), strength)
    _blink(character, t)
    set_expression_family(character, "smile", 0.12 * strength)


def _idle_groove(rig, character, t, phase, strength, speed):
    s = math.sin(phase)
    rig.apply_root_offset(yaw=0.12 * s, y_offset=0.012 * _bounce01(phase), strength=strength)
    rig.apply_bone_offset("hips", (0.0, 0.0, 0.06 * s), strength)
    rig.apply_bone_offset("chest", (0.0, -0.1 * s, -0.05 * s), strength)
    rig.apply_bone_offset("head", (0.04 * math.sin(2 * phase), 0.08 * s, 0.06 * s), strength)
    rig.apply_bone_offset("leftUpperArm", (0.0, 0.15 * s, 0.0), strength)
    rig.apply_bone_offset("rightUpperArm", (0.0, 0.15 * s, 0.0), strength)
    _blink(character, t)
    set_expression_family(character, "smile", 0.2 * strength)


def _idle_lean(rig, character, t, phase, strength, speed):
    s = math.sin(phase)
    rig.apply_root_offset(yaw=0.05 * s, strength=strength)
    rig.apply_bone_offset("spine", (0.0, 0.0, 0.08 * s), strength)
    rig.apply_bone_offset("chest", (0.0, 0.0, 0.06 * s), strength)
    rig.apply_bone_offset("head", (0.02 * s, 0.0, -0.1 * s), strength)
    _blink(character, t)
    set_expression_family(character, "smile", 0.12 * strength)


def _idle_turn(rig, character, t, phase, strength, speed):
    s = math.sin(phase)
    rig.apply_root_offset(yaw=0.35 * s, strength=strength)
    rig.apply_bone_offset("head", (0.0, -0.12 * s, 0.0), strength)
    rig.apply_bone_offset("chest", (0.0, -0.06 * s, 0.0), strength)
    _blink(character, t)
    set_expression_family(character, "smile", 0.12 * strength)


def _idle_hand_up(rig, character, t, phase, strength, speed):
    s = math.sin(phase)
    rig.apply_root_offset(y_offset=0.008 * _bounce01(phase), strength=strength)
    rig.apply_bone_offset("rightUpperArm", (0.0, 0.1, 1.35))
    rig.apply_bone_offset("rightLowerArm", (0.0, 0.0, 0.25))
    rig.apply_bone_offset("rightHand", (0.0, 0.0, 0.15 * math.sin(2 * phase)), strength)
    rig.apply_bone_offset("chest", (0.0, 0.0, 0.04 * s), strength)
    rig.apply_bone_offset("head", (0.0, 0.0, -0.05 * s), strength)
    _blink(character, t)
    set_expression_family(character, "smile", 0.18 * strength)


def _turntable(rig, character, t, phase, strength, speed):
    yaw = TAU * turns_for_speed(speed) * t / config.LOOP_DURATION
    rig.apply_root_offset(yaw=yaw)


# ---------------------------------------------------------------------------
# Lookup table
# ---------------------------------------------------------------------------

PresetFn = Callable[[MotionRig, Character, float, float, float, float], None]


@dataclass(frozen=True)
class PresetInfo:
    fn: PresetFn
    label: str
    description: str
    family: str  # gesture | idle | exact
    looping: bool = False
    skip_left: bool = False
    skip_right: bool = False


PRESETS: Dict[str, PresetInfo] = {
    "wave": PresetInfo(_wave, "Wave", "Wave hello with the right hand", "gesture", skip_right=True),
    "handDown": PresetInfo(_hand_down, "Hand Down", "Lower the right hand to the center", "gesture", skip_right=True),
    "nod": PresetInfo(_nod, "Nod", "Nod", "gesture"),
    "bow": PresetInfo(_bow, "Bow", "A light bow", "gesture", looping=True),
    "point": PresetInfo(_point, "Point", "Pointing gesture", "gesture", skip_right=True),
    "shrug": PresetInfo(_shrug, "Shrug", "Shrug with a head tilt", "gesture", looping=True),
    "spinPose": PresetInfo(_spin_pose, "Spin Pose", "Quick spin, then a pose", "gesture"),
    "jump": PresetInfo(_jump, "Jump", "Small jump", "gesture", looping=True),
    "gutsPose": PresetInfo(_guts_pose, "Guts Pose", "Raise a fist", "gesture", skip_right=True),
    "gutsPoseDouble": PresetInfo(
        _guts_pose_double, "Guts Pose (Both)", "Raise both fists", "gesture", skip_left=True, skip_right=True
    ),
    "idleCool": PresetInfo(_idle_cool, "Idle Cool", "Breathing with a slow head sway", "idle", looping=True),
    "idleBounce": PresetInfo(_idle_bounce, "Idle Bounce", "Full-body bounce (loop)", "idle", looping=True),
    "idleGroove": PresetInfo(_idle_groove, "Idle Groove", "Full-body groove (loop)", "idle", looping=True),
    "idleLean": PresetInfo(_idle_lean, "Idle Lean", "Lean + sway (loop)", "idle", looping=True),
    "idleTurn": PresetInfo(_idle_turn, "Idle Turn", "Subtle turn in place (loop)", "idle", looping=True),
    "idleHandUp": PresetInfo(_idle_hand_up, "Idle Hand Up", "Hand raised, gentle sway (loop)", "idle", looping=True, skip_right=True),
    "turntable": PresetInfo(_turntable, "Turntable", "Strict pose rotating in place (loop)", "exact", looping=True),
}

_warned_presets: set = set()


def evaluate(
    rig: MotionRig,
    character: Character,
    t: float,
    preset_id: str,
    strength: float = 1.0,
    speed: float = 1.0,
) -> None:
    """Pose *rig* and set expressions for time *t* of preset *preset_id*.

    Assumes the rig was reset for this frame. Unknown presets leave the
    neutral base pose and log a warning once per id.
    """
    for family in EXPRESSION_ALIASES:
        set_expression_family(character, family, 0.0)

    info = PRESETS.get(preset_id)
    if info is not None and info.family == "exact":
        apply_strict_pose(rig)
    else:
        skip_left = info is not None and info.skip_left
        skip_right = info is not None and info.skip_right
        apply_relaxed_pose(rig, left=not skip_left, right=not skip_right)

    if info is None:
        if preset_id not in _warned_presets:
            _warned_presets.add(preset_id)
            logging.warning("unknown motion preset %r; holding the base pose", preset_id)
        return

    phase = t / config.LOOP_DURATION * TAU * cycles_for_speed(speed)
    info.fn(rig, character, t, phase, strength, speed)
