import logging
import math

import numpy as np
import pytest

from pose_reel import motion, quat
from pose_reel.mannequin import build_mannequin
from pose_reel.rig import create_rig


def _setup(character_id=4274, **kwargs):
    character = build_mannequin(character_id, **kwargs)
    return character, create_rig(character)


def _pose(rig, character, t, preset, strength=1.0, speed=1.0):
    rig.reset()
    motion.evaluate(rig, character, t, preset, strength, speed)
    character.update(1 / 12)
    snap = rig.snapshot()
    return snap, dict(character.expressions)


def _same_pose(a, b, atol=1e-9):
    for name, q in a.items():
        if name == "root.position":
            if not np.allclose(q, b[name], atol=atol):
                return False
        elif not np.allclose(quat.to_matrix(q), quat.to_matrix(b[name]), atol=atol):
            return False
    return True


def test_every_preset_registered():
    assert set(motion.PRESETS) == {
        "wave", "handDown", "nod", "bow", "point", "shrug", "spinPose", "jump",
        "gutsPose", "gutsPoseDouble", "idleCool", "idleBounce", "idleGroove",
        "idleLean", "idleTurn", "idleHandUp", "turntable",
    }
    assert all(info.label for info in motion.PRESETS.values())


def test_cycles_and_turns_follow_speed():
    assert [motion.cycles_for_speed(s) for s in motion.MOTION_SPEEDS] == [2, 3, 4]
    assert motion.cycles_for_speed(0.9) == 3
    assert [motion.turns_for_speed(s) for s in motion.MOTION_SPEEDS] == [1, 1, 2]


def test_curve_helpers():
    assert motion.smoothstep01(-1) == 0.0
    assert motion.smoothstep01(0.5) == pytest.approx(0.5)
    assert motion.smoothstep01(2) == 1.0
    assert motion.pulse01(0.08, 0.08, 0.06) == 1.0
    assert motion.pulse01(0.2, 0.08, 0.06) == 0.0


@pytest.mark.parametrize("speed", motion.MOTION_SPEEDS)
@pytest.mark.parametrize("preset", [p for p, info in motion.PRESETS.items() if info.looping])
def test_looping_presets_close_the_loop(preset, speed):
    character, rig = _setup()
    start, start_ex = _pose(rig, character, 0.0, preset, 1.5, speed)
    end, end_ex = _pose(rig, character, motion.config.LOOP_DURATION, preset, 1.5, speed)
    assert _same_pose(start, end)
    for name, value in start_ex.items():
        assert end_ex[name] == pytest.approx(value, abs=1e-9)


def test_reset_prevents_compounding():
    character, rig = _setup()
    once, _ = _pose(rig, character, 0.4, "wave")
    again, _ = _pose(rig, character, 0.4, "wave")
    assert _same_pose(once, again)

    # evaluating twice without a reset stacks the offsets
    motion.evaluate(rig, character, 0.4, "wave")
    stacked = rig.snapshot()
    assert not _same_pose(once, stacked)


def test_nod_head_golden_value():
    character, rig = _setup()
    snap, _ = _pose(rig, character, 0.25, "nod")
    # phase = pi / 2, head pitch = 0.38 * sin(1.3 * pi / 2)
    assert np.allclose(snap["head"], [0.16848, 0.0, 0.0, 0.98570], atol=1e-4)


def test_bow_chest_golden_value():
    character, rig = _setup()
    snap, _ = _pose(rig, character, 0.6, "bow")
    expected = quat.from_axis_angle((1.0, 0.0, 0.0), -0.5455915)
    assert quat.same_rotation(snap["chest"], expected, atol=1e-8)


@pytest.mark.parametrize("strength, height", [(0.5, 0.06), (1.0, 0.12), (1.5, 0.18)])
def test_jump_lifts_root_by_strength(strength, height):
    character, rig = _setup()
    snap, _ = _pose(rig, character, 0.25, "jump", strength)
    assert snap["root.position"][1] == pytest.approx(height)


def test_spin_pose_settles_at_160_degrees():
    character, rig = _setup()
    rest = rig.root.rest_quaternion
    for t in (2.5, 2.9):
        snap, _ = _pose(rig, character, t, "spinPose")
        expected = quat.multiply(rest, quat.from_axis_angle((0.0, 1.0, 0.0), math.radians(160)))
        assert quat.same_rotation(snap["root"], expected)


def test_wave_composes_onto_rest():
    character, rig = _setup()
    t = 0.4
    phase = t / 3.0 * motion.TAU * 3
    snap, ex = _pose(rig, character, t, "wave", 1.5)
    rest = rig.bones["rightUpperArm"].rest_quaternion
    expected = quat.multiply(
        quat.multiply(rest, quat.from_euler(-0.85, -0.55, 0.25)),
        quat.from_euler(0.0, 0.35 * math.sin(phase * 2.2) * 1.5, 0.0),
    )
    assert quat.same_rotation(snap["rightUpperArm"], expected)
    assert ex["happy"] == pytest.approx(0.525)


@pytest.mark.parametrize("preset", ["wave", "nod", "handDown", "gutsPose", "gutsPoseDouble", "bow"])
def test_gestures_keep_root_in_place(preset):
    character, rig = _setup()
    for t in np.linspace(0.0, 2.9, 8):
        snap, _ = _pose(rig, character, float(t), preset)
        assert quat.same_rotation(snap["root"], rig.root.rest_quaternion)
        assert np.allclose(snap["root.position"], rig.root.rest_position)


def test_turntable_uses_strict_pose_and_ignores_strength():
    character, rig = _setup()
    weak, _ = _pose(rig, character, 1.1, "turntable", 0.5)
    strong, _ = _pose(rig, character, 1.1, "turntable", 1.5)
    assert _same_pose(weak, strong)

    rest = rig.bones["leftUpperArm"].rest_quaternion
    expected = quat.multiply(rest, quat.from_euler(0.0, 0.0, math.pi / 2))
    assert quat.same_rotation(strong["leftUpperArm"], expected)
    assert quat.same_rotation(strong["leftLowerArm"], rig.bones["leftLowerArm"].rest_quaternion)


def test_turntable_half_loop_faces_away():
    character, rig = _setup()
    snap, _ = _pose(rig, character, 1.5, "turntable")
    expected = quat.multiply(rig.root.rest_quaternion, quat.from_axis_angle((0.0, 1.0, 0.0), math.pi))
    assert quat.same_rotation(snap["root"], expected)


def test_unknown_preset_warns_once_and_holds_base_pose(caplog):
    character, rig = _setup()
    caplog.set_level(logging.WARNING)
    first, _ = _pose(rig, character, 0.5, "moonwalkUnknown")
    second, _ = _pose(rig, character, 1.0, "moonwalkUnknown")
    assert caplog.text.count("moonwalkUnknown") == 1
    assert _same_pose(first, second)

    rig.reset()
    motion.apply_relaxed_pose(rig)
    assert _same_pose(first, rig.snapshot())


def test_missing_bones_are_skipped():
    character, rig = _setup(omit_bones=("rightHand", "neck", "chest"))
    assert not rig.has_bone("rightHand")
    for preset in motion.PRESETS:
        _pose(rig, character, 0.7, preset)


def test_expressions_cleared_between_presets():
    character, rig = _setup()
    _, ex = _pose(rig, character, 0.08, "idleCool")
    assert ex["blink"] == 1.0
    assert ex["happy"] == pytest.approx(0.12)
    _, ex = _pose(rig, character, 0.08, "nod")
    assert all(v == 0.0 for v in ex.values())


def test_legacy_expression_channels_are_driven():
    character, rig = _setup(7)
    assert set(character.expressions) == {"Blink", "Joy"}
    _, ex = _pose(rig, character, 1.5 + 0.08, "idleBounce")
    assert ex["Blink"] == pytest.approx(1.0)
    assert ex["Joy"] == pytest.approx(0.12)
