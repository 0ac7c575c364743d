import logging
import math

import numpy as np
import pytest

from pose_reel import quat
from pose_reel.mannequin import HUMANOID_BONES, build_mannequin
from pose_reel.rig import BONE_NAMES, create_rig, rig_for


def test_rest_pose_is_captured_read_only():
    character = build_mannequin(12)
    rig = create_rig(character)
    assert set(rig.bones) == set(BONE_NAMES)
    rest = rig.bones["head"].rest_quaternion
    with pytest.raises(ValueError):
        rest[0] = 1.0
    with pytest.raises(ValueError):
        rig.root.rest_position[1] = 2.0


def test_bone_offset_post_multiplies_rest():
    character = build_mannequin(12)
    rig = create_rig(character)
    rig.apply_bone_offset("leftUpperArm", (0.1, 0.2, 0.3), strength=0.5)
    expected = quat.multiply(rig.bones["leftUpperArm"].rest_quaternion, quat.from_euler(0.05, 0.1, 0.15))
    assert np.allclose(character.bone("leftUpperArm").quaternion, expected)


def test_root_offset_replaces_instead_of_stacking():
    character = build_mannequin(12)
    rig = create_rig(character)
    rig.apply_root_offset(yaw=0.5, y_offset=0.1, strength=2.0)
    rig.apply_root_offset(yaw=0.5, y_offset=0.1, strength=2.0)
    expected = quat.multiply(rig.root.rest_quaternion, quat.from_euler(0.0, 1.0, 0.0))
    assert np.allclose(character.scene.quaternion, expected)
    assert character.scene.position[1] == pytest.approx(rig.root.rest_position[1] + 0.2)


def test_reset_restores_rest():
    character = build_mannequin(12)
    rig = create_rig(character)
    before = rig.snapshot()
    rig.apply_bone_offset("head", (0.4, 0.0, 0.0))
    rig.apply_root_offset(yaw=1.0, y_offset=0.3)
    rig.reset()
    after = rig.snapshot()
    for name, value in before.items():
        assert np.array_equal(after[name], value)


def test_missing_bone_offsets_are_noops(caplog):
    caplog.set_level(logging.DEBUG)
    character = build_mannequin(12, omit_bones=("leftHand", "neck"))
    rig = create_rig(character)
    assert not rig.has_bone("neck")
    assert "neck" in caplog.text
    before = rig.snapshot()
    rig.apply_bone_offset("neck", (1.0, 0.0, 0.0))
    after = rig.snapshot()
    assert before.keys() == after.keys()
    for name, value in before.items():
        assert np.array_equal(after[name], value)


def test_mannequin_faces_positive_z():
    character = build_mannequin(12)
    assert set(HUMANOID_BONES) <= set(character.bones)
    left = character.bone("leftHand").world_position()
    right = character.bone("rightHand").world_position()
    # the root turn puts the character's left on screen right for a +Z camera
    assert left[0] > right[0]
    assert quat.same_rotation(character.scene.quaternion, quat.from_axis_angle((0, 1, 0), math.pi))


def test_mannequin_is_deterministic_per_id():
    a = build_mannequin(321)
    b = build_mannequin(321)
    c = build_mannequin(322)
    hips_a = a.bone("hips").mesh.vertices
    assert np.array_equal(hips_a, b.bone("hips").mesh.vertices)
    assert a.bone("chest").mesh.material.color == b.bone("chest").mesh.material.color
    assert set(a.expressions) != set(c.expressions)


def test_rig_is_captured_once_at_load():
    character = build_mannequin(31)
    rig = character.rig
    assert rig is rig_for(character)
    rest = rig.bones["leftUpperArm"].rest_quaternion.copy()
    rig.apply_bone_offset("leftUpperArm", (0.0, 0.0, 1.0))
    assert rig_for(character) is rig
    assert np.array_equal(rig.bones["leftUpperArm"].rest_quaternion, rest)
