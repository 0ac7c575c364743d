"""Reference humanoid asset: a rigid, box-limbed mannequin.

The mannequin stands in for a parsed humanoid file. Proportions and colours
are derived deterministically from the character ID, so each ID looks
different but always the same.

The body is built in the legacy humanoid frame the motion presets were tuned
for (facing ``-Z``, left limbs on ``-X``, so a positive roll lowers the left
arm and a negative pitch bends the torso forward). The root is then turned
180 degrees about ``Y`` so the character faces a camera placed on ``+Z``.
"""
from __future__ import annotations

import asyncio
import logging
import math
import random
from typing import Dict, Iterable, Tuple

import numpy as np

from . import quat
from .assets import CharacterLoadError, validate_character_id
from .rig import rig_for
from .scene import Character, Material, Node, box_mesh, find_nodes

HIPS_HEIGHT = 0.98

HUMANOID_BONES = (
    "hips", "spine", "chest", "neck", "head",
    "leftUpperArm", "leftLowerArm", "leftHand",
    "rightUpperArm", "rightLowerArm", "rightHand",
)

# Expression channel names by asset generation.
_EXPRESSION_SETS = {
    "modern": ("blink", "blinkLeft", "blinkRight", "happy"),
    "legacy": ("Blink", "Joy"),
}


def _palette(rng: random.Random) -> Dict[str, Tuple[int, int, int]]:
    def pick(lo: int, hi: int) -> Tuple[int, int, int]:
        return (rng.randint(lo, hi), rng.randint(lo, hi), rng.randint(lo, hi))

    skin = rng.choice([(241, 204, 178), (214, 164, 126), (160, 110, 80), (110, 74, 52), (200, 200, 210)])
    return {
        "skin": skin,
        "shirt": pick(40, 230),
        "stripe": pick(20, 250),
        "pants": pick(20, 140),
        "shoes": pick(10, 90),
        "eyes": (20, 20, 24),
        "mouth": (120, 40, 40),
    }


def _stripe_texture(base: Tuple[int, int, int], stripe: Tuple[int, int, int], size: int = 8) -> np.ndarray:
    tex = np.empty((size, size, 3), dtype=np.uint8)
    tex[:] = base
    tex[::3] = stripe
    return tex


def _limb(parent: Node, name: str, offset, size, center, material: Material) -> Node:
    return parent.add(Node(name, offset, box_mesh(size, material, center)))


def build_mannequin(
    character_id: int,
    omit_bones: Iterable[str] = (),
    expression_set: str | None = None,
) -> Character:
    """Build the mannequin for *character_id*.

    Parameters
    ----------
    character_id:
        Seed for proportions and colours.
    omit_bones:
        Humanoid bone names to leave out of the bone lookup (the nodes still
        exist), mimicking assets with partial humanoid mappings.
    expression_set:
        ``"modern"`` or ``"legacy"`` channel naming; chosen from the ID parity
        when omitted.
    """
    rng = random.Random(character_id)
    colors = _palette(rng)
    skin = Material(colors["skin"])
    shirt = Material(colors["shirt"], texture=_stripe_texture(colors["shirt"], colors["stripe"]))
    pants = Material(colors["pants"])
    shoes = Material(colors["shoes"])

    width = rng.uniform(0.92, 1.12)
    head_size = rng.uniform(0.24, 0.30)

    root = Node("root")
    root.quaternion = quat.from_axis_angle((0.0, 1.0, 0.0), math.pi)
    hips = _limb(root, "hips", (0.0, HIPS_HEIGHT, 0.0), (0.32 * width, 0.16, 0.18), (0.0, 0.0, 0.0), pants)
    spine = _limb(hips, "spine", (0.0, 0.08, 0.0), (0.28 * width, 0.16, 0.16), (0.0, 0.08, 0.0), shirt)
    chest = _limb(spine, "chest", (0.0, 0.16, 0.0), (0.36 * width, 0.24, 0.2), (0.0, 0.12, 0.0), shirt)
    neck = _limb(chest, "neck", (0.0, 0.24, 0.0), (0.08, 0.06, 0.08), (0.0, 0.03, 0.0), skin)
    head = _limb(neck, "head", (0.0, 0.06, 0.0), (head_size, head_size * 1.08, head_size), (0.0, head_size * 0.54, 0.0), skin)

    face_z = -(head_size / 2 + 0.004)
    eye_y = head_size * 0.64
    eye_mat = Material(colors["eyes"])
    left_eye = _limb(head, "leftEye", (-head_size * 0.22, eye_y, face_z), (0.04, 0.04, 0.01), (0.0, 0.0, 0.0), eye_mat)
    right_eye = _limb(head, "rightEye", (head_size * 0.22, eye_y, face_z), (0.04, 0.04, 0.01), (0.0, 0.0, 0.0), eye_mat)
    mouth = _limb(head, "mouth", (0.0, head_size * 0.3, face_z), (0.08, 0.015, 0.01), (0.0, 0.0, 0.0), Material(colors["mouth"]))

    shoulder_x = 0.2 * width
    for side, sign in (("left", -1.0), ("right", 1.0)):
        upper = _limb(chest, f"{side}UpperArm", (sign * shoulder_x, 0.2, 0.0), (0.26, 0.08, 0.08), (sign * 0.13, 0.0, 0.0), shirt)
        lower = _limb(upper, f"{side}LowerArm", (sign * 0.26, 0.0, 0.0), (0.24, 0.07, 0.07), (sign * 0.12, 0.0, 0.0), skin)
        _limb(lower, f"{side}Hand", (sign * 0.24, 0.0, 0.0), (0.08, 0.08, 0.05), (sign * 0.04, 0.0, 0.0), skin)

        leg = _limb(hips, f"{side}UpperLeg", (sign * 0.09 * width, -0.06, 0.0), (0.12, 0.44, 0.12), (0.0, -0.22, 0.0), pants)
        shin = _limb(leg, f"{side}LowerLeg", (0.0, -0.44, 0.0), (0.1, 0.42, 0.1), (0.0, -0.21, 0.0), pants)
        _limb(shin, f"{side}Foot", (0.0, -0.42, 0.0), (0.11, 0.06, 0.2), (0.0, -0.03, -0.04), shoes)

    skip = set(omit_bones)
    nodes = find_nodes(root)
    bones = {name: nodes[name] for name in HUMANOID_BONES if name not in skip}

    if expression_set is None:
        expression_set = "legacy" if character_id % 2 else "modern"
    expressions = {name: 0.0 for name in _EXPRESSION_SETS[expression_set]}

    def apply_expressions(character: Character, dt: float) -> None:
        ex = character.expressions
        blink = max(ex.get("blink", 0.0), ex.get("Blink", 0.0), ex.get("blinkLeft", 0.0), ex.get("blinkRight", 0.0))
        smile = max(ex.get("happy", 0.0), ex.get("Joy", 0.0))
        for eye in (left_eye, right_eye):
            eye.scale = np.array([1.0, max(0.1, 1.0 - 0.9 * blink), 1.0])
        mouth.scale = np.array([1.0 + 0.6 * smile, 1.0 + 1.5 * smile, 1.0])

    character = Character(root, bones, expressions, character_id=character_id, on_update=apply_expressions)
    character.update(0.0)
    rig_for(character)
    return character


async def load_character(character_id: int) -> Character:
    """Asynchronously load the character for *character_id*.

    Raises :class:`~pose_reel.assets.InvalidCharacterId` before doing any work
    when the ID is out of range and :class:`~pose_reel.assets.CharacterLoadError`
    when the asset cannot be built.
    """
    character_id = validate_character_id(character_id)
    await asyncio.sleep(0)
    logging.debug("building mannequin for id=%d", character_id)
    try:
        return build_mannequin(character_id)
    except Exception as exc:
        raise CharacterLoadError(f"character {character_id} could not be built: {exc}") from exc
