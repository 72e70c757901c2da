"""
Built-in rule data - dice tables and a small demo card pool.

The dice tables are complete. The card pool and the "training_grounds"
map cover every engine feature (large and massive figures, mobile
figures, multi-figure groups, doors, terminals, mission tokens) and are
used by the CLI and the test-suite. A full card pool is loaded with
StaticData.from_directory().
"""

from .static_data import (
    StaticData,
    DeploymentCardStats,
    AttackProfile,
    CommandCardData,
    MapGeometry,
    MissionRules,
)

LONG_RANGE = 99


BUILTIN_DICE = {
    "attack": {
        "red": [
            {"acc": 0, "dmg": 1, "surge": 0},
            {"acc": 0, "dmg": 2, "surge": 0},
            {"acc": 0, "dmg": 2, "surge": 0},
            {"acc": 0, "dmg": 2, "surge": 1},
            {"acc": 0, "dmg": 3, "surge": 0},
            {"acc": 0, "dmg": 3, "surge": 0},
        ],
        "blue": [
            {"acc": 2, "dmg": 1, "surge": 0},
            {"acc": 2, "dmg": 0, "surge": 1},
            {"acc": 3, "dmg": 2, "surge": 0},
            {"acc": 3, "dmg": 1, "surge": 1},
            {"acc": 4, "dmg": 2, "surge": 0},
            {"acc": 5, "dmg": 1, "surge": 0},
        ],
        "green": [
            {"acc": 1, "dmg": 0, "surge": 1},
            {"acc": 1, "dmg": 1, "surge": 1},
            {"acc": 1, "dmg": 2, "surge": 0},
            {"acc": 2, "dmg": 1, "surge": 1},
            {"acc": 2, "dmg": 2, "surge": 0},
            {"acc": 3, "dmg": 2, "surge": 0},
        ],
        "yellow": [
            {"acc": 0, "dmg": 0, "surge": 1},
            {"acc": 0, "dmg": 1, "surge": 2},
            {"acc": 1, "dmg": 2, "surge": 0},
            {"acc": 1, "dmg": 1, "surge": 1},
            {"acc": 2, "dmg": 0, "surge": 1},
            {"acc": 2, "dmg": 1, "surge": 0},
        ],
    },
    "defense": {
        "black": [
            {"block": 1, "evade": 0, "dodge": 0},
            {"block": 1, "evade": 0, "dodge": 0},
            {"block": 2, "evade": 0, "dodge": 0},
            {"block": 2, "evade": 0, "dodge": 0},
            {"block": 3, "evade": 0, "dodge": 0},
            {"block": 0, "evade": 1, "dodge": 0},
        ],
        "white": [
            {"block": 0, "evade": 0, "dodge": 0},
            {"block": 1, "evade": 0, "dodge": 0},
            {"block": 0, "evade": 1, "dodge": 0},
            {"block": 1, "evade": 1, "dodge": 0},
            {"block": 1, "evade": 1, "dodge": 0},
            {"block": 0, "evade": 0, "dodge": 1},
        ],
    },
}


BUILTIN_ABILITIES = {
    "damage 1": {"type": "surge", "surge_cost": 1, "label": "+1 Hit"},
    "damage 2": {"type": "surge", "surge_cost": 1, "label": "+2 Hits"},
    "damage 3": {"type": "surge", "surge_cost": 2, "label": "+3 Hits"},
    "pierce 2": {"type": "surge", "surge_cost": 1, "label": "Pierce 2"},
    "accuracy 2": {"type": "surge", "surge_cost": 1, "label": "+2 Accuracy"},
    "blast 2": {"type": "surge", "surge_cost": 1, "label": "Blast 2"},
    "cleave 2": {"type": "surge", "surge_cost": 1, "label": "Cleave 2"},
    "recover 2": {"type": "surge", "surge_cost": 1, "label": "Recover 2"},
    "stun": {"type": "surge", "surge_cost": 1, "label": "Stun"},
    "bleed": {"type": "surge", "surge_cost": 1, "label": "Bleed"},
    "focus_self": {"type": "effect", "effect_type": "apply_condition",
                   "params": {"condition": "Focus", "target": "self"}},
}


def _dc(name, **kwargs):
    attack = kwargs.pop("attack", None)
    return name, DeploymentCardStats(
        name=name,
        attack=AttackProfile(**attack) if attack else AttackProfile(),
        **kwargs,
    )


BUILTIN_DEPLOYMENT_CARDS = dict([
    _dc("Stormtrooper", cost=9, sub_cost=3, figures=3, health=3, speed=4,
        defense=["black"], rerolls=1, surges=["accuracy 2", "damage 1"],
        keywords=["Trooper"],
        attack={"dice": ["blue", "green"], "min_range": 1, "max_range": LONG_RANGE,
                "attack_type": "ranged"}),
    _dc("Rebel Trooper", cost=6, sub_cost=2, figures=3, health=3, speed=4,
        defense=["black"], surges=["damage 1", "accuracy 2"], keywords=["Trooper"],
        attack={"dice": ["blue", "green"], "min_range": 1, "max_range": LONG_RANGE,
                "attack_type": "ranged"}),
    _dc("Darth Vader", cost=18, figures=1, health=16, speed=4,
        defense=["black", "black"], surges=["damage 2", "cleave 2"],
        keywords=["Force User", "Leader"],
        attack={"dice": ["red", "red", "yellow"], "min_range": 1, "max_range": 1,
                "attack_type": "melee"}),
    _dc("Luke Skywalker", cost=10, figures=1, health=10, speed=5,
        defense=["white"], surges=["damage 2", "cleave 2", "recover 2"],
        keywords=["Force User"],
        attack={"dice": ["red", "green"], "min_range": 1, "max_range": 1,
                "attack_type": "melee"}),
    _dc("AT-ST", cost=14, figures=1, health=13, speed=4, size="2x2",
        defense=["black"], surges=["damage 1", "blast 2"], keywords=["Massive", "Vehicle"],
        attack={"dice": ["red", "red", "yellow"], "min_range": 1, "max_range": LONG_RANGE,
                "attack_type": "ranged"}),
    _dc("Rancor", cost=16, figures=1, health=12, speed=4, size="2x3",
        defense=["black"], surges=["damage 2", "blast 2"], keywords=["Massive", "Creature"],
        attack={"dice": ["red", "red", "yellow"], "min_range": 1, "max_range": 2,
                "attack_type": "melee"}),
    _dc("Nexu", cost=6, sub_cost=3, figures=2, health=5, speed=5,
        defense=["white"], surges=["bleed", "damage 2"], keywords=["Mobile", "Creature"],
        attack={"dice": ["red", "yellow"], "min_range": 1, "max_range": 1,
                "attack_type": "melee"}),
    _dc("E-Web Engineer", cost=9, figures=1, health=5, speed=3,
        defense=["black"], surges=["pierce 2", "damage 1"], keywords=["Trooper"],
        attack={"dice": ["blue", "red", "yellow"], "min_range": 1, "max_range": LONG_RANGE,
                "attack_type": "ranged"}),
])


def _cc(name, **kwargs):
    return name, CommandCardData(name=name, **kwargs)


BUILTIN_COMMAND_CARDS = dict([
    _cc("Planning", cost=1, timing="duringActivation",
        effect="Draw 2 Command cards.", effect_type="draw_cards", params={"count": 2}),
    _cc("Deadly Precision", cost=1, timing="duringAttack",
        effect="While attacking, gain Pierce 2.", effect_type="bonus_pierce",
        params={"amount": 2}),
    _cc("Take Cover", cost=0, timing="whileDefending",
        effect="While defending, gain +1 Block.", effect_type="bonus_block",
        params={"amount": 1}),
    _cc("Spinning Kick", cost=1, timing="duringAttack", playable_by="Force User",
        effect="While attacking, gain surge: +2 Hits.", effect_type="add_surge_ability",
        params={"ability": "damage 2"}),
    _cc("Second Chance", cost=1, timing="duringAttack",
        effect="Reroll 1 die.", effect_type="reroll_budget", params={"count": 1}),
    _cc("Fleet Footed", cost=1, timing="duringActivation",
        effect="Gain 2 movement points.", effect_type="gain_movement", params={"mp": 2}),
    _cc("Urgency", cost=2, timing="duringActivation",
        effect="Perform 1 additional action.", effect_type="gain_actions", params={"count": 1}),
    _cc("Recovery", cost=1, timing="duringActivation",
        effect="Recover 2 Damage on a friendly figure.", effect_type="recover",
        params={"amount": 2}),
    _cc("Focus", cost=0, timing="duringActivation",
        effect="Become Focused.", effect_type="apply_condition",
        params={"condition": "Focus", "target": "self"}),
    _cc("Dirty Trick", cost=1, timing="duringActivation",
        effect="Choose a hostile figure; it becomes Weakened.", effect_type="apply_condition",
        params={"condition": "Weaken", "target": "hostile"}),
    _cc("Smoke Grenade", cost=1, timing="duringActivation", playable_by="Trooper",
        effect="Place a smoke token in an empty space.", effect_type="place_token",
        params={"token": "smoke"}),
    _cc("Covering Fire", cost=1, timing="duringActivation",
        effect="Choose one: gain 2 movement points, or draw 1 Command card.",
        effect_type="choose_one",
        params={"options": [
            {"label": "Gain 2 MP", "effect_type": "gain_movement", "params": {"mp": 2}},
            {"label": "Draw 1", "effect_type": "draw_cards", "params": {"count": 1}},
        ]}),
    _cc("Change of Plans", cost=0, timing="endOfRound",
        effect="Discard your hand, then draw that many cards.",
        effect_type="discard_hand_draw"),
    _cc("Jam Communications", cost=2, timing="endOfRound",
        effect="Your opponent does not draw during the next status phase.",
        effect_type="cancel_draw_next_status"),
    _cc("Celebration", cost=0, timing="duringActivation",
        effect="Gain 1 VP.", effect_type="gain_vp", params={"vp": 1}),
    _cc("Take Initiative", cost=2, timing="startOfRound",
        effect="Claim the initiative token.", effect_type="manual"),
    _cc("Force Push", cost=2, timing="specialAction", playable_by="Force User",
        effect="Push a figure up to 3 spaces.", effect_type="manual"),
])


def _training_grounds() -> MapGeometry:
    return MapGeometry.open_grid(
        "training_grounds",
        12,
        10,
        name="Training Grounds",
        terrain={"f5": "difficult", "g5": "difficult"},
        blocking=["f2", "f3"],
        movement_blocking_edges=[["h4", "h5"]],
        impassable_edges=[["e3", "e4"]],
        doors=[["e6", "f6"]],
        terminals=["c8", "j3"],
        named_areas=[{"name": "Command Post", "cells": ["f5", "g5", "f6", "g6"]}],
        deployment_zones={
            "red": ["a1", "b1", "a2", "b2", "a3", "b3", "a4", "b4", "c1", "c2", "c3", "c4"],
            "blue": ["j7", "k7", "l7", "j8", "k8", "l8", "j9", "k9", "l9", "j10", "k10", "l10"],
        },
        mission_tokens={
            "a": {"launch_panels": ["d5", "i6"]},
            "b": {"contraband": ["f9", "g1"]},
        },
    )


BUILTIN_MISSIONS = {
    "training_grounds:a": MissionRules(
        end_of_round={
            "vpForControllingNamedArea": {"area_name": "Command Post", "vp": 5},
            "vpPerLaunchPanelControlled": {"green": 5, "gray": 2},
        },
    ),
    "training_grounds:b": MissionRules(
        end_of_round={
            "vpPerContrabandInDeploymentZone": {"vp": 15},
            "vpPerTokenForControllingCell": {
                "control_cell": "f5", "vp_per_token": 2, "token_count_key": "objective_tokens",
            },
        },
        start_of_round={
            "setTokenCountFromInitiativeHand": {"game_key": "objective_tokens"},
        },
    ),
}


def build_builtin_data() -> StaticData:
    geometry = _training_grounds()
    return StaticData(
        dc_stats=dict(BUILTIN_DEPLOYMENT_CARDS),
        cc_effects=dict(BUILTIN_COMMAND_CARDS),
        dice=BUILTIN_DICE,
        abilities=dict(BUILTIN_ABILITIES),
        maps={geometry.map_id: geometry},
        missions=dict(BUILTIN_MISSIONS),
    )
