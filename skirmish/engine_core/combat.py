"""
Combat Resolution - Dice, rerolls, surges, damage, defeat and cleave.

One attack runs as a small state machine stored on Game.pending_combat:

    PRE_COMBAT -> ATTACK_ROLLED -> (REROLL_ATTACKER) -> (REROLL_DEFENDER)
        -> SURGE_SPEND -> READY_TO_RESOLVE -> (CLEAVE_PENDING) -> closed

Every step mutates the Game it is given; the reducer hands in a copy and
commits only on success, so a failed step leaves no partial dice state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any
import logging
import re

from .coords import footprint_cells
from .errors import ValidationError, DataIntegrityError
from .los import footprint_range, footprint_line_of_sight
from .movement import figure_footprint, figure_size
from .state import (
    Game,
    GamePhase,
    PendingCombat,
    CombatStage,
    card_key_of,
    dc_name_of,
)

logger = logging.getLogger(__name__)

WINNING_VP = 40
DEFAULT_SURGE_COST = 1

SURGE_LABELS = {
    "damage 1": "+1 Hit", "damage 2": "+2 Hits", "damage 3": "+3 Hits",
    "pierce 1": "Pierce 1", "pierce 2": "Pierce 2", "pierce 3": "Pierce 3",
    "accuracy 1": "+1 Accuracy", "accuracy 2": "+2 Accuracy", "accuracy 3": "+3 Accuracy",
    "stun": "Stun", "weaken": "Weaken", "bleed": "Bleed", "hide": "Hide", "focus": "Focus",
    "blast 1": "Blast 1", "blast 2": "Blast 2",
    "recover 1": "Recover 1", "recover 2": "Recover 2", "recover 3": "Recover 3",
    "cleave 1": "Cleave 1", "cleave 2": "Cleave 2",
}

_CONDITIONS = {"stun": "Stun", "weaken": "Weaken", "bleed": "Bleed", "hide": "Hide", "focus": "Focus"}
_NUMERIC_SURGES = {
    "damage": re.compile(r"^damage\s+(\d+)$"),
    "pierce": re.compile(r"^pierce\s+(\d+)$"),
    "accuracy": re.compile(r"^accuracy\s+(\d+)$"),
    "blast": re.compile(r"^blast\s+(\d+)$"),
    "recover": re.compile(r"^recover\s+(\d+)$"),
    "cleave": re.compile(r"^cleave\s+(\d+)$"),
}
_HITS = re.compile(r"^\+(\d+)\s+hits?$")


# ----------------------------------------------------------------------
# Dice
# ----------------------------------------------------------------------

def roll_attack_die(color: str, data: Any, rng: Any) -> dict[str, int]:
    faces = data.attack_faces(color)
    if not faces:
        return {"acc": 0, "dmg": 0, "surge": 0}
    face = rng.choice(faces)
    return {"acc": face.get("acc", 0), "dmg": face.get("dmg", 0), "surge": face.get("surge", 0)}


def roll_defense_die(color: str, data: Any, rng: Any) -> dict[str, int]:
    faces = data.defense_faces(color)
    if not faces:
        return {"block": 0, "evade": 0, "dodge": 0}
    face = rng.choice(faces)
    return {
        "block": face.get("block", 0),
        "evade": face.get("evade", 0),
        "dodge": face.get("dodge", 0),
    }


def roll_attack_dice(colors: list[str], data: Any, rng: Any) -> list[dict[str, int]]:
    return [roll_attack_die(c, data, rng) for c in colors]


def roll_defense_dice(colors: list[str], data: Any, rng: Any) -> list[dict[str, int]]:
    return [roll_defense_die(c, data, rng) for c in colors]


# ----------------------------------------------------------------------
# Surge abilities
# ----------------------------------------------------------------------

@dataclass
class SurgeEffect:
    """Modifiers produced by one surge ability key."""
    damage: int = 0
    pierce: int = 0
    accuracy: int = 0
    conditions: list[str] = field(default_factory=list)
    blast: int = 0
    recover: int = 0
    cleave: int = 0


def parse_surge_effect(key: str) -> SurgeEffect:
    """
    Parse a surge key such as "damage 2", "+1 hit, stun" or "blast 2".

    Unrecognized parts are ignored.
    """
    effect = SurgeEffect()
    for part in re.split(r"\s*,\s*", str(key or "").lower().strip()):
        hits = _HITS.match(part)
        if hits:
            effect.damage += int(hits.group(1))
            continue
        for name, pattern in _NUMERIC_SURGES.items():
            match = pattern.match(part)
            if match:
                setattr(effect, name, getattr(effect, name) + int(match.group(1)))
                break
        else:
            if part in _CONDITIONS:
                effect.conditions.append(_CONDITIONS[part])
    return effect


def surge_cost(data: Any, key: str) -> int:
    entry = data.get_ability(key) if data is not None else None
    if entry and entry.get("surge_cost") is not None:
        return int(entry["surge_cost"])
    if entry and entry.get("surgeCost") is not None:
        return int(entry["surgeCost"])
    return DEFAULT_SURGE_COST


def surge_label(data: Any, key: str) -> str:
    entry = data.get_ability(key) if data is not None else None
    if entry and entry.get("label"):
        return entry["label"]
    return SURGE_LABELS.get(str(key).lower(), key or "")


def attacker_surge_abilities(combat: PendingCombat, data: Any) -> list[str]:
    """Printed surges of the attacking card plus any granted for this attack."""
    stats = data.get_dc(dc_name_of(combat.attacker_figure_key))
    return list(stats.surges) + list(combat.bonus_surge_abilities)


# ----------------------------------------------------------------------
# Result
# ----------------------------------------------------------------------

@dataclass
class CombatResult:
    hit: bool
    damage: int
    effective_block: int
    dodged: bool
    result_text: str


def compute_combat_result(combat: PendingCombat) -> CombatResult:
    """Pure damage computation from the rolled faces and accumulated modifiers."""
    attack = combat.attack_totals()
    defense = combat.defense_totals()
    dodged = defense["dodge"] > 0

    total_pierce = combat.surge_pierce + combat.bonus_pierce
    total_accuracy = attack["acc"] + combat.surge_accuracy + combat.bonus_accuracy
    effective_block = max(0, defense["block"] + combat.bonus_block - total_pierce)

    hit = True
    miss_reason = ""
    if dodged:
        hit = False
        miss_reason = "dodge"
    elif combat.attack_type == "ranged" and total_accuracy < combat.distance:
        hit = False
        miss_reason = f"insufficient accuracy ({total_accuracy} < {combat.distance} distance)"

    damage = 0
    if hit:
        damage = max(0, attack["dmg"] + combat.surge_damage + combat.bonus_hits - effective_block)
        if combat.max_damage_to_defender is not None:
            damage = min(damage, combat.max_damage_to_defender)

    text = (
        f"Attack: {attack['acc']} acc, {attack['dmg']} dmg, {attack['surge']} surge"
        f" | Defense: {defense['block']} block, {defense['evade']} evade"
    )
    if defense["dodge"]:
        text += " | Dodge"
    if combat.bonus_accuracy:
        text += f" | CC bonus: +{combat.bonus_accuracy} acc"
    if combat.bonus_hits:
        text += f" | CC bonus: +{combat.bonus_hits} Hit"
    if combat.bonus_block:
        text += f" | CC bonus: +{combat.bonus_block} Block"
    if combat.bonus_evade:
        text += f" | CC bonus: +{combat.bonus_evade} Evade"
    if combat.bonus_pierce:
        text += f" | CC bonus: +{combat.bonus_pierce} pierce"
    if combat.evade_cancelled_surge:
        text += f" | Evade cancelled {combat.evade_cancelled_surge} surge"
    conditions = f" ({', '.join(combat.surge_conditions)})" if combat.surge_conditions else ""
    extras = ""
    if combat.surge_blast:
        extras += f" Blast {combat.surge_blast}"
    if combat.surge_recover:
        extras += f" Recover {combat.surge_recover}"
    if combat.surge_cleave:
        extras += f" Cleave {combat.surge_cleave}"
    if combat.surge_damage or combat.surge_pierce or combat.surge_accuracy or conditions or extras:
        text += (
            f" | Surge: +{combat.surge_damage} dmg, +{combat.surge_pierce} pierce,"
            f" +{combat.surge_accuracy} acc{conditions}{extras}"
        )
    if combat.attack_type == "ranged":
        text += f" | Accuracy: {total_accuracy} vs {combat.distance} distance"
    if hit:
        text += f" -> {damage} damage{conditions}"
    else:
        text += f" -> Miss ({miss_reason})"

    return CombatResult(hit, damage, effective_block, dodged, text)


# ----------------------------------------------------------------------
# Steps
# ----------------------------------------------------------------------

def declare_attack(game: Game, data: Any, player_id: str, attacker_key: str, target_key: str) -> PendingCombat:
    """
    Validate a target and open the pre-combat window.

    The caller is responsible for spending the attacker's action.
    """
    if game.pending_combat is not None:
        raise ValidationError("An attack is already in progress")
    if game.owner_of(attacker_key) != player_id or not game.position_of(attacker_key):
        raise ValidationError(f"{attacker_key} is not your figure on the map")
    defender_id = game.owner_of(target_key)
    if defender_id is None or not game.position_of(target_key):
        raise DataIntegrityError(f"Target {target_key} not found", error_code="UNKNOWN_FIGURE")
    if defender_id == player_id:
        raise ValidationError("Target must be a hostile figure")

    stats = data.get_dc(dc_name_of(attacker_key))
    target_stats = data.get_dc(dc_name_of(target_key))
    attacker_cells = figure_footprint(game, data, attacker_key)
    target_cells = figure_footprint(game, data, target_key)
    distance = footprint_range(attacker_cells, target_cells)
    profile = stats.attack
    if profile.is_melee and distance > 1:
        raise ValidationError(f"Melee attack requires an adjacent target (range {distance})")
    if distance < profile.min_range or distance > profile.max_range:
        raise ValidationError(
            f"Target out of range ({distance}; allowed {profile.min_range}-{profile.max_range})"
        )
    geometry = data.get_map(game.selected_map)
    if not footprint_line_of_sight(attacker_cells, target_cells, geometry):
        raise ValidationError("No line of sight to target")

    combat = PendingCombat(
        attacker_player_id=player_id,
        defender_player_id=defender_id,
        attacker_figure_key=attacker_key,
        target_figure_key=target_key,
        attack_type=profile.attack_type,
        distance=distance,
        stage=CombatStage.PRE_COMBAT,
        attack_dice=list(profile.dice),
        defense_dice=list(target_stats.defense),
        attacker_rerolls=stats.rerolls,
        defender_rerolls=target_stats.rerolls,
    )
    game.pending_combat = combat
    logger.debug("Attack declared: %s -> %s at range %d", attacker_key, target_key, distance)
    return combat


def require_combat(game: Game, *stages: CombatStage) -> PendingCombat:
    combat = game.pending_combat
    if combat is None:
        raise DataIntegrityError("No attack in progress", error_code="SESSION_MISSING")
    if stages and combat.stage not in stages:
        raise ValidationError(f"Attack is in stage {combat.stage.value}")
    return combat


def side_of(combat: PendingCombat, player_id: str) -> str:
    if player_id == combat.attacker_player_id:
        return "attacker"
    if player_id == combat.defender_player_id:
        return "defender"
    raise ValidationError("You are not part of this attack")


def mark_ready(combat: PendingCombat, player_id: str) -> bool:
    """Signal ready in the pre-combat window. Returns True once both sides are ready."""
    if side_of(combat, player_id) == "attacker":
        combat.attacker_ready = True
    else:
        combat.defender_ready = True
    return combat.attacker_ready and combat.defender_ready


def roll_attack(combat: PendingCombat, data: Any, rng: Any):
    if not (combat.attacker_ready and combat.defender_ready):
        raise ValidationError("Both players must be ready before rolling")
    pool = list(combat.attack_dice) + list(combat.bonus_dice)
    for color in combat.removed_dice:
        if color in pool:
            pool.remove(color)
    combat.attack_dice = pool
    combat.bonus_dice = []
    combat.removed_dice = []
    combat.attack_faces = roll_attack_dice(pool, data, rng)
    combat.stage = CombatStage.ATTACK_ROLLED


def roll_defense(combat: PendingCombat, data: Any, rng: Any):
    combat.defense_faces = roll_defense_dice(combat.defense_dice, data, rng)
    _advance_from_rolls(combat)


def _advance_from_rolls(combat: PendingCombat):
    if combat.stage in (CombatStage.ATTACK_ROLLED,) and combat.attacker_rerolls > 0:
        combat.stage = CombatStage.REROLL_ATTACKER
    elif combat.stage in (CombatStage.ATTACK_ROLLED, CombatStage.REROLL_ATTACKER) and combat.defender_rerolls > 0:
        combat.stage = CombatStage.REROLL_DEFENDER
    else:
        enter_surge_phase(combat)


def reroll_die(combat: PendingCombat, data: Any, rng: Any, player_id: str, index: int) -> dict[str, int]:
    side = side_of(combat, player_id)
    if side == "attacker":
        if combat.stage != CombatStage.REROLL_ATTACKER:
            raise ValidationError("Attacker cannot reroll now")
        if combat.attacker_rerolls <= 0:
            raise ValidationError("No rerolls left", error_code="INSUFFICIENT_RESOURCES")
        if not 0 <= index < len(combat.attack_faces):
            raise ValidationError(f"No attack die at index {index}")
        face = roll_attack_die(combat.attack_dice[index], data, rng)
        combat.attack_faces[index] = face
        combat.attacker_rerolls -= 1
        if combat.attacker_rerolls == 0:
            _advance_from_rolls(combat)
        return face

    if combat.stage != CombatStage.REROLL_DEFENDER:
        raise ValidationError("Defender cannot reroll now")
    if combat.defender_rerolls <= 0:
        raise ValidationError("No rerolls left", error_code="INSUFFICIENT_RESOURCES")
    if not 0 <= index < len(combat.defense_faces):
        raise ValidationError(f"No defense die at index {index}")
    face = roll_defense_die(combat.defense_dice[index], data, rng)
    combat.defense_faces[index] = face
    combat.defender_rerolls -= 1
    if combat.defender_rerolls == 0:
        enter_surge_phase(combat)
    return face


def reroll_done(combat: PendingCombat, player_id: str):
    side = side_of(combat, player_id)
    if side == "attacker" and combat.stage == CombatStage.REROLL_ATTACKER:
        combat.attacker_rerolls = 0
        _advance_from_rolls(combat)
    elif side == "defender" and combat.stage == CombatStage.REROLL_DEFENDER:
        combat.defender_rerolls = 0
        enter_surge_phase(combat)
    else:
        raise ValidationError("Not in your reroll step")


def enter_surge_phase(combat: PendingCombat):
    """Apply evade cancellation and dodge once rerolls are finished."""
    attack = combat.attack_totals()
    defense = combat.defense_totals()
    total_evade = defense["evade"] + combat.bonus_evade
    combat.dodged = defense["dodge"] > 0
    combat.evade_cancelled_surge = min(attack["surge"], total_evade)
    if combat.dodged:
        combat.surge_remaining = 0
    else:
        combat.surge_remaining = attack["surge"] - combat.evade_cancelled_surge
    if combat.surge_remaining > 0:
        combat.stage = CombatStage.SURGE_SPEND
    else:
        combat.stage = CombatStage.READY_TO_RESOLVE


def spend_surge(combat: PendingCombat, data: Any, ability_key: str) -> SurgeEffect:
    """Spend surge on one available ability; each ability is used at most once per attack."""
    if combat.stage != CombatStage.SURGE_SPEND:
        raise ValidationError("No surge to spend")
    available = attacker_surge_abilities(combat, data)
    wanted = str(ability_key).lower()
    index = next(
        (i for i, key in enumerate(available)
         if key.lower() == wanted and i not in combat.used_surges),
        None,
    )
    if index is None:
        raise ValidationError(f"Surge ability not available: {ability_key}")
    cost = surge_cost(data, available[index])
    if cost > combat.surge_remaining:
        raise ValidationError(
            f"Not enough surge ({combat.surge_remaining} < {cost})",
            error_code="INSUFFICIENT_RESOURCES",
        )
    effect = parse_surge_effect(available[index])
    combat.used_surges.append(index)
    combat.surge_remaining -= cost
    combat.surge_damage += effect.damage
    combat.surge_pierce += effect.pierce
    combat.surge_accuracy += effect.accuracy
    combat.surge_blast += effect.blast
    combat.surge_recover += effect.recover
    combat.surge_cleave += effect.cleave
    for condition in effect.conditions:
        if condition not in combat.surge_conditions:
            combat.surge_conditions.append(condition)
    if combat.surge_remaining <= 0:
        combat.stage = CombatStage.READY_TO_RESOLVE
    return effect


# ----------------------------------------------------------------------
# Damage and defeat
# ----------------------------------------------------------------------

def apply_damage(game: Game, data: Any, figure_key: str, amount: int) -> list[str]:
    """
    Apply damage to one figure, handling defeat, VP and the freed activation.

    Returns human-readable change messages.
    """
    entry = game.figure_health(figure_key)
    if entry is None:
        raise DataIntegrityError(f"No health entry for {figure_key}", error_code="UNKNOWN_FIGURE")
    changes = []
    current, maximum = entry
    entry[0] = max(0, current - max(0, amount))
    changes.append(f"{figure_key} took {current - entry[0]} damage ({entry[0]}/{maximum})")
    if entry[0] == 0 and game.position_of(figure_key):
        changes.extend(defeat_figure(game, data, figure_key))
    return changes


def defeat_figure(game: Game, data: Any, figure_key: str) -> list[str]:
    owner = game.owner_of(figure_key)
    if owner is None:
        return []
    game.figure_positions.get(owner, {}).pop(figure_key, None)
    game.conditions.pop(figure_key, None)
    game.move_in_progress.pop(figure_key, None)
    game.figure_contraband.pop(figure_key, None)
    changes = [f"{figure_key} defeated"]
    logger.info("Game %s: %s defeated", game.game_id, figure_key)

    card_key = card_key_of(figure_key)
    if game.is_group_defeated(card_key):
        scorer = game.get_player(game.opponent_id(owner))
        stats = data.get_dc(dc_name_of(card_key))
        vp = stats.group_vp
        scorer.vp.add_kills(vp)
        changes.append(f"{card_key} eliminated: {scorer.player_id} +{vp} VP")
        if card_key not in game.activated_cards:
            loser = game.get_player(owner)
            loser.activations_remaining = max(0, loser.activations_remaining - 1)
            changes.append(f"{owner} loses the activation of {card_key}")
        check_win_conditions(game)
    return changes


def apply_recover(game: Game, figure_key: str, amount: int) -> int:
    """Heal a figure up to its maximum. Returns the amount healed."""
    entry = game.figure_health(figure_key)
    if entry is None or entry[0] <= 0:
        return 0
    healed = min(entry[1], entry[0] + max(0, amount)) - entry[0]
    entry[0] += healed
    return healed


def adjacent_figures(game: Game, data: Any, figure_key: str) -> list[tuple[str, str]]:
    """(player_id, figure_key) of figures whose footprint touches `figure_key`'s."""
    geometry = data.get_map(game.selected_map)
    cells = set(figure_footprint(game, data, figure_key))
    touching = set(cells)
    for cell in cells:
        touching.update(geometry.adjacency.get(cell, []))
    found = []
    for player_id, other_key, top_left in game.iter_figures():
        if other_key == figure_key:
            continue
        other_cells = footprint_cells(top_left, figure_size(game, data, other_key))
        if any(c in touching for c in other_cells):
            found.append((player_id, other_key))
    return found


def resolve_combat(game: Game, data: Any) -> tuple[CombatResult, list[str]]:
    """
    Apply the attack result to the game.

    Leaves the session open in CLEAVE_PENDING when cleave targets exist,
    otherwise closes it.
    """
    combat = require_combat(game, CombatStage.SURGE_SPEND, CombatStage.READY_TO_RESOLVE)
    result = compute_combat_result(combat)
    combat.result = {
        "hit": result.hit,
        "damage": result.damage,
        "effective_block": result.effective_block,
        "dodged": result.dodged,
        "text": result.result_text,
    }
    changes = [result.result_text]

    target = combat.target_figure_key
    blast_targets = []
    if result.hit and result.damage > 0 and combat.surge_blast > 0 and game.selected_map:
        # Measured before damage so a defeated target still blasts its neighbours
        blast_targets = [key for _, key in adjacent_figures(game, data, target)]
    if result.hit and result.damage > 0:
        changes.extend(apply_damage(game, data, target, result.damage))
    target_health = game.figure_health(target)
    if result.hit and combat.surge_conditions and target_health and target_health[0] > 0:
        existing = game.conditions.setdefault(target, [])
        for condition in combat.surge_conditions:
            if condition not in existing:
                existing.append(condition)
        changes.append(f"{target} gains {', '.join(combat.surge_conditions)}")

    if result.hit and combat.surge_recover > 0:
        healed = apply_recover(game, combat.attacker_figure_key, combat.surge_recover)
        if healed:
            changes.append(f"{combat.attacker_figure_key} recovered {healed}")

    for other_key in blast_targets:
        if game.ended or not game.position_of(other_key):
            continue
        changes.append(f"Blast {combat.surge_blast} on {other_key}")
        changes.extend(apply_damage(game, data, other_key, combat.surge_blast))

    if (
        combat.surge_cleave > 0
        and combat.attack_type == "melee"
        and not result.dodged
        and not game.ended
    ):
        combat.cleave_targets = [
            key for player_id, key in adjacent_figures(game, data, combat.attacker_figure_key)
            if player_id == combat.defender_player_id and key != target
        ]
    if combat.cleave_targets:
        combat.stage = CombatStage.CLEAVE_PENDING
        changes.append(f"Choose a cleave target: {', '.join(combat.cleave_targets)}")
    else:
        close_combat(game)
    logger.debug("Game %s combat resolved: %s", game.game_id, result.result_text)
    return result, changes


def apply_cleave(game: Game, data: Any, target_key: str) -> list[str]:
    combat = require_combat(game, CombatStage.CLEAVE_PENDING)
    if target_key not in combat.cleave_targets:
        raise ValidationError(f"{target_key} is not a valid cleave target")
    changes = [f"Cleave {combat.surge_cleave} on {target_key}"]
    changes.extend(apply_damage(game, data, target_key, combat.surge_cleave))
    close_combat(game)
    return changes


def close_combat(game: Game):
    if game.pending_combat is not None:
        game.pending_combat.stage = CombatStage.CLOSED
    game.pending_combat = None


# ----------------------------------------------------------------------
# Win condition
# ----------------------------------------------------------------------

def end_game(game: Game, winner_id: str | None, reason: str):
    game.ended = True
    game.winner_id = winner_id
    game.end_reason = reason
    game.phase = GamePhase.ENDED
    game.move_in_progress.clear()
    game.undo_stack.clear()
    game.log(f"Game over: {reason}" + (f", winner {winner_id}" if winner_id else ""))
    logger.info("Game %s ended (%s), winner=%s", game.game_id, reason, winner_id)


def check_win_conditions(game: Game) -> bool:
    """End the game on 40 VP or elimination. Returns True if the game is over."""
    if game.ended:
        return True
    leaders = [p for p in game.players if p.vp.total >= WINNING_VP]
    if leaders:
        leaders.sort(key=lambda p: p.vp.total, reverse=True)
        if len(leaders) > 1 and leaders[0].vp.total == leaders[1].vp.total:
            end_game(game, None, "draw")
        else:
            end_game(game, leaders[0].player_id, "vp")
        return True

    if game.phase not in (GamePhase.ACTIVATION, GamePhase.STATUS):
        return False
    remaining = {pid: len(game.figure_positions.get(pid, {})) for pid in game.player_ids}
    empty = [pid for pid, count in remaining.items() if count == 0]
    if len(empty) == len(remaining):
        end_game(game, None, "draw")
        return True
    if empty:
        end_game(game, game.opponent_id(empty[0]), "elimination")
        return True
    return False
