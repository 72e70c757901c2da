"""
Game State - The per-match record the engine operates on.

Design principles:
- One Game aggregate per match owns everything about that match
  (positions, health, hands, sessions, undo log) keyed by stable ids
- Serializable: every type round-trips through plain JSON dicts
- The reducer works on a clone and commits only on success

Figure identity:
    figure key = "{dc_name}-{group_index}-{figure_index}"
    card key   = "{dc_name}-{group_index}"
Group indexes are 1-based in squad order, figure indexes 0-based.
"""

from __future__ import annotations
from copy import deepcopy
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Iterator
import time


class GamePhase(Enum):
    """High-level phases of a match."""
    SETUP = "setup"
    INITIATIVE_DETERMINED = "initiative_determined"
    DEPLOYMENT_ZONE_CHOSEN = "deployment_zone_chosen"
    DEPLOYING = "deploying"
    ACTIVATION = "activation"
    STATUS = "status"  # End-of-round windows, then the status phase
    ENDED = "ended"


class CombatStage(Enum):
    """Sub-states of one attack."""
    DECLARED = "declared"
    PRE_COMBAT = "pre_combat"
    ATTACK_ROLLED = "attack_rolled"
    REROLL_ATTACKER = "reroll_attacker"
    REROLL_DEFENDER = "reroll_defender"
    SURGE_SPEND = "surge_spend"
    READY_TO_RESOLVE = "ready_to_resolve"
    CLEAVE_PENDING = "cleave_pending"
    CLOSED = "closed"


class UndoType(Enum):
    """Invertible actions recorded on the undo stack."""
    MOVE = "move"
    DEPLOY_PICK = "deploy_pick"
    INTERACT = "interact"
    CC_PLAY = "cc_play"
    CC_PLAY_DC = "cc_play_dc"
    PASS_TURN = "pass_turn"


def make_card_key(dc_name: str, group_index: int) -> str:
    return f"{dc_name}-{group_index}"


def make_figure_key(dc_name: str, group_index: int, figure_index: int) -> str:
    return f"{dc_name}-{group_index}-{figure_index}"


def card_key_of(figure_key: str) -> str:
    return figure_key.rsplit("-", 1)[0]


def figure_index_of(figure_key: str) -> int:
    return int(figure_key.rsplit("-", 1)[1])


def dc_name_of(key: str) -> str:
    """Deployment card name from a figure key or a card key."""
    parts = key.rsplit("-", 2)
    if len(parts) == 3 and parts[1].isdigit() and parts[2].isdigit():
        return parts[0]
    return key.rsplit("-", 1)[0]


@dataclass
class VictoryPoints:
    """VP split into kills and objectives; total is always their sum."""
    total: int = 0
    kills: int = 0
    objectives: int = 0

    def add_kills(self, vp: int):
        self.kills += vp
        self.total = self.kills + self.objectives

    def add_objectives(self, vp: int):
        self.objectives += vp
        self.total = self.kills + self.objectives


@dataclass
class Squad:
    """A submitted army: deployment cards in order, plus the command deck."""
    name: str = ""
    dc_list: list[str] = field(default_factory=list)
    cc_list: list[str] = field(default_factory=list)


@dataclass
class PlayerState:
    """
    State for one side of the match.

    Activation counters: `activations_remaining` never exceeds
    `activations_total`.
    """
    player_id: str
    squad: Squad | None = None
    squad_confirmed: bool = False

    # Command cards
    hand: list[str] = field(default_factory=list)
    deck: list[str] = field(default_factory=list)
    discard: list[str] = field(default_factory=list)
    hand_drawn: bool = False

    vp: VictoryPoints = field(default_factory=VictoryPoints)

    activations_remaining: int = 0
    activations_total: int = 0

    deployment_zone: str | None = None
    deployed: bool = False

    # Round flags
    no_draw_next_status: bool = False
    launch_panel_flipped_this_round: bool = False
    end_activation_signalled: bool = False
    end_of_round_done: bool = False


@dataclass
class PendingCombat:
    """
    One attack in progress.

    Created when a target is declared, closed once damage (and any
    cleave) is applied. Dice are kept per die so single dice can be
    rerolled.
    """
    attacker_player_id: str
    defender_player_id: str
    attacker_figure_key: str
    target_figure_key: str
    attack_type: str = "ranged"
    distance: int = 0
    stage: CombatStage = CombatStage.DECLARED

    # Dice pools (colors) and rolled faces
    attack_dice: list[str] = field(default_factory=list)
    defense_dice: list[str] = field(default_factory=list)
    attack_faces: list[dict[str, int]] = field(default_factory=list)
    defense_faces: list[dict[str, int]] = field(default_factory=list)

    # Pre-combat window
    attacker_ready: bool = False
    defender_ready: bool = False
    bonus_dice: list[str] = field(default_factory=list)
    removed_dice: list[str] = field(default_factory=list)
    bonus_hits: int = 0
    bonus_pierce: int = 0
    bonus_accuracy: int = 0
    bonus_block: int = 0
    bonus_evade: int = 0
    bonus_surge_abilities: list[str] = field(default_factory=list)
    max_damage_to_defender: int | None = None

    # Rerolls
    attacker_rerolls: int = 0
    defender_rerolls: int = 0

    # Surge
    dodged: bool = False
    evade_cancelled_surge: int = 0
    surge_remaining: int = 0
    used_surges: list[int] = field(default_factory=list)
    surge_damage: int = 0
    surge_pierce: int = 0
    surge_accuracy: int = 0
    surge_conditions: list[str] = field(default_factory=list)
    surge_blast: int = 0
    surge_recover: int = 0
    surge_cleave: int = 0

    # Outcome
    result: dict[str, Any] | None = None
    cleave_targets: list[str] = field(default_factory=list)

    def attack_totals(self) -> dict[str, int]:
        return {
            "acc": sum(f.get("acc", 0) for f in self.attack_faces),
            "dmg": sum(f.get("dmg", 0) for f in self.attack_faces),
            "surge": sum(f.get("surge", 0) for f in self.attack_faces),
        }

    def defense_totals(self) -> dict[str, int]:
        return {
            "block": sum(f.get("block", 0) for f in self.defense_faces),
            "evade": sum(f.get("evade", 0) for f in self.defense_faces),
            "dodge": sum(f.get("dodge", 0) for f in self.defense_faces),
        }


@dataclass
class MoveInProgress:
    """
    Movement session for one figure during its activation.

    The MP bank carries over between Move actions. The movement cache is
    derived data and is rebuilt on demand, so it is not persisted.
    """
    figure_key: str
    mp_remaining: int = 0
    pending_distance: int | None = None
    cache_max_mp: int = 0
    cache_start: str | None = None
    movement_cache: Any = None


@dataclass
class UndoEntry:
    """A tagged undo record: the type plus exactly the prior-state fields it needs."""
    undo_type: UndoType
    player_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0


@dataclass
class PendingConfirmation:
    """
    A prompt waiting on a player ("play anyway" / "unplay", illegal squad
    override). Expires after the configured TTL.
    """
    confirmation_id: str
    kind: str
    player_id: str
    created_at: float
    reason: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: float, ttl: float) -> bool:
        return now - self.created_at > ttl


@dataclass
class Game:
    """
    Complete state of one match.

    Invariants:
    - A figure has at most one position
    - A figure at 0 health has no position
    - Each player's VP total equals kills + objectives
    """
    game_id: str
    players: list[PlayerState] = field(default_factory=list)

    phase: GamePhase = GamePhase.SETUP
    current_round: int = 0
    initiative_player_id: str | None = None
    deployment_zone_chosen: str | None = None
    selected_map: str | None = None
    selected_mission: str | None = None  # Mission variant, "a" or "b"

    # Board
    figure_positions: dict[str, dict[str, str]] = field(default_factory=dict)
    figure_orientations: dict[str, str] = field(default_factory=dict)
    health: dict[str, list[list[int]]] = field(default_factory=dict)
    conditions: dict[str, list[str]] = field(default_factory=dict)

    # Activations
    activated_cards: list[str] = field(default_factory=list)
    card_actions: dict[str, int] = field(default_factory=dict)
    active_card_key: str | None = None
    current_activation_turn_player_id: str | None = None
    end_of_round_whose_turn: str | None = None

    # Transient sessions
    pending_combat: PendingCombat | None = None
    move_in_progress: dict[str, MoveInProgress] = field(default_factory=dict)
    pending_confirmations: dict[str, PendingConfirmation] = field(default_factory=dict)
    pending_cc_choice: dict[str, Any] | None = None
    pending_cc_space_choice: dict[str, Any] | None = None

    undo_stack: list[UndoEntry] = field(default_factory=list)

    # Map and mission state
    opened_doors: list[str] = field(default_factory=list)
    figure_contraband: dict[str, bool] = field(default_factory=dict)
    launch_panel_state: dict[str, str] = field(default_factory=dict)
    mission_tokens: dict[str, int] = field(default_factory=dict)
    placed_tokens: dict[str, str] = field(default_factory=dict)

    # Outcome
    ended: bool = False
    winner_id: str | None = None
    end_reason: str | None = None

    action_log: list[str] = field(default_factory=list)
    random_seed: int = 0
    created_at: float = field(default_factory=time.time)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, game_id: str, player1_id: str, player2_id: str, seed: int = 0) -> Game:
        return cls(
            game_id=game_id,
            players=[PlayerState(player_id=player1_id), PlayerState(player_id=player2_id)],
            figure_positions={player1_id: {}, player2_id: {}},
            random_seed=seed,
        )

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------

    @property
    def player_ids(self) -> list[str]:
        return [p.player_id for p in self.players]

    def get_player(self, player_id: str | None) -> PlayerState | None:
        """Get player by ID."""
        for p in self.players:
            if p.player_id == player_id:
                return p
        return None

    def opponent_id(self, player_id: str) -> str:
        for p in self.players:
            if p.player_id != player_id:
                return p.player_id
        raise KeyError(player_id)

    def player_number(self, player_id: str) -> int:
        return self.player_ids.index(player_id) + 1

    # ------------------------------------------------------------------
    # Figures
    # ------------------------------------------------------------------

    def iter_figures(self) -> Iterator[tuple[str, str, str]]:
        """Yield (player_id, figure_key, top_left) for every figure on the map."""
        for player_id in self.player_ids:
            for figure_key, cell in self.figure_positions.get(player_id, {}).items():
                yield player_id, figure_key, cell

    def owner_of(self, figure_key: str) -> str | None:
        for player_id, positions in self.figure_positions.items():
            if figure_key in positions:
                return player_id
        for player in self.players:
            if player.squad and card_key_of(figure_key) in self.card_keys_for(player.player_id):
                return player.player_id
        return None

    def position_of(self, figure_key: str) -> str | None:
        for positions in self.figure_positions.values():
            if figure_key in positions:
                return positions[figure_key]
        return None

    def card_keys_for(self, player_id: str) -> list[str]:
        """Deployment card keys for a player, in squad order."""
        player = self.get_player(player_id)
        if not player or not player.squad:
            return []
        return [make_card_key(name, i) for i, name in enumerate(player.squad.dc_list, start=1)]

    def figure_keys_for_card(self, card_key: str) -> list[str]:
        entries = self.health.get(card_key, [])
        dc_name, group = card_key.rsplit("-", 1)
        return [make_figure_key(dc_name, int(group), i) for i in range(len(entries))]

    def figure_health(self, figure_key: str) -> list[int] | None:
        entries = self.health.get(card_key_of(figure_key))
        index = figure_index_of(figure_key)
        if entries is None or index >= len(entries):
            return None
        return entries[index]

    def is_group_defeated(self, card_key: str) -> bool:
        """A group is defeated once none of its figures remain on the map."""
        owner = None
        for player_id in self.player_ids:
            if card_key in self.card_keys_for(player_id):
                owner = player_id
                break
        if owner is None:
            return False
        positions = self.figure_positions.get(owner, {})
        return not any(fk in positions for fk in self.figure_keys_for_card(card_key))

    def active_groups(self, player_id: str) -> list[str]:
        return [ck for ck in self.card_keys_for(player_id) if not self.is_group_defeated(ck)]

    def log(self, message: str):
        self.action_log.append(message)

    # ------------------------------------------------------------------
    # Copy / serialization
    # ------------------------------------------------------------------

    def clone(self) -> Game:
        """Deep copy the state."""
        return deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return _to_jsonable(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Game:
        game = cls(game_id=raw["game_id"])
        simple = {
            "current_round", "initiative_player_id", "deployment_zone_chosen",
            "selected_map", "selected_mission", "figure_positions",
            "figure_orientations", "health", "conditions", "activated_cards",
            "card_actions", "active_card_key", "current_activation_turn_player_id",
            "end_of_round_whose_turn", "pending_cc_choice", "pending_cc_space_choice",
            "opened_doors", "figure_contraband", "launch_panel_state",
            "mission_tokens", "placed_tokens", "ended", "winner_id", "end_reason",
            "action_log", "random_seed", "created_at", "metadata",
        }
        for name in simple:
            if name in raw:
                setattr(game, name, deepcopy(raw[name]))
        game.phase = GamePhase(raw.get("phase", GamePhase.SETUP.value))
        game.players = [_player_from_dict(p) for p in raw.get("players", [])]
        if raw.get("pending_combat"):
            game.pending_combat = _combat_from_dict(raw["pending_combat"])
        game.move_in_progress = {
            key: MoveInProgress(**{k: v for k, v in value.items() if k != "movement_cache"})
            for key, value in raw.get("move_in_progress", {}).items()
        }
        game.pending_confirmations = {
            key: PendingConfirmation(**value)
            for key, value in raw.get("pending_confirmations", {}).items()
        }
        game.undo_stack = [
            UndoEntry(
                undo_type=UndoType(entry["undo_type"]),
                player_id=entry.get("player_id"),
                data=entry.get("data", {}),
                timestamp=entry.get("timestamp", 0.0),
            )
            for entry in raw.get("undo_stack", [])
        ]
        return game


def _player_from_dict(raw: dict[str, Any]) -> PlayerState:
    data = dict(raw)
    squad = data.pop("squad", None)
    vp = data.pop("vp", None) or {}
    player = PlayerState(**data)
    player.squad = Squad(**squad) if squad else None
    player.vp = VictoryPoints(**vp)
    return player


def _combat_from_dict(raw: dict[str, Any]) -> PendingCombat:
    data = dict(raw)
    data["stage"] = CombatStage(data.get("stage", CombatStage.DECLARED.value))
    return PendingCombat(**data)


def _to_jsonable(obj: Any) -> Any:
    """Recursively convert dataclasses and enums to JSON-compatible values."""
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: _to_jsonable(getattr(obj, f.name))
            for f in fields(obj)
            if f.name != "movement_cache"
        }
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(v) for v in obj]
    return obj
