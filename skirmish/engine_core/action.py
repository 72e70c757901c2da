"""
Action System - Actions, payloads, and results.

Actions represent:
1. Setup steps (squads, map, initiative, deployment)
2. Activation steps (activate, move, attack, interact)
3. Command-card plays and their confirmations
4. Turn and round signals

Actions are parsed once at the boundary and are never re-parsed by the
engine. All state changes flow through actions.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ActionKind(Enum):
    """Kinds of actions in the system."""
    # Setup
    SELECT_SQUAD = "select_squad"
    CONFIRM_SQUAD = "confirm_squad"  # Illegal-squad override
    SELECT_MAP_MISSION = "select_map_mission"
    DETERMINE_INITIATIVE = "determine_initiative"
    CHOOSE_DEPLOYMENT_ZONE = "choose_deployment_zone"
    DEPLOY_FIGURE = "deploy_figure"
    MARK_DEPLOYED = "mark_deployed"
    DRAW_STARTING_HAND = "draw_starting_hand"

    # Activation
    ACTIVATE_DEPLOYMENT_CARD = "activate_deployment_card"
    MOVE = "move"  # Bank MP, or pick a distance
    MOVE_COMMIT = "move_commit"  # Distance + destination

    # Attack
    ATTACK = "attack"
    COMBAT_READY = "combat_ready"
    ROLL_ATTACK_DICE = "roll_attack_dice"
    ROLL_DEFENSE_DICE = "roll_defense_dice"
    REROLL_DIE = "reroll_die"
    REROLL_DONE = "reroll_done"
    SPEND_SURGE = "spend_surge"
    RESOLVE_COMBAT = "resolve_combat"
    CHOOSE_CLEAVE_TARGET = "choose_cleave_target"

    INTERACT = "interact"

    # Command cards
    PLAY_COMMAND_CARD = "play_command_card"
    PLAY_SPECIAL_ACTION = "play_special_action"
    CONFIRM_CC_PLAY = "confirm_cc_play"
    CANCEL_CC_PLAY = "cancel_cc_play"
    RESOLVE_CC_CHOICE = "resolve_cc_choice"

    # Turn and round
    PASS_TURN = "pass_turn"
    END_TURN = "end_turn"
    END_ACTIVATION_PHASE = "end_activation_phase"
    END_END_OF_ROUND_WINDOW = "end_end_of_round_window"

    KILL_GAME = "kill_game"
    UNDO = "undo"


@dataclass
class ActionPayload:
    """
    Payload for an action - contains the action parameters.

    Different action kinds read different params; validation happens in
    the reducer.
    """
    player_id: str | None = None
    params: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.params.get(key, default)


@dataclass
class Action:
    """
    A complete action to be applied to a game.

    Actions are:
    - Logged for replay
    - Validated before application
    - Applied atomically by the reducer
    """
    kind: ActionKind
    payload: ActionPayload
    game_id: str | None = None
    figure_key: str | None = None
    timestamp: float | None = None
    action_id: str | None = None

    @property
    def player_id(self) -> str | None:
        return self.payload.player_id

    @classmethod
    def create(
        cls,
        kind: ActionKind | str,
        player_id: str | None = None,
        figure_key: str | None = None,
        game_id: str | None = None,
        **params: Any,
    ) -> Action:
        """Generic factory; `kind` may be the enum or its string value."""
        if isinstance(kind, str):
            kind = ActionKind(kind)
        return cls(
            kind=kind,
            payload=ActionPayload(player_id=player_id, params=params),
            game_id=game_id,
            figure_key=figure_key,
        )

    @classmethod
    def from_request(cls, raw: dict[str, Any]) -> Action:
        """Parse a transport request `{kind, game_id, figure_key, payload}`."""
        payload = dict(raw.get("payload") or {})
        player_id = payload.pop("player_id", None) or raw.get("player_id")
        return cls(
            kind=ActionKind(raw["kind"]),
            payload=ActionPayload(player_id=player_id, params=payload),
            game_id=raw.get("game_id"),
            figure_key=raw.get("figure_key"),
            timestamp=raw.get("timestamp"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "game_id": self.game_id,
            "figure_key": self.figure_key,
            "payload": {"player_id": self.payload.player_id, **self.payload.params},
            "timestamp": self.timestamp,
        }

    # Factories for the common cases

    @classmethod
    def select_squad(cls, player_id: str, name: str, dc_list: list[str],
                     cc_list: list[str], force: bool = False) -> Action:
        return cls.create(ActionKind.SELECT_SQUAD, player_id, name=name,
                          dc_list=dc_list, cc_list=cc_list, force=force)

    @classmethod
    def deploy(cls, player_id: str, figure_key: str, cell: str,
               orientation: str | None = None) -> Action:
        return cls.create(ActionKind.DEPLOY_FIGURE, player_id, figure_key,
                          cell=cell, orientation=orientation)

    @classmethod
    def activate(cls, player_id: str, card_key: str) -> Action:
        return cls.create(ActionKind.ACTIVATE_DEPLOYMENT_CARD, player_id, card_key=card_key)

    @classmethod
    def move(cls, player_id: str, figure_key: str) -> Action:
        """Spend an action to bank the figure's speed as MP."""
        return cls.create(ActionKind.MOVE, player_id, figure_key)

    @classmethod
    def move_commit(cls, player_id: str, figure_key: str, distance: int,
                    destination: str) -> Action:
        return cls.create(ActionKind.MOVE_COMMIT, player_id, figure_key,
                          distance=distance, destination=destination)

    @classmethod
    def attack(cls, player_id: str, figure_key: str, target: str) -> Action:
        return cls.create(ActionKind.ATTACK, player_id, figure_key, target=target)

    @classmethod
    def play_command_card(cls, player_id: str, card_name: str, **params: Any) -> Action:
        return cls.create(ActionKind.PLAY_COMMAND_CARD, player_id, card_name=card_name, **params)


@dataclass
class ActionResult:
    """
    Result of applying an action.

    Contains:
    - Whether action succeeded
    - New state (if succeeded)
    - Errors (if failed)
    - Prompts the transport must show (choices, confirmations)
    """
    success: bool
    new_state: Any | None = None  # Game
    error: str | None = None
    error_code: str | None = None

    # Human-readable changes
    state_changes: list[str] = field(default_factory=list)

    # Ambiguous resolutions
    pending_choice: dict[str, Any] | None = None
    pending_confirmation: dict[str, Any] | None = None

    # Extra data for the caller (combat text, movement spaces, ...)
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> ActionResult:
        """Create a failure result."""
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def success_with_state(
        cls,
        state: Any,
        changes: list[str] | None = None,
        data: dict[str, Any] | None = None,
    ) -> ActionResult:
        """Create a success result with new state."""
        return cls(
            success=True,
            new_state=state,
            state_changes=changes or [],
            data=data or {},
        )
