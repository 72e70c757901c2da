"""
Undo Log - a stack of tagged, invertible actions.

Each entry carries exactly the prior-state fields its inverse needs.
Command-card plays store a snapshot of the game taken before the play,
since card effects can touch almost anything.
"""

from __future__ import annotations
from dataclasses import fields
from typing import Any, Callable
import time

from .errors import ValidationError
from .state import Game, MoveInProgress, UndoEntry, UndoType, card_key_of

# Fields that survive a snapshot restore
_KEEP_ON_RESTORE = {"undo_stack", "action_log", "game_id", "created_at"}


def push_undo(
    game: Game,
    undo_type: UndoType,
    player_id: str | None,
    data: dict[str, Any],
    timestamp: float | None = None,
) -> UndoEntry:
    entry = UndoEntry(
        undo_type=undo_type,
        player_id=player_id,
        data=data,
        timestamp=time.time() if timestamp is None else timestamp,
    )
    game.undo_stack.append(entry)
    return entry


def snapshot(game: Game) -> dict[str, Any]:
    """Serialized game state without the undo stack and log."""
    state = game.to_dict()
    for name in _KEEP_ON_RESTORE:
        state.pop(name, None)
    return state


def _restore_snapshot(game: Game, state: dict[str, Any]):
    restored = Game.from_dict({**state, "game_id": game.game_id})
    for f in fields(Game):
        if f.name in _KEEP_ON_RESTORE:
            continue
        setattr(game, f.name, getattr(restored, f.name))


def _undo_move(game: Game, entry: UndoEntry) -> str:
    data = entry.data
    figure_key = data["figure_key"]
    owner = game.owner_of(figure_key)
    if owner is None or figure_key not in game.figure_positions.get(owner, {}):
        raise ValidationError(f"{figure_key} is no longer on the map")
    game.figure_positions[owner][figure_key] = data["previous_top_left"]
    if data.get("previous_orientation"):
        game.figure_orientations[figure_key] = data["previous_orientation"]
    else:
        game.figure_orientations.pop(figure_key, None)
    for pushed_key, cell in data.get("pushed_positions", {}).items():
        pushed_owner = game.owner_of(pushed_key)
        if pushed_owner and pushed_key in game.figure_positions.get(pushed_owner, {}):
            game.figure_positions[pushed_owner][pushed_key] = cell
    game.move_in_progress[figure_key] = MoveInProgress(
        figure_key=figure_key, mp_remaining=data["mp_before"]
    )
    return f"Undid move of {figure_key} (back to {data['previous_top_left'].upper()})"


def _undo_deploy_pick(game: Game, entry: UndoEntry) -> str:
    if game.current_round > 0:
        raise ValidationError("Deployment can only be undone before round 1")
    player = game.get_player(entry.player_id)
    if player is not None and player.deployed:
        raise ValidationError("Deployment is already finished")
    figure_key = entry.data["figure_key"]
    game.figure_positions.get(entry.player_id, {}).pop(figure_key, None)
    game.figure_orientations.pop(figure_key, None)
    return f"Undid deployment of {figure_key}"


def _undo_interact(game: Game, entry: UndoEntry) -> str:
    data = entry.data
    figure_key = data["figure_key"]
    game.opened_doors = list(data["opened_doors"])
    game.launch_panel_state = dict(data["launch_panel_state"])
    if data.get("carried_contraband"):
        game.figure_contraband[figure_key] = True
    else:
        game.figure_contraband.pop(figure_key, None)
    player = game.get_player(entry.player_id)
    if player is not None:
        player.launch_panel_flipped_this_round = data["launch_panel_flipped"]
    game.card_actions[card_key_of(figure_key)] = data["actions_before"]
    return f"Undid interact ({data.get('option_id', '')}) by {figure_key}"


def _undo_cc_play(game: Game, entry: UndoEntry) -> str:
    _restore_snapshot(game, entry.data["snapshot"])
    return f"Undid play of {entry.data.get('card_name', 'command card')}"


def _undo_pass_turn(game: Game, entry: UndoEntry) -> str:
    game.current_activation_turn_player_id = entry.data["previous_turn_player_id"]
    return f"Undid pass, turn back to {entry.data['previous_turn_player_id']}"


_INVERSES: dict[UndoType, Callable[[Game, UndoEntry], str]] = {
    UndoType.MOVE: _undo_move,
    UndoType.DEPLOY_PICK: _undo_deploy_pick,
    UndoType.INTERACT: _undo_interact,
    UndoType.CC_PLAY: _undo_cc_play,
    UndoType.CC_PLAY_DC: _undo_cc_play,
    UndoType.PASS_TURN: _undo_pass_turn,
}


def apply_undo(game: Game, player_id: str) -> str:
    """Invert the most recent entry. Only the player who made it may undo it."""
    if game.ended:
        raise ValidationError("Undo is not available once the game has ended")
    if not game.undo_stack:
        raise ValidationError("Nothing to undo")
    entry = game.undo_stack[-1]
    if entry.player_id is not None and entry.player_id != player_id:
        raise ValidationError("Only the player who made the last action can undo it", error_code="NOT_YOUR_TURN")
    message = _INVERSES[entry.undo_type](game, entry)
    game.undo_stack.pop()
    game.log(message)
    return message
