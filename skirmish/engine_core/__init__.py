"""
Engine Core - Rules engine for a two-player skirmish match.

The engine:
1. Holds one Game record per match
2. Computes movement, line of sight and combat
3. Applies typed actions via the reducer
4. Resolves command-card effects and mission scoring
"""

from .errors import EngineError, ValidationError, DataIntegrityError
from .state import (
    Game,
    GamePhase,
    PlayerState,
    PendingCombat,
    CombatStage,
    MoveInProgress,
    UndoEntry,
    UndoType,
    Squad,
    VictoryPoints,
)
from .action import Action, ActionKind, ActionPayload, ActionResult
from .reducer import Reducer, apply_action
from .abilities import AbilityResolver, AbilityContext, AbilityOutcome, resolve_ability
from .movement import MovementProfile, get_reachable_spaces, board_snapshot
from .los import has_line_of_sight, get_range
from .validation import validate_squad

__all__ = [
    "EngineError",
    "ValidationError",
    "DataIntegrityError",
    "Game",
    "GamePhase",
    "PlayerState",
    "PendingCombat",
    "CombatStage",
    "MoveInProgress",
    "UndoEntry",
    "UndoType",
    "Squad",
    "VictoryPoints",
    "Action",
    "ActionKind",
    "ActionPayload",
    "ActionResult",
    "Reducer",
    "apply_action",
    "AbilityResolver",
    "AbilityContext",
    "AbilityOutcome",
    "resolve_ability",
    "MovementProfile",
    "get_reachable_spaces",
    "board_snapshot",
    "has_line_of_sight",
    "get_range",
    "validate_squad",
]
