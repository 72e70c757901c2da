"""
API Service - Business logic layer between API and engine.

The service:
1. Translates API requests to typed engine actions
2. Routes actions through the session manager
3. Builds read-only views (state, board, movement, interact options)
4. Formats engine results as response models

This layer is framework-agnostic (can be used with FastAPI, a chat bot,
or a test harness).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import logging

from .schemas import (
    # Requests
    CreateGameRequest,
    ActionRequest,
    # Responses
    ActionResponse,
    BoardResponse,
    ErrorResponse,
    GameListResponse,
    GameStateResponse,
    GameSummary,
    InteractResponse,
    MovementResponse,
    # Shared
    CombatInfo,
    FigureInfo,
    InteractOptionInfo,
    PlayerInfo,
    VictoryPointsInfo,
    # Enums
    ErrorCode,
    GamePhaseName,
)
from ..data import StaticData
from ..engine_core.action import Action, ActionKind
from ..engine_core.errors import EngineError
from ..engine_core.interact import get_legal_interact_options
from ..engine_core.movement import (
    board_snapshot,
    compute_movement_cache,
    board_for_figure,
    profile_for_figure,
    figure_speed,
    session_cache,
    spaces_by_cost,
)
from ..engine_core.state import Game
from ..session import SessionManager

logger = logging.getLogger(__name__)

LOG_TAIL = 20


def _error(message: str, code: str | ErrorCode, details: dict[str, Any] | None = None) -> ErrorResponse:
    if not isinstance(code, ErrorCode):
        code = ErrorCode.from_engine(code)
    return ErrorResponse(error=message, error_code=code, details=details)


@dataclass
class APIService:
    """
    Main API service.

    Usage:
        service = APIService()

        game = service.create_game(CreateGameRequest(player1_id="p1", player2_id="p2"))
        result = service.apply_action(game.game_id, ActionRequest(kind="pass_turn", player_id="p1"))
    """
    data: StaticData = field(default_factory=StaticData.builtin)
    session_manager: SessionManager | None = None

    def __post_init__(self):
        if self.session_manager is None:
            self.session_manager = SessionManager(self.data)

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    def create_game(self, request: CreateGameRequest) -> GameStateResponse | ErrorResponse:
        try:
            session = self.session_manager.create_game(
                request.player1_id,
                request.player2_id,
                seed=request.random_seed,
                game_id=request.game_id,
            )
        except ValueError as e:
            return _error(str(e), ErrorCode.INVALID_ACTION)
        return self.game_to_response(session.game)

    def list_games(self) -> GameListResponse:
        games = [self._summary(game) for game in self.session_manager.list_games()]
        return GameListResponse(games=games, count=len(games))

    def get_game(self, game_id: str) -> GameStateResponse | ErrorResponse:
        game = self.session_manager.get_game(game_id)
        if game is None:
            return _error(f"Game {game_id} not found", ErrorCode.GAME_NOT_FOUND)
        return self.game_to_response(game)

    def kill_game(self, game_id: str, player_id: str) -> ActionResponse | ErrorResponse:
        request = ActionRequest(kind=ActionKind.KILL_GAME.value, player_id=player_id)
        return self.apply_action(game_id, request)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def apply_action(self, game_id: str, request: ActionRequest) -> ActionResponse | ErrorResponse:
        """
        Parse the request once into a typed Action and apply it.

        Rejected actions come back as ErrorResponse; a game that was
        committed but not saved comes back as PERSISTENCE_ERROR with the
        applied result in details.
        """
        try:
            action = Action.from_request({
                "kind": request.kind,
                "game_id": game_id,
                "figure_key": request.figure_key,
                "player_id": request.player_id,
                "payload": request.payload,
            })
        except ValueError:
            return _error(f"Unknown action kind: {request.kind}", ErrorCode.INVALID_ACTION)

        result = self.session_manager.apply(game_id, action)
        if not result.success:
            return _error(result.error or "Action failed", result.error_code or ErrorCode.INVALID_ACTION)

        response = ActionResponse(
            success=True,
            kind=action.kind.value,
            state_changes=result.state_changes,
            pending_choice=_jsonable(result.pending_choice),
            pending_confirmation=_jsonable(result.pending_confirmation),
            data=_jsonable(result.data),
            game=self.game_to_response(result.new_state),
        )
        if result.error_code == ErrorCode.PERSISTENCE_ERROR.value:
            return _error(result.error, ErrorCode.PERSISTENCE_ERROR, details=response.model_dump(mode="json"))
        return response

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def get_board(self, game_id: str) -> BoardResponse | ErrorResponse:
        game = self.session_manager.get_game(game_id)
        if game is None:
            return _error(f"Game {game_id} not found", ErrorCode.GAME_NOT_FOUND)
        return BoardResponse(
            game_id=game.game_id,
            selected_map=game.selected_map,
            figures=self._figures(game),
            opened_doors=list(game.opened_doors),
            launch_panel_state=dict(game.launch_panel_state),
            placed_tokens=dict(game.placed_tokens),
        )

    def get_movement(self, game_id: str, figure_key: str, cost: int | None = None) -> MovementResponse | ErrorResponse:
        """
        Destinations for a figure.

        With a movement session open this reads the session's banked MP;
        otherwise it previews the figure's speed without spending anything.
        """
        game = self.session_manager.get_game(game_id)
        if game is None:
            return _error(f"Game {game_id} not found", ErrorCode.GAME_NOT_FOUND)
        if game.position_of(figure_key) is None:
            return _error(f"{figure_key} is not on the map", ErrorCode.UNKNOWN_FIGURE)

        view = game.clone()
        try:
            if figure_key in view.move_in_progress:
                mp = view.move_in_progress[figure_key].mp_remaining
                cache = session_cache(view, self.data, figure_key)
            else:
                mp = figure_speed(view, self.data, figure_key)
                cache = compute_movement_cache(
                    view.position_of(figure_key),
                    mp,
                    board_for_figure(view, self.data, figure_key),
                    profile_for_figure(view, self.data, figure_key),
                )
        except EngineError as e:
            return _error(e.message, e.error_code)

        grouped = spaces_by_cost(cache, mp)
        if cost is not None:
            grouped = {cost: grouped.get(cost, [])}
        return MovementResponse(figure_key=figure_key, mp_remaining=mp, spaces_by_cost=grouped)

    def get_interact_options(self, game_id: str, figure_key: str) -> InteractResponse | ErrorResponse:
        game = self.session_manager.get_game(game_id)
        if game is None:
            return _error(f"Game {game_id} not found", ErrorCode.GAME_NOT_FOUND)
        if game.position_of(figure_key) is None:
            return _error(f"{figure_key} is not on the map", ErrorCode.UNKNOWN_FIGURE)
        try:
            options = get_legal_interact_options(game, self.data, figure_key)
        except EngineError as e:
            return _error(e.message, e.error_code)
        return InteractResponse(
            figure_key=figure_key,
            options=[
                InteractOptionInfo(id=o.option_id, label=o.label, mission_specific=o.mission_specific)
                for o in options
            ],
        )

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def game_to_response(self, game: Game) -> GameStateResponse:
        """Convert a Game to its API representation."""
        combat = None
        if game.pending_combat is not None:
            pc = game.pending_combat
            combat = CombatInfo(
                attacker=pc.attacker_figure_key,
                target=pc.target_figure_key,
                stage=pc.stage.value,
                attack_faces=pc.attack_faces,
                defense_faces=pc.defense_faces,
                surge_remaining=pc.surge_remaining,
                cleave_targets=pc.cleave_targets,
            )
        confirmations = [
            {
                "confirmation_id": c.confirmation_id,
                "kind": c.kind,
                "player_id": c.player_id,
                "reason": c.reason,
            }
            for c in game.pending_confirmations.values()
        ]
        return GameStateResponse(
            game_id=game.game_id,
            phase=GamePhaseName(game.phase.value),
            current_round=game.current_round,
            initiative_player_id=game.initiative_player_id,
            current_activation_turn_player_id=game.current_activation_turn_player_id,
            end_of_round_whose_turn=game.end_of_round_whose_turn,
            selected_map=game.selected_map,
            selected_mission=game.selected_mission,
            players=[self._player(game, pid) for pid in game.player_ids],
            figures=self._figures(game),
            active_card_key=game.active_card_key,
            card_actions=dict(game.card_actions),
            combat=combat,
            pending_confirmations=confirmations,
            pending_choice=_jsonable(game.pending_cc_choice or game.pending_cc_space_choice),
            ended=game.ended,
            winner_id=game.winner_id,
            end_reason=game.end_reason,
            log_tail=game.action_log[-LOG_TAIL:],
        )

    def _player(self, game: Game, player_id: str) -> PlayerInfo:
        player = game.get_player(player_id)
        return PlayerInfo(
            player_id=player.player_id,
            squad_name=player.squad.name if player.squad else None,
            vp=VictoryPointsInfo(
                total=player.vp.total,
                kills=player.vp.kills,
                objectives=player.vp.objectives,
            ),
            activations_remaining=player.activations_remaining,
            activations_total=player.activations_total,
            hand_size=len(player.hand),
            deck_size=len(player.deck),
            discard=list(player.discard),
            deployment_zone=player.deployment_zone,
            deployed=player.deployed,
        )

    def _figures(self, game: Game) -> list[FigureInfo]:
        if not game.selected_map:
            return []
        return [FigureInfo(**entry) for entry in board_snapshot(game, self.data)]

    def _summary(self, game: Game) -> GameSummary:
        return GameSummary(
            game_id=game.game_id,
            players=game.player_ids,
            phase=GamePhaseName(game.phase.value),
            current_round=game.current_round,
            ended=game.ended,
            winner_id=game.winner_id,
        )


def _jsonable(value: Any) -> Any:
    """Best-effort conversion of engine result data to JSON-friendly values."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def build_service(
    data_dir: str | None = None,
    store_path: str | None = None,
    confirm_ttl: float | None = None,
) -> APIService:
    """
    Build a service from configuration values.

    Args:
        data_dir: Directory of rule-data JSON files (built-in data if None)
        store_path: JSON file for games (in-memory store if None)
        confirm_ttl: Seconds before a pending confirmation expires
    """
    from ..engine_core.reducer import DEFAULT_CONFIRM_TTL
    from ..session import GameStore

    data = StaticData.from_directory(data_dir) if data_dir else StaticData.builtin()
    store = GameStore(store_path) if store_path else None
    manager = SessionManager(
        data,
        store=store,
        confirm_ttl=confirm_ttl if confirm_ttl is not None else DEFAULT_CONFIRM_TTL,
    )
    loaded = manager.load()
    if loaded:
        logger.info("Resumed %d stored game(s)", loaded)
    return APIService(data=data, session_manager=manager)
