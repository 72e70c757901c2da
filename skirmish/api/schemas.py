"""
Pydantic Schemas for API - Request/response models for OpenAPI.

These models define the contract between a client (chat bot, web table)
and the engine.

Error Codes:
- INVALID_ACTION: Action is not legal in the current state
- NOT_YOUR_TURN: Action was sent by the wrong player
- INSUFFICIENT_RESOURCES: Not enough actions, MP, surge or rerolls
- CONFIRMATION_EXPIRED: A pending confirmation timed out
- GAME_NOT_FOUND: Game does not exist
- UNKNOWN_MAP / UNKNOWN_CARD: Static data is missing
- SESSION_MISSING: No attack, movement or choice in progress
- PERSISTENCE_ERROR: Action applied but the store failed
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class ErrorCode(str, Enum):
    """Structured error codes."""
    INVALID_ACTION = "INVALID_ACTION"
    NOT_YOUR_TURN = "NOT_YOUR_TURN"
    INSUFFICIENT_RESOURCES = "INSUFFICIENT_RESOURCES"
    CONFIRMATION_EXPIRED = "CONFIRMATION_EXPIRED"
    GAME_NOT_FOUND = "GAME_NOT_FOUND"
    UNKNOWN_CARD = "UNKNOWN_CARD"
    UNKNOWN_MAP = "UNKNOWN_MAP"
    UNKNOWN_FIGURE = "UNKNOWN_FIGURE"
    SESSION_MISSING = "SESSION_MISSING"
    DATA_INTEGRITY = "DATA_INTEGRITY"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    HANDLER_ERROR = "HANDLER_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @classmethod
    def from_engine(cls, code: Optional[str]) -> "ErrorCode":
        """Map an engine error code string onto the enum."""
        try:
            return cls(code)
        except ValueError:
            return cls.INTERNAL_ERROR


class GamePhaseName(str, Enum):
    """Phase names as exposed over HTTP."""
    SETUP = "setup"
    INITIATIVE_DETERMINED = "initiative_determined"
    DEPLOYMENT_ZONE_CHOSEN = "deployment_zone_chosen"
    DEPLOYING = "deploying"
    ACTIVATION = "activation"
    STATUS = "status"
    ENDED = "ended"


# =============================================================================
# Shared Models
# =============================================================================

class VictoryPointsInfo(BaseModel):
    total: int = 0
    kills: int = 0
    objectives: int = 0


class PlayerInfo(BaseModel):
    """Player information for display."""
    player_id: str
    squad_name: Optional[str] = None
    vp: VictoryPointsInfo = Field(default_factory=VictoryPointsInfo)
    activations_remaining: int = 0
    activations_total: int = 0
    hand_size: int = 0
    deck_size: int = 0
    discard: list[str] = Field(default_factory=list)
    deployment_zone: Optional[str] = None
    deployed: bool = False

    model_config = {"from_attributes": True}


class FigureInfo(BaseModel):
    """One figure on the map."""
    figure_key: str
    owner: str
    top_left: str
    size: str = "1x1"
    health: list[int] = Field(default_factory=list, description="[current, max]")
    conditions: list[str] = Field(default_factory=list)
    contraband: bool = False


class CombatInfo(BaseModel):
    """The attack in progress, if any."""
    attacker: str
    target: str
    stage: str
    attack_faces: list[dict[str, int]] = Field(default_factory=list)
    defense_faces: list[dict[str, int]] = Field(default_factory=list)
    surge_remaining: int = 0
    cleave_targets: list[str] = Field(default_factory=list)


# =============================================================================
# Request Models
# =============================================================================

class CreateGameRequest(BaseModel):
    """Request to create a new game."""
    player1_id: str = Field(..., description="First player")
    player2_id: str = Field(..., description="Second player")
    random_seed: Optional[int] = Field(None, description="Seed for reproducible games")
    game_id: Optional[str] = Field(None, description="Use a specific game id")


class ActionRequest(BaseModel):
    """A structured, tagged action."""
    kind: str = Field(..., description="Action kind, e.g. move_commit")
    player_id: str = Field(..., description="Player sending the action")
    figure_key: Optional[str] = Field(None, description="Acting figure, when relevant")
    payload: dict[str, Any] = Field(default_factory=dict, description="Kind-specific parameters")


# =============================================================================
# Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error context")
    api_version: str = Field("v1", description="API version")


class GameSummary(BaseModel):
    game_id: str
    players: list[str]
    phase: GamePhaseName
    current_round: int = 0
    ended: bool = False
    winner_id: Optional[str] = None


class GameListResponse(BaseModel):
    """Response listing games."""
    games: list[GameSummary]
    count: int


class GameStateResponse(BaseModel):
    """Full game state for display."""
    game_id: str
    phase: GamePhaseName
    current_round: int = 0
    initiative_player_id: Optional[str] = None
    current_activation_turn_player_id: Optional[str] = None
    end_of_round_whose_turn: Optional[str] = None
    selected_map: Optional[str] = None
    selected_mission: Optional[str] = None
    players: list[PlayerInfo] = Field(default_factory=list)
    figures: list[FigureInfo] = Field(default_factory=list)
    active_card_key: Optional[str] = None
    card_actions: dict[str, int] = Field(default_factory=dict)
    combat: Optional[CombatInfo] = None
    pending_confirmations: list[dict[str, Any]] = Field(default_factory=list)
    pending_choice: Optional[dict[str, Any]] = None
    ended: bool = False
    winner_id: Optional[str] = None
    end_reason: Optional[str] = None
    log_tail: list[str] = Field(default_factory=list)


class ActionResponse(BaseModel):
    """Result of applying an action."""
    success: bool
    kind: str
    state_changes: list[str] = Field(default_factory=list)
    pending_choice: Optional[dict[str, Any]] = None
    pending_confirmation: Optional[dict[str, Any]] = None
    data: dict[str, Any] = Field(default_factory=dict)
    game: Optional[GameStateResponse] = None


class MovementResponse(BaseModel):
    """Destinations for a figure's current movement session."""
    figure_key: str
    mp_remaining: int
    spaces_by_cost: dict[int, list[str]] = Field(default_factory=dict)


class InteractOptionInfo(BaseModel):
    id: str
    label: str
    mission_specific: bool = False


class InteractResponse(BaseModel):
    figure_key: str
    options: list[InteractOptionInfo] = Field(default_factory=list)


class BoardResponse(BaseModel):
    game_id: str
    selected_map: Optional[str] = None
    figures: list[FigureInfo] = Field(default_factory=list)
    opened_doors: list[str] = Field(default_factory=list)
    launch_panel_state: dict[str, str] = Field(default_factory=dict)
    placed_tokens: dict[str, str] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
