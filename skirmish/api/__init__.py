"""
API Module - HTTP interface for skirmish games.

Exposes the engine via a REST API. A client:
1. Creates a game for two players
2. Posts tagged actions (setup, activations, attacks, cards)
3. Reads state, the board, movement spaces and interact options
4. Answers confirmations and choices when the engine asks

Games live in the session manager; no user accounts are involved.
"""

from .schemas import (
    # Requests
    CreateGameRequest,
    ActionRequest,
    # Responses
    ActionResponse,
    GameStateResponse,
    GameListResponse,
    MovementResponse,
    InteractResponse,
    BoardResponse,
    ErrorResponse,
    HealthResponse,
    # Enums
    ErrorCode,
)
from .service import APIService, build_service
from .app import create_app

__all__ = [
    # Requests
    "CreateGameRequest",
    "ActionRequest",
    # Responses
    "ActionResponse",
    "GameStateResponse",
    "GameListResponse",
    "MovementResponse",
    "InteractResponse",
    "BoardResponse",
    "ErrorResponse",
    "HealthResponse",
    "ErrorCode",
    # Service
    "APIService",
    "build_service",
    "create_app",
]
