"""
FastAPI Application - REST API for skirmish games.

Endpoints:
    POST   /api/v1/games                              Create a game
    GET    /api/v1/games                              List games
    GET    /api/v1/games/{id}                         Game state
    DELETE /api/v1/games/{id}                         Kill the game
    POST   /api/v1/games/{id}/actions                 Apply an action
    GET    /api/v1/games/{id}/movement/{figure_key}   Spaces by MP cost
    GET    /api/v1/games/{id}/interact/{figure_key}   Interact options
    GET    /api/v1/games/{id}/board                   Board snapshot
    GET    /api/v1/health                             Health check

Action Flow:
    1. The client posts {kind, player_id, figure_key, payload}
    2. The request is parsed once into a typed Action
    3. The game's session applies it under its lock and saves
    4. The response carries state changes, prompts and the new state

All responses are JSON with explicit Pydantic schemas.
"""

from typing import Annotated, Optional, Union
import logging
import os

from .. import __version__

# Environment configuration
SKIRMISH_ENV = os.getenv("SKIRMISH_ENV", "development")
SKIRMISH_DATA_DIR = os.getenv("SKIRMISH_DATA_DIR", None)
SKIRMISH_STORE_PATH = os.getenv("SKIRMISH_STORE_PATH", None)
SKIRMISH_CONFIRM_TTL = float(os.getenv("SKIRMISH_CONFIRM_TTL", "300"))
SKIRMISH_LOG_LEVEL = os.getenv("SKIRMISH_LOG_LEVEL", "INFO")
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")

logger = logging.getLogger(__name__)

# HTTP status per error code; anything missing is a 400
STATUS_BY_ERROR = {
    "GAME_NOT_FOUND": 404,
    "UNKNOWN_FIGURE": 404,
    "NOT_YOUR_TURN": 409,
    "CONFIRMATION_EXPIRED": 409,
    "PERSISTENCE_ERROR": 500,
    "HANDLER_ERROR": 500,
    "INTERNAL_ERROR": 500,
}


def create_app(service=None):
    """
    Create the FastAPI application.

    Args:
        service: Optional APIService instance (built from the environment if not provided)

    Returns:
        FastAPI application instance
    """
    try:
        from fastapi import FastAPI, Query
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import JSONResponse
    except ImportError:
        raise ImportError(
            "FastAPI not installed. Install with: pip install fastapi uvicorn"
        )

    from .service import build_service
    from .schemas import (
        # Request models
        CreateGameRequest,
        ActionRequest,
        # Response models
        ActionResponse,
        BoardResponse,
        ErrorResponse,
        GameListResponse,
        GameStateResponse,
        HealthResponse,
        InteractResponse,
        MovementResponse,
        # Enums
        ErrorCode,
    )

    logging.basicConfig(
        level=getattr(logging, SKIRMISH_LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Skirmish Engine API",
        description="""
Two-player tactical skirmish rules engine.

## Action Flow

Every mutation is a `POST /actions` with a tagged action:

1. **Applied**: the response has `success=true`, the state changes and the new game.
2. **Needs a choice**: `pending_choice` is set; answer with `resolve_cc_choice`.
3. **Needs confirmation**: `pending_confirmation` is set; answer with
   `confirm_cc_play`, `confirm_squad` or `cancel_cc_play` before it expires.

## Error Codes

| Code | Description |
|------|-------------|
| `INVALID_ACTION` | Action is not legal in the current state |
| `NOT_YOUR_TURN` | Action was sent by the wrong player |
| `INSUFFICIENT_RESOURCES` | Not enough actions, MP, surges or rerolls |
| `CONFIRMATION_EXPIRED` | The confirmation timed out |
| `GAME_NOT_FOUND` | Game does not exist |
| `UNKNOWN_MAP` / `UNKNOWN_CARD` | Rule data is missing |
| `SESSION_MISSING` | No attack, movement or choice in progress |
| `PERSISTENCE_ERROR` | Action applied but the game could not be saved |
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Service instance
    api_service = service or build_service(
        data_dir=SKIRMISH_DATA_DIR,
        store_path=SKIRMISH_STORE_PATH,
        confirm_ttl=SKIRMISH_CONFIRM_TTL,
    )
    logger.info("Skirmish API ready (env=%s)", SKIRMISH_ENV)

    # =========================================================================
    # Error helpers
    # =========================================================================

    def make_error_response(
        error_code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> JSONResponse:
        """Create a standardized error response."""
        if status_code is None:
            status_code = STATUS_BY_ERROR.get(error_code.value, 400)
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=message,
                error_code=error_code,
                details=details,
            ).model_dump(mode="json"),
        )

    def as_response(response):
        """Pass models through; turn service ErrorResponse objects into JSON errors."""
        if isinstance(response, ErrorResponse):
            return make_error_response(response.error_code, response.error, details=response.details)
        return response

    # =========================================================================
    # Game Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/games",
        response_model=GameStateResponse,
        status_code=201,
        responses={400: {"model": ErrorResponse, "description": "Invalid players or duplicate id"}},
        tags=["Games"],
        summary="Create a new game",
    )
    async def create_game(request: CreateGameRequest) -> Union[GameStateResponse, JSONResponse]:
        """
        Create a new game between two players.

        Pass `random_seed` to make dice and draws reproducible.
        """
        return as_response(api_service.create_game(request))

    @app.get(
        "/api/v1/games",
        response_model=GameListResponse,
        tags=["Games"],
        summary="List games",
    )
    async def list_games() -> GameListResponse:
        """List every game the server holds, ended ones included."""
        return api_service.list_games()

    @app.get(
        "/api/v1/games/{game_id}",
        response_model=GameStateResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Games"],
        summary="Get game state",
    )
    async def get_game(game_id: str) -> Union[GameStateResponse, JSONResponse]:
        """Get the current state of a game."""
        return as_response(api_service.get_game(game_id))

    @app.delete(
        "/api/v1/games/{game_id}",
        response_model=ActionResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Games"],
        summary="Kill a game",
    )
    async def kill_game(
        game_id: str,
        player_id: Annotated[str, Query(description="Player ending the game")],
    ) -> Union[ActionResponse, JSONResponse]:
        """End a game with no winner. The game stays readable."""
        return as_response(api_service.kill_game(game_id, player_id))

    # =========================================================================
    # Action Endpoint
    # =========================================================================

    @app.post(
        "/api/v1/games/{game_id}/actions",
        response_model=ActionResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Action rejected"},
            404: {"model": ErrorResponse, "description": "Game not found"},
            409: {"model": ErrorResponse, "description": "Wrong player or expired confirmation"},
            500: {"model": ErrorResponse, "description": "Applied but not saved"},
        },
        tags=["Actions"],
        summary="Apply an action",
    )
    async def apply_action(game_id: str, request: ActionRequest) -> Union[ActionResponse, JSONResponse]:
        """
        Apply one tagged action to the game.

        Rejected actions leave the game unchanged.
        """
        return as_response(api_service.apply_action(game_id, request))

    # =========================================================================
    # Read-only Views
    # =========================================================================

    @app.get(
        "/api/v1/games/{game_id}/movement/{figure_key}",
        response_model=MovementResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Views"],
        summary="Reachable spaces by MP cost",
    )
    async def get_movement(
        game_id: str,
        figure_key: str,
        cost: Annotated[Optional[int], Query(description="Only spaces at exactly this cost", ge=0)] = None,
    ) -> Union[MovementResponse, JSONResponse]:
        """
        Spaces a figure can reach, grouped by minimal MP cost.

        Reads the open movement session when there is one; otherwise
        previews the figure's speed.
        """
        return as_response(api_service.get_movement(game_id, figure_key, cost))

    @app.get(
        "/api/v1/games/{game_id}/interact/{figure_key}",
        response_model=InteractResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Views"],
        summary="Legal interact options",
    )
    async def get_interact_options(game_id: str, figure_key: str) -> Union[InteractResponse, JSONResponse]:
        """Doors, terminals and mission tokens the figure can interact with."""
        return as_response(api_service.get_interact_options(game_id, figure_key))

    @app.get(
        "/api/v1/games/{game_id}/board",
        response_model=BoardResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Views"],
        summary="Board snapshot",
    )
    async def get_board(game_id: str) -> Union[BoardResponse, JSONResponse]:
        return as_response(api_service.get_board(game_id))

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/api/v1/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            service="skirmish-engine",
            version=__version__,
        )

    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Skirmish Engine API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/api/v1/health",
        }

    return app


# For running directly: uvicorn skirmish.api.app:app
app = None
try:
    app = create_app()
except ImportError:
    # FastAPI not installed
    pass
