"""
FastAPI Application - REST and WebSocket API for Perudo clients.

Endpoints:
    POST   /api/v1/matches                     Open a match lobby
    GET    /api/v1/matches                     List active matches
    GET    /api/v1/matches/{id}                Get match state (?viewer_id=)
    DELETE /api/v1/matches/{id}                End match
    POST   /api/v1/matches/{id}/join           Take a seat
    PUT    /api/v1/matches/{id}/settings       Change rule options (lobby)
    POST   /api/v1/matches/{id}/ready          Toggle ready flag (lobby)
    POST   /api/v1/matches/{id}/start          Start the game
    POST   /api/v1/matches/{id}/commands       Bid, dudo, calza, direction, connection
    WS     /api/v1/matches/{id}/ws             Real-time effects and state

Timer Flow:
    The engine never sleeps. After a command leaves the match in
    ROLLING, REVEALING or ROUND_COMPLETE, the app schedules the matching
    internal command after a display delay. Timers carry the version they
    were scheduled at and are dropped if anything else wrote first.
"""

from typing import Annotated, Optional, Union
import asyncio
import json
import logging
import os

from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..engine_core import Command, MatchPhase, MatchState, RejectionCode, TransitionResult
from ..session import MatchNotFound, VersionConflict
from .service import MatchService, public_effect, public_view, timer_for
from .schemas import (
    # Request models
    CreateMatchRequest,
    JoinRequest,
    ReadyRequest,
    StartRequest,
    CommandRequest,
    SettingsPayload,
    # Response models
    CommandResponse,
    EndMatchResponse,
    ErrorResponse,
    HealthResponse,
    MatchListResponse,
    MatchStateResponse,
    # Enums
    ErrorCode,
)

# Environment configuration
PERUDO_ENV = os.getenv("PERUDO_ENV", "development")
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")
ROLL_SECONDS = float(os.getenv("PERUDO_ROLL_SECONDS", "2.0"))
REVEAL_SECONDS = float(os.getenv("PERUDO_REVEAL_SECONDS", "4.0"))
ROUND_PAUSE_SECONDS = float(os.getenv("PERUDO_ROUND_PAUSE_SECONDS", "1.0"))
AUTO_ADVANCE = os.getenv("PERUDO_AUTO_ADVANCE", "1") not in ("0", "false", "no")

PHASE_DELAYS = {
    MatchPhase.ROLLING: ROLL_SECONDS,
    MatchPhase.REVEALING: REVEAL_SECONDS,
    MatchPhase.ROUND_COMPLETE: ROUND_PAUSE_SECONDS,
}

logger = logging.getLogger(__name__)

_REJECTION_STATUS = {
    RejectionCode.PLAYER_NOT_FOUND: 404,
    RejectionCode.INVALID_BID: 400,
    RejectionCode.INVALID_COMMAND: 400,
}


def create_app(service: Optional[MatchService] = None, auto_advance: Optional[bool] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service: Optional MatchService instance (creates new if not provided)
        auto_advance: Schedule timer commands after display delays
            (defaults to PERUDO_AUTO_ADVANCE)

    Returns:
        FastAPI application instance
    """
    app = FastAPI(
        title="Perudo Engine API",
        description="""
Liar's Dice match engine - deterministic rules with real-time updates.

## Round Flow

1. `POST /start` rolls everyone's dice (`rolling`)
2. After the roll delay the starter may pick a direction and bids (`awaiting_first_bid`)
3. Players raise in turn (`bidding`) until someone calls `dudo` or `calza`
4. Dice are revealed (`revealing`), then the round settles (`round_complete`)
5. The next round rolls, or the match is `completed`

## Error Codes

| Code | Description |
|------|-------------|
| `MATCH_NOT_FOUND` | Match does not exist |
| `COMMAND_REJECTED` | Rules engine refused the command; `details.code` says why |
| `VERSION_CONFLICT` | Concurrent write, re-read and retry |
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

    match_service = service or MatchService()
    advance = AUTO_ADVANCE if auto_advance is None else auto_advance
    app.state.match_service = match_service

    # WebSocket connections
    ws_connections: dict[str, list[WebSocket]] = {}

    # =========================================================================
    # Helpers
    # =========================================================================

    def make_error_response(
        error_code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ) -> JSONResponse:
        """Create a standardized error response."""
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=message,
                error_code=error_code,
                details=details,
            ).model_dump(mode="json"),
        )

    def not_found(match_id: str) -> JSONResponse:
        return make_error_response(ErrorCode.MATCH_NOT_FOUND, f"Match {match_id} not found", 404)

    def state_response(state: MatchState, viewer_id: Optional[str] = None) -> MatchStateResponse:
        return MatchStateResponse.model_validate(public_view(state, viewer_id))

    async def broadcast_to_match(match_id: str, message: dict):
        """Broadcast a message to all WebSocket connections for a match."""
        dead_connections = []
        for ws in ws_connections.get(match_id, []):
            try:
                await ws.send_json(message)
            except (WebSocketDisconnect, RuntimeError):
                dead_connections.append(ws)
        for ws in dead_connections:
            ws_connections[match_id].remove(ws)

    async def publish(match_id: str, result: TransitionResult):
        """Broadcast a transition and schedule the next timer, if any."""
        state = result.new_state
        await broadcast_to_match(match_id, {
            "type": "state_update",
            "payload": {
                "effects": [public_effect(e) for e in result.effects],
                "state": public_view(state),
            },
        })
        if advance:
            schedule_timer(state)

    def schedule_timer(state: MatchState):
        command = timer_for(state)
        if command is None:
            return
        delay = PHASE_DELAYS[state.phase]
        asyncio.get_running_loop().create_task(
            fire_timer(state.match_id, command, state.version, delay)
        )

    async def fire_timer(match_id: str, command: Command, version: int, delay: float):
        await asyncio.sleep(delay)
        try:
            result = match_service.run_timer(match_id, command, version)
        except MatchNotFound:
            return
        if result is not None:
            await publish(match_id, result)

    async def run_command(match_id: str, command: Command, viewer_id: Optional[str]):
        """Apply a command and convert the outcome to a response."""
        try:
            result = match_service.submit(match_id, command)
        except MatchNotFound:
            return not_found(match_id)
        except VersionConflict as e:
            return make_error_response(ErrorCode.VERSION_CONFLICT, str(e), status_code=409)

        if not result.success:
            rejection = result.rejection
            return make_error_response(
                ErrorCode.COMMAND_REJECTED,
                rejection.message,
                status_code=_REJECTION_STATUS.get(rejection.code, 409),
                details=rejection.to_dict(),
            )

        await publish(match_id, result)
        return CommandResponse(
            success=True,
            state=state_response(result.new_state, viewer_id),
            effects=[
                e.to_dict() if viewer_id and getattr(e, "player_id", None) == viewer_id
                else public_effect(e)
                for e in result.effects
            ],
        )

    # =========================================================================
    # Match Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/matches",
        response_model=MatchStateResponse,
        responses={400: {"model": ErrorResponse}},
        tags=["Matches"],
        summary="Open a new match lobby",
    )
    async def create_match(request: CreateMatchRequest) -> Union[MatchStateResponse, JSONResponse]:
        """Open a lobby, optionally with an initial roster and rule options."""
        settings = request.settings.to_settings() if request.settings else None
        try:
            state = match_service.create_match(request.player_ids, settings, request.match_id)
        except ValueError as e:
            return make_error_response(ErrorCode.VALIDATION_ERROR, str(e))
        return state_response(state)

    @app.get(
        "/api/v1/matches",
        response_model=MatchListResponse,
        tags=["Matches"],
        summary="List active matches",
    )
    async def list_matches() -> MatchListResponse:
        matches = match_service.list_matches()
        return MatchListResponse(matches=matches, count=len(matches))

    @app.get(
        "/api/v1/matches/{match_id}",
        response_model=MatchStateResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Matches"],
        summary="Get match state",
    )
    async def get_match(
        match_id: str,
        viewer_id: Annotated[Optional[str], Query(description="Player whose dice to include")] = None,
    ) -> Union[MatchStateResponse, JSONResponse]:
        """Current state. Other players' dice are hidden until the reveal."""
        try:
            state = match_service.get_state(match_id)
        except MatchNotFound:
            return not_found(match_id)
        return state_response(state, viewer_id)

    @app.delete(
        "/api/v1/matches/{match_id}",
        response_model=EndMatchResponse,
        tags=["Matches"],
        summary="End a match",
    )
    async def end_match(
        match_id: str,
        reason: Annotated[str, Query(description="Reason for ending")] = "user_ended",
    ) -> EndMatchResponse:
        success = match_service.end_match(match_id, reason)
        return EndMatchResponse(success=success, match_id=match_id)

    # =========================================================================
    # Lobby Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/matches/{match_id}/join",
        response_model=CommandResponse,
        responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
        tags=["Lobby"],
        summary="Take a seat",
    )
    async def join_match(match_id: str, request: JoinRequest):
        return await run_command(match_id, Command.join(request.player_id), request.player_id)

    @app.put(
        "/api/v1/matches/{match_id}/settings",
        response_model=CommandResponse,
        responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
        tags=["Lobby"],
        summary="Change rule options",
    )
    async def update_settings(match_id: str, request: SettingsPayload):
        return await run_command(match_id, Command.update_settings(request.to_settings()), None)

    @app.post(
        "/api/v1/matches/{match_id}/ready",
        response_model=CommandResponse,
        responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
        tags=["Lobby"],
        summary="Set ready flag",
    )
    async def set_ready(match_id: str, request: ReadyRequest):
        return await run_command(
            match_id, Command.set_ready(request.player_id, request.ready), request.player_id,
        )

    @app.post(
        "/api/v1/matches/{match_id}/start",
        response_model=CommandResponse,
        responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
        tags=["Lobby"],
        summary="Start the game",
    )
    async def start_match(match_id: str, request: Optional[StartRequest] = None):
        settings = request.settings.to_settings() if request and request.settings else None
        return await run_command(match_id, Command.start_game(settings), None)

    # =========================================================================
    # Game Loop
    # =========================================================================

    @app.post(
        "/api/v1/matches/{match_id}/commands",
        response_model=CommandResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Malformed bid or command"},
            404: {"model": ErrorResponse, "description": "Match or player not found"},
            409: {"model": ErrorResponse, "description": "Rejected by the rules or a concurrent write"},
        },
        tags=["Game Loop"],
        summary="Submit a player command",
    )
    async def submit_command(match_id: str, request: CommandRequest):
        """
        Submit a bid, dudo, calza, direction choice or connection change.

        Rejections carry the engine's reason in `details`, for example
        `{"code": "INVALID_BID", "reason": "must strictly increase"}`.
        """
        return await run_command(match_id, request.to_command(), request.player_id)

    # =========================================================================
    # WebSocket Endpoint
    # =========================================================================

    @app.websocket("/api/v1/matches/{match_id}/ws")
    async def websocket_endpoint(websocket: WebSocket, match_id: str):
        """
        WebSocket for real-time updates.

        Messages from server:
        - state_update: effects of a transition plus the public state
        - error: Error occurred

        Messages from client:
        - ping: Keep-alive
        """
        await websocket.accept()
        ws_connections.setdefault(match_id, []).append(websocket)

        try:
            try:
                state = match_service.get_state(match_id)
                await websocket.send_json({
                    "type": "state_update",
                    "payload": {"effects": [], "state": public_view(state)},
                })
            except MatchNotFound:
                await websocket.send_json({
                    "type": "error",
                    "payload": {"message": f"Match {match_id} not found"},
                })

            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                    if message.get("type") == "ping":
                        await websocket.send_json({"type": "pong"})
                except json.JSONDecodeError:
                    await websocket.send_json({
                        "type": "error",
                        "payload": {"message": "Invalid JSON"},
                    })

        except WebSocketDisconnect:
            logger.debug("websocket for match %s closed", match_id)
        finally:
            if websocket in ws_connections.get(match_id, []):
                ws_connections[match_id].remove(websocket)

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            service="perudo-engine",
            version=__version__,
        )

    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Perudo Engine API",
            "version": __version__,
            "env": PERUDO_ENV,
            "docs": "/api/docs",
            "health": "/health",
        }

    return app


# For running directly: uvicorn perudo.api.app:app
app = create_app()
