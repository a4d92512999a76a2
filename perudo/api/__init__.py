"""
API Module - Client interface.

Exposes the engine via REST and WebSocket for game clients.
A client:
1. Opens or joins a match lobby
2. Starts the game
3. Submits bids, dudo and calza calls on its turn
4. Receives effects and state updates over the WebSocket

The engine itself stays transport-agnostic; this layer owns timers.
"""

from .schemas import (
    # Requests
    CreateMatchRequest,
    JoinRequest,
    ReadyRequest,
    StartRequest,
    CommandRequest,
    SettingsPayload,
    # Responses
    CommandResponse,
    MatchStateResponse,
    ErrorResponse,
    # Enums
    ErrorCode,
    CommandKind,
)
from .service import MatchService, public_view, public_effect, timer_for
from .app import create_app

__all__ = [
    # Requests
    "CreateMatchRequest",
    "JoinRequest",
    "ReadyRequest",
    "StartRequest",
    "CommandRequest",
    "SettingsPayload",
    # Responses
    "CommandResponse",
    "MatchStateResponse",
    "ErrorResponse",
    # Enums
    "ErrorCode",
    "CommandKind",
    # Service
    "MatchService",
    "public_view",
    "public_effect",
    "timer_for",
    "create_app",
]
