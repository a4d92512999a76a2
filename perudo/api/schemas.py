"""
Pydantic Schemas for API - Request/response models for OpenAPI.

These models define the contract between game clients and the engine.
All responses include explicit types for OpenAPI schema generation.

Error Codes:
- MATCH_NOT_FOUND: Match does not exist or has ended
- COMMAND_REJECTED: The rules engine refused the command (see details)
- VERSION_CONFLICT: Another write landed first, re-read and retry
- VALIDATION_ERROR: Malformed request
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field

from ..engine_core import Command, Direction, MatchSettings


# =============================================================================
# Enums
# =============================================================================

class ErrorCode(str, Enum):
    """Structured error codes."""
    MATCH_NOT_FOUND = "MATCH_NOT_FOUND"
    COMMAND_REJECTED = "COMMAND_REJECTED"
    VERSION_CONFLICT = "VERSION_CONFLICT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class CommandKind(str, Enum):
    """Player commands accepted over the API."""
    SET_DIRECTION = "set_direction"
    BID = "bid"
    DUDO = "dudo"
    CALZA = "calza"
    LEAVE = "leave"
    DISCONNECT = "disconnect"
    RECONNECT = "reconnect"


class DirectionValue(str, Enum):
    CLOCKWISE = "clockwise"
    COUNTER_CLOCKWISE = "counter_clockwise"


# =============================================================================
# Shared Models
# =============================================================================

class SettingsPayload(BaseModel):
    """Rule options for a match."""
    starting_dice: int = Field(5, ge=1, le=6)
    seven_dice_wins: bool = True
    seven_calzas_wins: bool = True
    palifico_rules: bool = True
    ghost_mode: bool = True
    max_players: int = Field(9, ge=2, le=20)
    ghost_calza_revives: bool = Field(
        False, description="A successful ghost calza revives the ghost with one die"
    )

    def to_settings(self) -> MatchSettings:
        return MatchSettings(**self.model_dump())


class PlayerView(BaseModel):
    """Player information for display. Dice are empty unless visible to the viewer."""
    player_id: str
    dice_count: int
    current_dice: list[int] = Field(default_factory=list)
    calza_count: int = 0
    status: str
    is_ready: bool = False


class WagerView(BaseModel):
    player_id: str
    count: int
    value: int


class RoundResultView(BaseModel):
    """Outcome of the last dudo or calza, shown while dice are revealed."""
    action: str = Field(description="dudo or calza")
    actor_id: str
    bidder_id: str
    wager: WagerView
    actual_count: int
    claimed_count: int
    per_value_totals: dict[str, int] = Field(default_factory=dict)
    winner_id: Optional[str] = None
    loser_id: Optional[str] = None
    success: Optional[bool] = None
    dice_deltas: dict[str, int] = Field(default_factory=dict)


# =============================================================================
# Request Models
# =============================================================================

class CreateMatchRequest(BaseModel):
    """Request to open a new match lobby."""
    player_ids: list[str] = Field(default_factory=list, description="Initial roster in join order")
    settings: Optional[SettingsPayload] = None
    match_id: Optional[str] = Field(None, description="Explicit id, generated if omitted")


class JoinRequest(BaseModel):
    player_id: str = Field(..., min_length=1)


class ReadyRequest(BaseModel):
    player_id: str
    ready: bool = True


class StartRequest(BaseModel):
    settings: Optional[SettingsPayload] = None


class CommandRequest(BaseModel):
    """A player command against the current match state."""
    command: CommandKind
    player_id: str
    count: Optional[int] = Field(None, description="Bid only: claimed number of dice")
    value: Optional[int] = Field(None, description="Bid only: claimed face 1-6")
    direction: Optional[DirectionValue] = Field(None, description="set_direction only")

    def to_command(self) -> Command:
        if self.command == CommandKind.BID:
            return Command.bid(self.player_id, self.count, self.value)
        if self.command == CommandKind.SET_DIRECTION:
            direction = Direction(self.direction.value) if self.direction else None
            return Command.set_direction(self.player_id, direction)
        factories = {
            CommandKind.DUDO: Command.dudo,
            CommandKind.CALZA: Command.calza,
            CommandKind.LEAVE: Command.leave,
            CommandKind.DISCONNECT: Command.disconnect,
            CommandKind.RECONNECT: Command.reconnect,
        }
        return factories[self.command](self.player_id)


# =============================================================================
# Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error context")
    api_version: str = Field("v1", description="API version")


class MatchStateResponse(BaseModel):
    """Match state as seen by one viewer."""
    match_id: str
    settings: SettingsPayload
    player_order: list[str]
    players: dict[str, PlayerView]
    phase: str
    current_player_id: Optional[str] = None
    direction: DirectionValue
    round_number: int = 0
    current_wager: Optional[WagerView] = None
    is_palifico: bool = False
    palifico_player_id: Optional[str] = None
    palifico_value_lock: Optional[int] = None
    pending_round_result: Optional[RoundResultView] = None
    winner_id: Optional[str] = None
    win_method: Optional[str] = None
    version: int = 0
    api_version: str = "v1"


class CommandResponse(BaseModel):
    """Response after an accepted command."""
    success: bool
    state: MatchStateResponse
    effects: list[dict[str, Any]] = Field(default_factory=list)
    api_version: str = "v1"


class MatchListResponse(BaseModel):
    """Response listing active matches."""
    matches: list[str]
    count: int


class EndMatchResponse(BaseModel):
    """Response after ending a match."""
    success: bool
    match_id: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
