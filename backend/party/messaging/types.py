from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from party.session.models import Difficulty, PlayerInfo, RoomState, ScoreEntry

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F


class ClientMessageType(StrEnum):
    CREATE_ROOM = "create_room"
    JOIN_ROOM = "join_room"
    REJOIN_ROOM = "rejoin_room"
    LEAVE_ROOM = "leave_room"
    ADD_BOT = "add_bot"
    REMOVE_BOT = "remove_bot"
    START_GAME = "start_game"
    RETURN_TO_LOBBY = "return_to_lobby"
    GAME_EVENT = "game_event"
    PING = "ping"


class SessionMessageType(StrEnum):
    GAMES_LIST = "games_list"
    ACK = "ack"
    ERROR = "session_error"
    PLAYER_JOINED = "player_joined"
    PLAYER_LEFT = "player_left"
    PLAYER_AWAY = "player_away"
    PLAYER_REJOINED = "player_rejoined"
    LOBBY_ENTERED = "lobby_entered"
    GAME_STARTED = "game_started"
    GAME_ENDED = "game_ended"
    GAME_STATE = "game_state"
    GAME_TICK = "game_tick"
    PONG = "pong"


class ErrorKind(StrEnum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    STATE_MISMATCH = "state_mismatch"


class SessionErrorCode(StrEnum):
    INVALID_NAME = "invalid_name"
    INVALID_CODE = "invalid_code"
    INVALID_MESSAGE = "invalid_message"
    ROOM_NOT_FOUND = "room_not_found"
    NOT_IN_ROOM = "not_in_room"
    ALREADY_IN_ROOM = "already_in_room"
    BOT_NOT_FOUND = "bot_not_found"
    UNKNOWN_GAME = "unknown_game"
    NAME_TAKEN = "name_taken"
    ROOM_FULL = "room_full"
    GAME_IN_PROGRESS = "game_in_progress"
    NOT_ENOUGH_PLAYERS = "not_enough_players"
    LOBBY_ONLY = "lobby_only"
    NOT_HOST = "not_host"
    RATE_LIMITED = "rate_limited"


ERROR_KINDS: dict[SessionErrorCode, ErrorKind] = {
    SessionErrorCode.INVALID_NAME: ErrorKind.INVALID_INPUT,
    SessionErrorCode.INVALID_CODE: ErrorKind.INVALID_INPUT,
    SessionErrorCode.INVALID_MESSAGE: ErrorKind.INVALID_INPUT,
    SessionErrorCode.ROOM_NOT_FOUND: ErrorKind.NOT_FOUND,
    SessionErrorCode.NOT_IN_ROOM: ErrorKind.NOT_FOUND,
    SessionErrorCode.BOT_NOT_FOUND: ErrorKind.NOT_FOUND,
    SessionErrorCode.UNKNOWN_GAME: ErrorKind.NOT_FOUND,
    SessionErrorCode.ALREADY_IN_ROOM: ErrorKind.CONFLICT,
    SessionErrorCode.NAME_TAKEN: ErrorKind.CONFLICT,
    SessionErrorCode.ROOM_FULL: ErrorKind.CONFLICT,
    SessionErrorCode.GAME_IN_PROGRESS: ErrorKind.CONFLICT,
    SessionErrorCode.NOT_ENOUGH_PLAYERS: ErrorKind.CONFLICT,
    SessionErrorCode.LOBBY_ONLY: ErrorKind.STATE_MISMATCH,
    SessionErrorCode.NOT_HOST: ErrorKind.UNAUTHORIZED,
    SessionErrorCode.RATE_LIMITED: ErrorKind.CONFLICT,
}


def _reject_control_chars(v: str) -> str:
    if any(ord(c) < _SPACE_ORD or ord(c) == _DEL_ORD for c in v):
        raise ValueError("must not contain control characters")
    return v


# --- Client -> server ---


class _Request(BaseModel):
    """Base for request/response messages; rid is echoed back in the reply."""

    rid: int | None = Field(default=None, ge=0)


class CreateRoomMessage(_Request):
    type: Literal[ClientMessageType.CREATE_ROOM] = ClientMessageType.CREATE_ROOM
    name: str = Field(max_length=200)

    _check_name = field_validator("name")(_reject_control_chars)


class JoinRoomMessage(_Request):
    type: Literal[ClientMessageType.JOIN_ROOM] = ClientMessageType.JOIN_ROOM
    code: str = Field(max_length=16)
    name: str = Field(max_length=200)

    _check_name = field_validator("name")(_reject_control_chars)


class RejoinRoomMessage(_Request):
    type: Literal[ClientMessageType.REJOIN_ROOM] = ClientMessageType.REJOIN_ROOM
    code: str = Field(max_length=16)
    name: str = Field(max_length=200)

    _check_name = field_validator("name")(_reject_control_chars)


class LeaveRoomMessage(_Request):
    type: Literal[ClientMessageType.LEAVE_ROOM] = ClientMessageType.LEAVE_ROOM


class AddBotMessage(_Request):
    type: Literal[ClientMessageType.ADD_BOT] = ClientMessageType.ADD_BOT
    difficulty: Difficulty | None = None


class RemoveBotMessage(_Request):
    type: Literal[ClientMessageType.REMOVE_BOT] = ClientMessageType.REMOVE_BOT
    bot_id: str = Field(min_length=1, max_length=100)


class StartGameMessage(_Request):
    type: Literal[ClientMessageType.START_GAME] = ClientMessageType.START_GAME
    game_id: str = Field(min_length=1, max_length=50)


class ReturnToLobbyMessage(_Request):
    type: Literal[ClientMessageType.RETURN_TO_LOBBY] = ClientMessageType.RETURN_TO_LOBBY


class GameEventMessage(BaseModel):
    type: Literal[ClientMessageType.GAME_EVENT] = ClientMessageType.GAME_EVENT
    event: str = Field(min_length=1, max_length=50)
    payload: dict[str, Any] = Field(default_factory=dict)


class PingMessage(BaseModel):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


ClientMessage = Annotated[
    CreateRoomMessage
    | JoinRoomMessage
    | RejoinRoomMessage
    | LeaveRoomMessage
    | AddBotMessage
    | RemoveBotMessage
    | StartGameMessage
    | ReturnToLobbyMessage
    | GameEventMessage
    | PingMessage,
    Field(discriminator="type"),
]

_client_message_adapter = TypeAdapter(ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw dict into a typed ClientMessage."""
    return _client_message_adapter.validate_python(data)


# --- Server -> client ---


class GameInfoEntry(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    min_players: int
    max_players: int


class GamesListMessage(BaseModel):
    type: Literal[SessionMessageType.GAMES_LIST] = SessionMessageType.GAMES_LIST
    games: list[GameInfoEntry]


class AckMessage(BaseModel):
    """Success reply to a request; extra fields carry the request-specific payload."""

    model_config = ConfigDict(extra="allow")

    type: Literal[SessionMessageType.ACK] = SessionMessageType.ACK
    rid: int | None = None
    ok: bool = True


class RoomAck(AckMessage):
    code: str
    players: list[PlayerInfo]


class RejoinAck(RoomAck):
    rejoined: bool
    is_host: bool
    room_state: RoomState
    game_id: str | None = None
    game_name: str | None = None
    game: dict[str, Any] | None = None


class ErrorMessage(BaseModel):
    type: Literal[SessionMessageType.ERROR] = SessionMessageType.ERROR
    code: SessionErrorCode
    kind: ErrorKind
    message: str
    rid: int | None = None


class PlayerJoinedMessage(BaseModel):
    type: Literal[SessionMessageType.PLAYER_JOINED] = SessionMessageType.PLAYER_JOINED
    players: list[PlayerInfo]
    player_name: str


class PlayerLeftMessage(BaseModel):
    type: Literal[SessionMessageType.PLAYER_LEFT] = SessionMessageType.PLAYER_LEFT
    players: list[PlayerInfo]
    player_name: str | None = None


class PlayerAwayMessage(BaseModel):
    """Broadcast when a player's connection drops and the grace period starts."""

    type: Literal[SessionMessageType.PLAYER_AWAY] = SessionMessageType.PLAYER_AWAY
    players: list[PlayerInfo]
    player_name: str


class PlayerRejoinedMessage(BaseModel):
    type: Literal[SessionMessageType.PLAYER_REJOINED] = SessionMessageType.PLAYER_REJOINED
    players: list[PlayerInfo]
    player_name: str


class LobbyEnteredMessage(BaseModel):
    type: Literal[SessionMessageType.LOBBY_ENTERED] = SessionMessageType.LOBBY_ENTERED
    players: list[PlayerInfo]
    message: str | None = None


class GameStartedMessage(BaseModel):
    type: Literal[SessionMessageType.GAME_STARTED] = SessionMessageType.GAME_STARTED
    game_id: str
    game_name: str
    players: list[PlayerInfo]


class GameEndedMessage(BaseModel):
    type: Literal[SessionMessageType.GAME_ENDED] = SessionMessageType.GAME_ENDED
    scores: list[ScoreEntry]


class GameStateMessage(BaseModel):
    """Authoritative phase update; game modules add their own fields."""

    model_config = ConfigDict(extra="allow")

    type: Literal[SessionMessageType.GAME_STATE] = SessionMessageType.GAME_STATE
    phase: str


class GameTickMessage(BaseModel):
    """High-frequency, non-authoritative update (countdowns, live counts, flashes)."""

    model_config = ConfigDict(extra="allow")

    type: Literal[SessionMessageType.GAME_TICK] = SessionMessageType.GAME_TICK


class PongMessage(BaseModel):
    type: Literal[SessionMessageType.PONG] = SessionMessageType.PONG
