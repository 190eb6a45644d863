"""Errors raised by session operations and turned into session_error replies."""

from party.messaging.types import ERROR_KINDS, ErrorKind, SessionErrorCode


class SessionError(Exception):
    """A lifecycle request that cannot be honoured.

    Carries the wire error code; the kind is derived from it.
    """

    default_code: SessionErrorCode = SessionErrorCode.INVALID_MESSAGE
    default_message: str = "Invalid request"

    def __init__(self, message: str | None = None, *, code: SessionErrorCode | None = None) -> None:
        self.code = code or self.default_code
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def kind(self) -> ErrorKind:
        return ERROR_KINDS[self.code]


class InvalidNameError(SessionError):
    default_code = SessionErrorCode.INVALID_NAME
    default_message = "Name must be 1-20 characters"


class InvalidCodeError(SessionError):
    default_code = SessionErrorCode.INVALID_CODE
    default_message = "Room code must be 4 characters"


class RoomNotFoundError(SessionError):
    default_code = SessionErrorCode.ROOM_NOT_FOUND
    default_message = "Room not found"


class NotInRoomError(SessionError):
    default_code = SessionErrorCode.NOT_IN_ROOM
    default_message = "You are not in a room"


class AlreadyInRoomError(SessionError):
    default_code = SessionErrorCode.ALREADY_IN_ROOM
    default_message = "You must leave your current room first"


class RoomFullError(SessionError):
    default_code = SessionErrorCode.ROOM_FULL
    default_message = "Room is full"


class NameTakenError(SessionError):
    default_code = SessionErrorCode.NAME_TAKEN
    default_message = "Name already taken"


class GameInProgressError(SessionError):
    default_code = SessionErrorCode.GAME_IN_PROGRESS
    default_message = "Game in progress"


class NotHostError(SessionError):
    default_code = SessionErrorCode.NOT_HOST
    default_message = "Only the host can do that"


class LobbyOnlyError(SessionError):
    default_code = SessionErrorCode.LOBBY_ONLY
    default_message = "Only allowed in the lobby"


class BotNotFoundError(SessionError):
    default_code = SessionErrorCode.BOT_NOT_FOUND
    default_message = "Bot not found"


class UnknownGameError(SessionError):
    default_code = SessionErrorCode.UNKNOWN_GAME
    default_message = "Game not found"


class NotEnoughPlayersError(SessionError):
    default_code = SessionErrorCode.NOT_ENOUGH_PLAYERS
    default_message = "Need at least 2 players"
