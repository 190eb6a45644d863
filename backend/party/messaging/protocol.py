"""Connection abstraction shared by WebSocket clients, bots, and tests."""

from abc import ABC, abstractmethod
from typing import Any

from party.messaging.encoder import decode, encode


class ConnectionProtocol(ABC):
    """
    Abstract interface for a client connection.

    Game modules and the session layer only ever see this interface, so a
    bot's null connection is indistinguishable from a real socket.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Ephemeral handle for this connection; a reconnect gets a new one."""
        ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None: ...

    @abstractmethod
    async def receive_bytes(self) -> bytes: ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def send_message(self, data: dict[str, Any]) -> None:
        """Send a message to the client using MessagePack encoding."""
        await self.send_bytes(encode(data))

    async def receive_message(self) -> dict[str, Any]:
        raw = await self.receive_bytes()
        return decode(raw)
