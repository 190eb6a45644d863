import pytest

from party.games.registry import GameRegistry
from party.messaging.router import MessageRouter
from party.server.app import create_app
from party.server.settings import PartyServerSettings
from party.session.manager import SessionManager
from party.tests.helpers import FAST
from party.tests.mocks import MockConnection


@pytest.fixture
def games():
    return GameRegistry.default(time_scale=FAST)


@pytest.fixture
async def manager(games):
    manager = SessionManager(games, start_delay_seconds=0, time_scale=FAST)
    yield manager
    await manager.close()


@pytest.fixture
def router(manager):
    return MessageRouter(manager)


@pytest.fixture
async def host(manager):
    connection = MockConnection("host")
    await manager.register_connection(connection)
    return connection


@pytest.fixture
async def guest(manager):
    connection = MockConnection("guest")
    await manager.register_connection(connection)
    return connection


@pytest.fixture
def app():
    settings = PartyServerSettings(game_time_scale=FAST, start_delay_seconds=0)
    return create_app(settings=settings)
