"""End-to-end session flows driven through SessionManager with in-memory connections."""

import asyncio

import pytest

from party.session.errors import (
    GameInProgressError,
    NotEnoughPlayersError,
    NotHostError,
    NotInRoomError,
    UnknownGameError,
)
from party.session.manager import NOT_ENOUGH_PLAYERS_MESSAGE, SessionManager
from party.session.models import Difficulty, RoomState
from party.tests.helpers import wait_for
from party.tests.mocks import MockConnection


async def connect(manager, connection_id):
    connection = MockConnection(connection_id)
    await manager.register_connection(connection)
    return connection


@pytest.fixture
async def slow_manager():
    """Real-time game pacing, so a game stays in its first phase for the whole test."""
    manager = SessionManager(start_delay_seconds=0)
    yield manager
    await manager.close()


class TestConnections:
    async def test_games_list_on_connect(self, host):
        games = host.last("games_list")["games"]
        assert len(games) == 8
        assert {"id", "name", "description", "icon", "min_players", "max_players"} == set(games[0])

    async def test_ping(self, manager, host):
        await manager.handle_ping(host)
        assert host.last()["type"] == "pong"

    async def test_status(self, manager, host, guest):
        room = await manager.create_room(host, "Ava")
        await manager.join_room(guest, room.code, "Ben")
        assert manager.status() == {"rooms": 1, "playing": 0, "players": 2, "connections": 2, "pending_grace": 0}


class TestLobby:
    async def test_create_and_join(self, manager, host, guest):
        room = await manager.create_room(host, "Ava", rid=1)
        ack = host.last("ack")
        assert ack["rid"] == 1
        assert ack["code"] == room.code
        assert ack["players"][0]["is_host"]

        await manager.join_room(guest, room.code.lower(), "Ben", rid=7)

        assert guest.last("ack")["rid"] == 7
        joined = host.last("player_joined")
        assert joined["player_name"] == "Ben"
        assert [p["name"] for p in joined["players"]] == ["Ava", "Ben"]
        assert guest.of_type("player_joined")

    async def test_add_and_remove_bot(self, manager, host, guest):
        room = await manager.create_room(host, "Ava")
        await manager.join_room(guest, room.code, "Ben")

        bot_id = await manager.add_bot(host, Difficulty.EASY, rid=3)

        assert host.last("ack") == {"type": "ack", "rid": 3, "ok": True, "bot_id": bot_id}
        bot = guest.last("player_joined")["players"][-1]
        assert bot["is_bot"]
        assert bot["difficulty"] == "easy"
        assert bot["badge"]

        with pytest.raises(NotHostError):
            await manager.remove_bot(guest, bot_id)
        await manager.remove_bot(host, bot_id)
        assert bot_id not in room.players
        assert guest.last("player_left")["player_name"] == bot["name"]

    async def test_leave_room(self, manager, host, guest):
        room = await manager.create_room(host, "Ava")
        await manager.join_room(guest, room.code, "Ben")

        await manager.leave_room(host, rid=9)

        assert host.last("ack")["rid"] == 9
        left = guest.last("player_left")
        assert left["player_name"] == "Ava"
        assert left["players"][0]["is_host"]
        assert room.host_handle == "guest"
        with pytest.raises(NotInRoomError):
            await manager.leave_room(host)

    async def test_last_human_leaving_closes_room(self, manager, host):
        room = await manager.create_room(host, "Ava")
        await manager.add_bot(host)
        await manager.leave_room(host)
        assert room.code not in manager.registry
        assert manager.hub.members(room.code) == []


class TestStartGame:
    async def test_start_requirements(self, manager, host, guest):
        room = await manager.create_room(host, "Ava")
        with pytest.raises(NotEnoughPlayersError):
            await manager.start_game(host, "reaction-race")

        await manager.join_room(guest, room.code, "Ben")
        with pytest.raises(NotHostError):
            await manager.start_game(guest, "reaction-race")
        with pytest.raises(UnknownGameError):
            await manager.start_game(host, "chess")

        await manager.start_game(host, "reaction-race")
        with pytest.raises(GameInProgressError):
            await manager.start_game(host, "reaction-race")

    async def test_full_game_then_back_to_lobby(self, manager, host, guest):
        room = await manager.create_room(host, "Ava")
        await manager.join_room(guest, room.code, "Ben")
        await manager.add_bot(host, Difficulty.HARD)

        await manager.start_game(host, "reaction-race", rid=4)

        assert host.last("ack") == {"type": "ack", "rid": 4, "ok": True, "game_id": "reaction-race"}
        started = guest.last("game_started")
        assert started["game_name"] == "Reaction Race"
        assert room.state == RoomState.PLAYING

        await wait_for(lambda: guest.of_type("game_ended"), timeout=10)
        await asyncio.sleep(0.02)

        assert len(guest.of_type("game_ended")) == 1
        phases = [m["phase"] for m in guest.of_type("game_state")]
        assert phases[0] == "ready"
        assert phases[-1] == "finished"
        scores = guest.last("game_ended")["scores"]
        assert [s["score"] for s in scores] == sorted((s["score"] for s in scores), reverse=True)
        assert room.state == RoomState.RESULTS

        await manager.return_to_lobby(host)
        assert guest.last("lobby_entered")["message"] is None
        assert room.state == RoomState.LOBBY
        assert room.game is None
        assert room.game_state is None

    async def test_scores_reset_between_games(self, manager, host, guest):
        room = await manager.create_room(host, "Ava")
        await manager.join_room(guest, room.code, "Ben")
        room.players["guest"].score = 500

        await manager.start_game(host, "tap-frenzy")

        assert room.players["guest"].score == 0

    async def test_return_to_lobby_clears_scores(self, manager, host, guest):
        room = await manager.create_room(host, "Ava")
        await manager.join_room(guest, room.code, "Ben")
        await manager.start_game(host, "tap-frenzy")
        room.players["guest"].score = 300

        await manager.return_to_lobby(host)

        assert room.players["guest"].score == 0
        assert all(p["score"] == 0 for p in guest.last("lobby_entered")["players"])

    async def test_game_events_outside_a_game_are_dropped(self, manager, host, guest):
        room = await manager.create_room(host, "Ava")
        await manager.join_room(guest, room.code, "Ben")
        stranger = await connect(manager, "stranger")
        before = len(host.sent_messages)

        await manager.handle_game_event(guest, "tap", {})
        await manager.handle_game_event(stranger, "tap", {})

        assert len(host.sent_messages) == before
        assert not stranger.of_type("session_error")


class TestReconnect:
    async def test_disconnect_and_rejoin_in_lobby(self, manager, host, guest):
        room = await manager.create_room(host, "Ava")
        await manager.join_room(guest, room.code, "Ben")

        await manager.disconnect(guest)

        away = host.last("player_away")
        assert away["player_name"] == "Ben"
        assert away["players"][1]["disconnected"]
        assert manager.status()["pending_grace"] == 1

        returning = await connect(manager, "guest-2")
        await manager.rejoin_room(returning, room.code, "Ben", rid=2)

        ack = returning.last("ack")
        assert ack["rejoined"]
        assert ack["rid"] == 2
        assert ack["room_state"] == "lobby"
        assert ack["game"] is None
        assert host.last("player_rejoined")["player_name"] == "Ben"
        assert not returning.of_type("player_rejoined")
        assert manager.hub.members(room.code) == ["host", "guest-2"]
        assert manager.status()["pending_grace"] == 0

    async def test_rejoin_mid_game_gets_snapshot(self, slow_manager):
        manager = slow_manager
        host = await connect(manager, "host")
        guest = await connect(manager, "guest")
        room = await manager.create_room(host, "Ava")
        await manager.join_room(guest, room.code, "Ben")
        await manager.start_game(host, "trivia-blitz")
        await wait_for(lambda: room.game_state is not None)
        await manager.handle_game_event(guest, "answer", {"choice": 2})
        room.players["guest"].score = 75

        await manager.disconnect(guest)
        returning = await connect(manager, "guest-2")
        await manager.rejoin_room(returning, room.code, "ben")

        ack = returning.last("ack")
        assert ack["room_state"] == "playing"
        assert ack["game_id"] == "trivia-blitz"
        assert ack["game_name"] == "Trivia Blitz"
        assert ack["game"]["phase"] == "question"
        assert ack["game"]["answered"]
        assert ack["game"]["choice"] == 2
        assert room.players["guest-2"].score == 75
        assert "guest-2" in room.game_state.answers

    async def test_host_rejoin_keeps_host(self, manager, host, guest):
        room = await manager.create_room(host, "Ava")
        await manager.join_room(guest, room.code, "Ben")
        await manager.disconnect(host)
        assert room.host_handle == "host"

        returning = await connect(manager, "host-2")
        await manager.rejoin_room(returning, room.code, "Ava")

        assert returning.last("ack")["is_host"]
        await manager.start_game(returning, "tap-frenzy")

    async def test_grace_expiry_broadcasts_player_left(self, games):
        manager = SessionManager(games, grace_period_seconds=0.01, start_delay_seconds=0)
        host = await connect(manager, "host")
        guest = await connect(manager, "guest")
        room = await manager.create_room(host, "Ava")
        await manager.join_room(guest, room.code, "Ben")

        await manager.disconnect(guest)
        await wait_for(lambda: host.of_type("player_left"))

        assert host.last("player_left")["player_name"] == "Ben"
        assert list(room.players) == ["host"]
        await manager.close()

    async def test_game_ends_when_no_connected_human_remains(self):
        manager = SessionManager(grace_period_seconds=0.2, start_delay_seconds=0)
        host = await connect(manager, "host")
        guest = await connect(manager, "guest")
        room = await manager.create_room(host, "Ava")
        await manager.join_room(guest, room.code, "Ben")
        await manager.add_bot(host, Difficulty.HARD)
        await manager.start_game(host, "color-clash")

        await manager.disconnect(host)
        await asyncio.sleep(0.1)
        await manager.disconnect(guest)
        await wait_for(lambda: "host" not in room.players)

        assert room.state == RoomState.LOBBY
        assert room.game is None
        assert room.bot_timers is None
        assert room.host_handle == "guest"

        returning = await connect(manager, "guest-2")
        await manager.rejoin_room(returning, room.code, "Ben")
        ack = returning.last("ack")
        assert ack["rejoined"]
        assert ack["is_host"]
        assert ack["room_state"] == "lobby"
        await manager.close()

    async def test_abort_message_reaches_remaining_players(self, manager, host, guest):
        room = await manager.create_room(host, "Ava")
        await manager.join_room(guest, room.code, "Ben")
        await manager.start_game(host, "tap-frenzy")
        room.players["guest"].disconnected = True

        await manager.leave_room(host)

        assert room.state == RoomState.LOBBY
        assert guest.last("lobby_entered")["message"] == NOT_ENOUGH_PLAYERS_MESSAGE


class TestReaper:
    async def test_reaped_room_releases_everything(self, manager, host, guest):
        room = await manager.create_room(host, "Ava")
        await manager.join_room(guest, room.code, "Ben")
        await manager.disconnect(guest)

        await manager.registry.reap_expired(now=room.created_at + 2 * 60 * 60 + 1)

        assert room.code not in manager.registry
        assert manager.status()["pending_grace"] == 0
        assert manager.hub.members(room.code) == []
        with pytest.raises(NotInRoomError):
            await manager.leave_room(host)
