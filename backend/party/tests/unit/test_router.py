"""MessageRouter: parsing, dispatch, and session_error replies."""

from party.messaging.types import SessionErrorCode


class TestMessageRouter:
    async def test_unknown_type_is_invalid_message(self, router, host):
        await router.handle_message(host, {"type": "launch_rockets", "rid": 5})
        error = host.last("session_error")
        assert error["code"] == SessionErrorCode.INVALID_MESSAGE
        assert error["kind"] == "invalid_input"
        assert error["rid"] == 5

    async def test_invalid_rid_not_echoed(self, router, host):
        await router.handle_message(host, {"type": "create_room", "rid": -1, "name": "Ava"})
        error = host.last("session_error")
        assert error["code"] == "invalid_message"
        assert error["rid"] is None

    async def test_control_characters_in_name_rejected(self, router, host):
        await router.handle_message(host, {"type": "create_room", "name": "Av\x00a"})
        assert host.last("session_error")["code"] == "invalid_message"

    async def test_create_and_join_through_router(self, router, host, guest):
        await router.handle_message(host, {"type": "create_room", "name": "Ava", "rid": 1})
        code = host.last("ack")["code"]

        await router.handle_message(guest, {"type": "join_room", "code": code, "name": "Ben", "rid": 2})

        assert guest.last("ack")["rid"] == 2
        assert host.last("player_joined")["player_name"] == "Ben"

    async def test_session_error_echoes_rid(self, router, host):
        await router.handle_message(host, {"type": "join_room", "code": "ZZZZ", "name": "Ava", "rid": 11})
        error = host.last("session_error")
        assert error["code"] == "room_not_found"
        assert error["kind"] == "not_found"
        assert error["rid"] == 11

    async def test_host_only_actions(self, router, host, guest):
        await router.handle_message(host, {"type": "create_room", "name": "Ava"})
        code = host.last("ack")["code"]
        await router.handle_message(guest, {"type": "join_room", "code": code, "name": "Ben"})

        for message in (
            {"type": "add_bot", "rid": 1},
            {"type": "start_game", "game_id": "tap-frenzy", "rid": 2},
            {"type": "return_to_lobby", "rid": 3},
        ):
            await router.handle_message(guest, message)
            error = guest.last("session_error")
            assert error["code"] == "not_host"
            assert error["kind"] == "unauthorized"
            assert error["rid"] == message["rid"]

    async def test_add_bot_with_difficulty(self, router, manager, host):
        await router.handle_message(host, {"type": "create_room", "name": "Ava"})
        await router.handle_message(host, {"type": "add_bot", "difficulty": "hard", "rid": 4})
        bot_id = host.last("ack")["bot_id"]
        room = manager.registry.get_by_handle("host")
        assert room.players[bot_id].difficulty == "hard"

    async def test_game_event_never_errors(self, router, host):
        await router.handle_message(host, {"type": "game_event", "event": "tap", "payload": {"x": 1}})
        assert not host.of_type("session_error")

    async def test_ping(self, router, host):
        await router.handle_message(host, {"type": "ping"})
        assert host.last()["type"] == "pong"

    async def test_disconnect_through_router(self, router, manager, host, guest):
        await router.handle_message(host, {"type": "create_room", "name": "Ava"})
        code = host.last("ack")["code"]
        await router.handle_message(guest, {"type": "join_room", "code": code, "name": "Ben"})

        await router.handle_disconnect(guest)

        assert host.last("player_away")["player_name"] == "Ben"
        assert manager.hub.get("guest") is None
