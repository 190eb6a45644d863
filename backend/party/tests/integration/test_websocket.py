"""Integration tests for the HTTP endpoints and the WebSocket transport.

These run the real Starlette app through the test client, so every frame
goes through MessagePack encoding, the rate limiter and the router.
"""

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from party.messaging.encoder import decode, encode


def send_ws(ws, message):
    ws.send_bytes(encode(message))


def recv_ws(ws):
    return decode(ws.receive_bytes())


def recv_until(ws, message_type, limit=2000):
    for _ in range(limit):
        message = recv_ws(ws)
        if message["type"] == message_type:
            return message
    raise AssertionError(f"no {message_type} within {limit} messages")


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


class TestHttpEndpoints:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok", "games": 8}

    def test_games(self, client):
        games = client.get("/games").json()["games"]
        assert {g["id"] for g in games} >= {"reaction-race", "emoji-match", "color-clash"}

    def test_status(self, client):
        status = client.get("/status").json()
        assert status["rooms"] == 0
        assert status["max_players"] == 20


class TestWebSocket:
    def test_games_list_on_connect(self, client):
        with client.websocket_connect("/ws") as ws:
            message = recv_ws(ws)
            assert message["type"] == "games_list"
            assert len(message["games"]) == 8

    def test_create_and_join(self, client):
        with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as guest:
            recv_ws(host)
            recv_ws(guest)

            send_ws(host, {"type": "create_room", "name": "Ava", "rid": 1})
            ack = recv_until(host, "ack")
            assert ack["rid"] == 1

            send_ws(guest, {"type": "join_room", "code": ack["code"], "name": "Ben", "rid": 2})
            assert recv_until(guest, "ack")["rid"] == 2
            assert recv_until(host, "player_joined")["player_name"] == "Ben"

            assert client.get("/status").json()["players"] == 2

    def test_invalid_msgpack_keeps_connection(self, client):
        with client.websocket_connect("/ws") as ws:
            recv_ws(ws)
            ws.send_bytes(b"\xc1")
            error = recv_ws(ws)
            assert error["type"] == "session_error"
            assert error["code"] == "invalid_message"

            send_ws(ws, {"type": "ping"})
            assert recv_ws(ws)["type"] == "pong"

    def test_repeated_decode_errors_disconnect(self, client):
        with client.websocket_connect("/ws") as ws:
            recv_ws(ws)
            for _ in range(5):
                ws.send_bytes(b"\xc1")
                assert recv_ws(ws)["code"] == "invalid_message"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_bytes()
            assert exc_info.value.code == 4004

    def test_bot_game_over_the_wire(self, client):
        with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as guest:
            recv_ws(host)
            recv_ws(guest)
            send_ws(host, {"type": "create_room", "name": "Ava"})
            code = recv_until(host, "ack")["code"]
            send_ws(guest, {"type": "join_room", "code": code, "name": "Ben"})
            recv_until(guest, "ack")
            send_ws(host, {"type": "add_bot", "difficulty": "hard", "rid": 3})
            bot_id = recv_until(host, "ack")["bot_id"]

            send_ws(host, {"type": "start_game", "game_id": "tap-frenzy", "rid": 4})
            started = recv_until(guest, "game_started")
            assert started["game_id"] == "tap-frenzy"

            ended = recv_until(guest, "game_ended")
            assert any(entry["id"] == bot_id and entry["score"] > 0 for entry in ended["scores"])

    def test_dropped_socket_marks_player_away(self, client):
        with client.websocket_connect("/ws") as host:
            recv_ws(host)
            send_ws(host, {"type": "create_room", "name": "Ava"})
            code = recv_until(host, "ack")["code"]

            with client.websocket_connect("/ws") as guest:
                recv_ws(guest)
                send_ws(guest, {"type": "join_room", "code": code, "name": "Ben"})
                recv_until(guest, "ack")

            away = recv_until(host, "player_away")
            assert away["player_name"] == "Ben"

            with client.websocket_connect("/ws") as returning:
                recv_ws(returning)
                send_ws(returning, {"type": "rejoin_room", "code": code, "name": "Ben", "rid": 8})
                ack = recv_until(returning, "ack")
                assert ack["rejoined"]
                assert recv_until(host, "player_rejoined")["player_name"] == "Ben"
