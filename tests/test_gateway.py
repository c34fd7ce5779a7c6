"""Tests for the terminal WebSocket gateway."""

from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import FakeBackend


def create_session(client: TestClient) -> str:
    return client.post("/api/sessions", json={}).json()["data"]["id"]


def sync(ws) -> dict:
    """Round-trip a frame that always yields an error, so earlier frames are processed."""
    ws.send_json({"type": "attach", "sessionId": "sync-marker"})
    return ws.receive_json()


class TestGatewayErrors:
    def test_attach_unknown_session(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "attach", "sessionId": "missing"})
            assert ws.receive_json() == {
                "type": "error",
                "sessionId": "missing",
                "message": "Session not found",
            }

    def test_malformed_json(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_text("{not json")
            message = ws.receive_json()
            assert message["type"] == "error"
            assert message["sessionId"] is None
            assert message["message"].startswith("Invalid message format")

    def test_non_object_frame(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_text("[1, 2]")
            assert ws.receive_json()["type"] == "error"

    def test_unknown_type(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "reboot", "sessionId": "x"})
            message = ws.receive_json()
            assert message["type"] == "error"
            assert message["message"] == "Unknown message type: reboot"

    def test_invalid_fields(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "resize", "sessionId": "x", "cols": 0, "rows": 10})
            message = ws.receive_json()
            assert message["type"] == "error"
            assert message["sessionId"] == "x"

    def test_connection_survives_errors(self, client: TestClient, backend: FakeBackend) -> None:
        session_id = create_session(client)
        backend.last.emit(b"still here")
        with client.websocket_connect("/ws") as ws:
            ws.send_text("garbage")
            assert ws.receive_json()["type"] == "error"
            ws.send_json({"type": "attach", "sessionId": session_id})
            assert ws.receive_json()["data"] == "still here"

    def test_non_string_session_id_keeps_attachment(self, client: TestClient, backend: FakeBackend) -> None:
        session_id = create_session(client)
        backend.last.emit(b"$ ")
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "attach", "sessionId": session_id})
            assert ws.receive_json()["data"] == "$ "

            ws.send_json({"type": "bogus", "sessionId": 5})
            assert ws.receive_json() == {
                "type": "error",
                "sessionId": None,
                "message": "Unknown message type: bogus",
            }
            ws.send_json({"type": "attach", "sessionId": 5})
            message = ws.receive_json()
            assert message["type"] == "error"
            assert message["sessionId"] is None

            assert client.app.state.session_registry.get(session_id).attached
            backend.last.emit(b"live")
            assert ws.receive_json() == {"type": "output", "sessionId": session_id, "data": "live"}


class TestGatewayStreaming:
    def test_replay_then_live(self, client: TestClient, backend: FakeBackend) -> None:
        session_id = create_session(client)
        backend.last.emit(b"$ ")
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "attach", "sessionId": session_id})
            assert ws.receive_json() == {"type": "output", "sessionId": session_id, "data": "$ "}
            backend.last.emit(b"live")
            assert ws.receive_json()["data"] == "live"

    def test_split_utf8_sequence(self, client: TestClient, backend: FakeBackend) -> None:
        session_id = create_session(client)
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "attach", "sessionId": session_id})
            sync(ws)
            backend.last.emit("€".encode()[:2])
            backend.last.emit("€".encode()[2:])
            assert ws.receive_json()["data"] == "€"

    def test_input_forwarded(self, client: TestClient, backend: FakeBackend) -> None:
        session_id = create_session(client)
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "input", "sessionId": session_id, "data": "ls -la\r"})
            sync(ws)
        assert backend.last.writes == [b"ls -la\r"]

    def test_input_unknown_session_dropped(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "input", "sessionId": "missing", "data": "x"})
            # The next frame the client sees is the sync error, not an input error
            assert sync(ws)["sessionId"] == "sync-marker"

    def test_resize_forwarded(self, client: TestClient, backend: FakeBackend) -> None:
        session_id = create_session(client)
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "resize", "sessionId": session_id, "cols": 132, "rows": 50})
            sync(ws)
        assert backend.last.resizes == [(132, 50)]

    def test_exit_event(self, client: TestClient, backend: FakeBackend) -> None:
        session_id = create_session(client)
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "attach", "sessionId": session_id})
            sync(ws)
            backend.last.exit(0)
            assert ws.receive_json() == {"type": "exit", "sessionId": session_id, "code": 0}

    def test_attach_stopped_session(self, client: TestClient, backend: FakeBackend) -> None:
        session_id = create_session(client)
        backend.last.emit(b"bye\r\n")
        backend.last.exit(1)
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "attach", "sessionId": session_id})
            assert ws.receive_json()["data"] == "bye\r\n"
            assert ws.receive_json() == {"type": "exit", "sessionId": session_id, "code": 1}


class TestGatewayAttachment:
    def test_second_client_displaces_first(self, client: TestClient, backend: FakeBackend) -> None:
        session_id = create_session(client)
        backend.last.emit(b"x")
        with client.websocket_connect("/ws") as first, client.websocket_connect("/ws") as second:
            first.send_json({"type": "attach", "sessionId": session_id})
            assert first.receive_json()["type"] == "output"

            second.send_json({"type": "attach", "sessionId": session_id})
            assert second.receive_json()["data"] == "x"
            assert first.receive_json() == {
                "type": "detached",
                "sessionId": session_id,
                "reason": "attached-elsewhere",
            }

            backend.last.emit(b"y")
            assert second.receive_json()["data"] == "y"
            # Nothing further was queued for the displaced client
            assert sync(first)["sessionId"] == "sync-marker"

    def test_detach_idempotent(self, client: TestClient, backend: FakeBackend) -> None:
        session_id = create_session(client)
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "attach", "sessionId": session_id})
            ws.send_json({"type": "detach"})
            ws.send_json({"type": "detach", "sessionId": session_id})
            sync(ws)
            backend.last.emit(b"unseen")
            assert sync(ws)["sessionId"] == "sync-marker"
        assert not client.app.state.session_registry.get(session_id).attached

    def test_switch_sessions(self, client: TestClient, backend: FakeBackend) -> None:
        first_id = create_session(client)
        first_handle = backend.last
        second_id = create_session(client)
        second_handle = backend.last
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "attach", "sessionId": first_id})
            ws.send_json({"type": "attach", "sessionId": second_id})
            sync(ws)
            first_handle.emit(b"old")
            second_handle.emit(b"new")
            assert ws.receive_json() == {"type": "output", "sessionId": second_id, "data": "new"}

    def test_disconnect_detaches(self, client: TestClient) -> None:
        session_id = create_session(client)
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "attach", "sessionId": session_id})
            sync(ws)
            assert client.app.state.session_registry.get(session_id).attached
        assert not client.app.state.session_registry.get(session_id).attached
