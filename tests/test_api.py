import json
import logging

from fastapi.testclient import TestClient

from chatroom.main import create_app


def _register(client, name):
    return client.post("/participants", json={"name": name})


def _post(client, user, to, text, kind="message"):
    return client.post(
        "/messages", json={"to": to, "text": text, "type": kind}, headers={"User": user}
    )


def test_health(client):
    assert client.get("/health/live").json() == {"status": "ok"}
    assert client.get("/health/ready").status_code == 200


def test_register_then_conflict(client):
    assert _register(client, "Ana").status_code == 201
    assert _register(client, "Ana").status_code == 409


def test_register_validation(client):
    r = _register(client, "   ")
    assert r.status_code == 422
    assert r.json()["detail"][0]["field"] == "name"
    assert client.post("/participants", json={}).status_code == 422


def test_list_participants(client, clock):
    _register(client, "Ana")
    r = client.get("/participants")
    assert r.status_code == 200
    assert r.json() == [{"name": "Ana", "lastStatus": int(clock.now() * 1000)}]


def test_heartbeat(client):
    _register(client, "Ana")
    assert client.post("/status", headers={"User": "Ana"}).status_code == 200
    assert client.post("/status", headers={"User": "Bob"}).status_code == 404
    assert client.post("/status").status_code == 404


def test_broadcast_message_visible_to_new_participant(client):
    _register(client, "Ana")
    _register(client, "Carlos")
    r = _post(client, "Ana", "Todos", "oi gente")
    assert r.status_code == 201
    assert isinstance(r.json()["id"], int)

    r = client.get("/messages", headers={"User": "Carlos"})
    assert r.status_code == 200
    texts = [m["text"] for m in r.json()]
    assert "oi gente" in texts


def test_private_message_visibility(client):
    for name in ("Ana", "Bob", "Carlos"):
        _register(client, name)
    _post(client, "Ana", "Bob", "segredo", "private_message")

    carlos = client.get("/messages", headers={"User": "Carlos"}).json()
    bob = client.get("/messages", headers={"User": "Bob"}).json()
    assert "segredo" not in [m["text"] for m in carlos]

    [msg] = [m for m in bob if m["text"] == "segredo"]
    assert msg["from"] == "Ana"
    assert msg["to"] == "Bob"
    assert msg["type"] == "private_message"
    assert len(msg["time"]) == 8


def test_post_message_errors(client):
    _register(client, "Ana")
    assert _post(client, "Zed", "Todos", "hi").status_code == 422
    assert _post(client, "Ana", "Todos", "").status_code == 422
    assert _post(client, "Ana", "Todos", "hi", "shout").status_code == 422
    # status messages are reserved for the server
    assert _post(client, "Ana", "Todos", "hi", "status").status_code == 422
    assert client.post("/messages", json={"to": "Todos", "text": "hi", "type": "message"}).status_code == 422


def test_list_messages_limit(client):
    _register(client, "Ana")
    for i in range(4):
        _post(client, "Ana", "Todos", f"m{i}")

    r = client.get("/messages", params={"limit": 2}, headers={"User": "Ana"})
    assert [m["text"] for m in r.json()] == ["m3", "m2"]

    for bad in ("0", "-1", "abc"):
        r = client.get("/messages", params={"limit": bad}, headers={"User": "Ana"})
        assert r.status_code == 422


def test_delete_message(client):
    _register(client, "Ana")
    _register(client, "Bob")
    message_id = _post(client, "Ana", "Todos", "apaga").json()["id"]

    assert client.delete(f"/messages/{message_id}", headers={"User": "Bob"}).status_code == 401
    assert client.delete(f"/messages/{message_id}", headers={"User": "Ana"}).status_code == 204
    assert client.delete(f"/messages/{message_id}", headers={"User": "Ana"}).status_code == 404
    assert client.delete("/messages/nope", headers={"User": "Ana"}).status_code == 404

    texts = [m["text"] for m in client.get("/messages", headers={"User": "Ana"}).json()]
    assert "apaga" not in texts


def test_edit_message(client):
    _register(client, "Ana")
    _register(client, "Bob")
    message_id = _post(client, "Ana", "Todos", "helo").json()["id"]
    body = {"to": "Todos", "text": "hello", "type": "message"}

    assert client.put(f"/messages/{message_id}", json=body, headers={"User": "Bob"}).status_code == 401
    assert client.put(f"/messages/{message_id}", json=body, headers={"User": "Zed"}).status_code == 422
    assert client.put("/messages/999", json=body, headers={"User": "Ana"}).status_code == 404
    assert client.put(
        f"/messages/{message_id}", json={"to": "Todos"}, headers={"User": "Ana"}
    ).status_code == 422

    assert client.put(f"/messages/{message_id}", json=body, headers={"User": "Ana"}).status_code == 200
    texts = [m["text"] for m in client.get("/messages", headers={"User": "Ana"}).json()]
    assert "hello" in texts and "helo" not in texts


def test_storage_failure_is_generic_500(client, app, monkeypatch):
    from chatroom.errors import StorageError

    def boom():
        raise StorageError("sqlite exploded at /secret/path")

    monkeypatch.setattr(app.state.room.registry, "list", boom)
    r = client.get("/participants")
    assert r.status_code == 500
    assert r.json() == {"detail": "internal error"}


def test_eviction_through_the_app(client, app, clock):
    _register(client, "Ana")
    clock.advance(11)
    assert app.state.room.sweeper.tick() == ["Ana"]

    assert client.get("/participants").json() == []
    msgs = client.get("/messages", headers={"User": "Carlos"}).json()
    left = [m for m in msgs if m["from"] == "Ana" and m["type"] == "status"]
    assert [m["text"] for m in left] == ["left the room", "joined the room"]


def _metric(client, series):
    for line in client.get("/metrics").text.splitlines():
        name, _, value = line.rpartition(" ")
        if name == series:
            return float(value)
    return 0.0


def test_metrics_endpoint(client):
    posted = 'chat_events_total{event="message_posted"}'
    recorded = 'chat_events_total{event="status_recorded"}'
    posted_before = _metric(client, posted)
    recorded_before = _metric(client, recorded)

    _register(client, "Ana")
    r = client.get("/metrics")
    assert r.status_code == 200
    assert 'chat_events_total{event="participant_registered"}' in r.text
    assert 'http_requests_total{path="/participants",status="201"}' in r.text
    assert "participants_online 1" in r.text

    # a join event is not a user post
    assert _metric(client, posted) == posted_before
    assert _metric(client, recorded) == recorded_before + 1

    _post(client, "Ana", "Todos", "oi")
    assert _metric(client, posted) == posted_before + 1


def test_metrics_track_sweep_ticks(client, app, clock):
    ticks = _metric(client, "sweep_ticks_total")
    evicted = _metric(client, "sweep_evicted_total")

    _register(client, "Ana")
    app.state.room.sweeper.tick()
    clock.advance(11)
    app.state.room.sweeper.tick()

    assert _metric(client, "sweep_ticks_total") == ticks + 2
    assert _metric(client, "sweep_evicted_total") == evicted + 1
    assert _metric(client, "sweep_last_evicted") == 1
    assert _metric(client, "participants_online") == 0


def test_nested_markup_is_not_stored(client):
    assert _register(client, "<<b>i>Ana").status_code == 201
    assert [p["name"] for p in client.get("/participants").json()] == ["Ana"]

    r = _post(client, "Ana", "Todos", "<<b>script>alert(1)<</b>/script>oi")
    assert r.status_code == 201
    texts = [m["text"] for m in client.get("/messages", headers={"User": "Ana"}).json()]
    assert texts == ["oi", "joined the room"]


def test_lifespan_starts_and_stops_sweeper(settings, clock):
    app = create_app(settings, clock=clock)
    sweeper = app.state.room.sweeper
    with TestClient(app):
        assert sweeper.running
    assert not sweeper.running


def test_request_log_names_the_caller(client, caplog):
    _register(client, "Ana")
    with caplog.at_level(logging.INFO, logger="chatroom"):
        client.post("/status", headers={"User": "Ana"})
        client.post("/status", headers={"User": "Zed"})

    lines = [json.loads(r.getMessage()) for r in caplog.records if r.name == "chatroom"]
    heartbeats = [line for line in lines if line.get("path") == "/status"]
    assert [(h["caller"], h["status"], h["level"]) for h in heartbeats] == [
        ("Ana", 200, "info"),
        ("Zed", 404, "warning"),
    ]
