"""Pairing flow over HTTP: register, link, exchange."""

import time
from datetime import datetime, timezone

from conftest import session_headers
from sqlmodel import select

from timetable_server.config import settings
from timetable_server.models.device_token import DeviceToken
from timetable_server.models.pairing import PairingRecord
from timetable_server.utils.security import hash_code, hash_token

ALICE = session_headers("u1", "a@example.com")
BOB = session_headers("u2", "b@example.com")


def _register(client, **body):
    r = client.post("/api/devices/register", json=body)
    assert r.status_code == 200, r.text
    return r.json()


def _parse(ts: str) -> datetime:
    return datetime.fromisoformat(ts.replace("Z", "+00:00"))


def test_register_returns_device_id_code_and_expiry(client):
    reg = _register(client)
    assert reg["deviceId"].startswith("dev_")
    assert len(reg["code"]) == 8
    assert reg["code"] != reg["deviceId"]

    remaining = (_parse(reg["expiresAt"]) - datetime.now(timezone.utc)).total_seconds()
    assert 290 < remaining <= 300


def test_register_without_body(client):
    r = client.post("/api/devices/register")
    assert r.status_code == 200
    assert "code" in r.json()


def test_register_stores_only_code_hash(client, db):
    reg = _register(client)
    record = db.get(PairingRecord, reg["deviceId"])
    assert record.code_hash == hash_code(reg["code"])
    assert not record.linked


def test_happy_path(client):
    reg = _register(client)

    r = client.post("/api/devices/link", json={"code": reg["code"]}, headers=ALICE)
    assert r.status_code == 200
    assert r.json() == {"deviceId": reg["deviceId"]}

    r = client.post("/api/devices/exchange", json={"deviceId": reg["deviceId"], "code": reg["code"]})
    assert r.status_code == 200
    data = r.json()
    assert data["token"]
    remaining = (_parse(data["expiresAt"]) - datetime.now(timezone.utc)).total_seconds()
    assert 86000 < remaining <= 86400

    # single use
    r = client.post("/api/devices/exchange", json={"deviceId": reg["deviceId"], "code": reg["code"]})
    assert r.status_code == 404


def test_exchange_before_link_is_pending(client):
    reg = _register(client)
    for _ in range(3):
        r = client.post("/api/devices/exchange", json={"deviceId": reg["deviceId"], "code": reg["code"]})
        assert r.status_code == 425
        assert r.json()["detail"]["error"] == "not_ready"


def test_exchange_with_other_device_id_is_rejected(client):
    reg = _register(client)
    client.post("/api/devices/link", json={"code": reg["code"]}, headers=ALICE)

    r = client.post("/api/devices/exchange", json={"deviceId": "dev_someoneelse", "code": reg["code"]})
    assert r.status_code == 400
    assert r.json()["detail"]["error"] == "device_mismatch"

    # the rightful device can still exchange
    r = client.post("/api/devices/exchange", json={"deviceId": reg["deviceId"], "code": reg["code"]})
    assert r.status_code == 200


def test_device_id_mismatch_checked_before_pending(client):
    reg = _register(client)
    r = client.post("/api/devices/exchange", json={"deviceId": "dev_other", "code": reg["code"]})
    assert r.status_code == 400


def test_unknown_code(client):
    r = client.post("/api/devices/link", json={"code": "NOPE2345"}, headers=ALICE)
    assert r.status_code == 404
    assert r.json()["detail"]["error"] == "code_not_found"

    r = client.post("/api/devices/exchange", json={"deviceId": "dev_x", "code": "NOPE2345"})
    assert r.status_code == 404


def test_code_is_case_insensitive(client):
    reg = _register(client)
    r = client.post("/api/devices/link", json={"code": reg["code"].lower()}, headers=ALICE)
    assert r.status_code == 200


def test_link_expired_code_is_gone_and_deleted(client, db, monkeypatch):
    monkeypatch.setattr(settings, "pairing_ttl_seconds", 0.001)
    reg = _register(client)
    time.sleep(0.01)

    r = client.post("/api/devices/link", json={"code": reg["code"]}, headers=ALICE)
    assert r.status_code == 410
    assert r.json()["detail"]["error"] == "code_expired"

    assert db.get(PairingRecord, reg["deviceId"]) is None
    r = client.post("/api/devices/link", json={"code": reg["code"]}, headers=ALICE)
    assert r.status_code == 404


def test_exchange_expired_linked_code_is_not_found(client, db, monkeypatch):
    reg = _register(client)
    client.post("/api/devices/link", json={"code": reg["code"]}, headers=ALICE)

    record = db.get(PairingRecord, reg["deviceId"])
    record.expires_at = datetime(2000, 1, 1, tzinfo=timezone.utc)
    db.add(record)
    db.commit()

    r = client.post("/api/devices/exchange", json={"deviceId": reg["deviceId"], "code": reg["code"]})
    assert r.status_code == 404
    db.expunge_all()
    assert db.get(PairingRecord, reg["deviceId"]) is None
    assert db.exec(select(DeviceToken)).first() is None


def test_link_requires_session(client):
    reg = _register(client)
    r = client.post("/api/devices/link", json={"code": reg["code"]})
    assert r.status_code == 401
    assert r.json()["detail"] == {"error": "unauthenticated"}


def test_link_rejects_device_token_as_session(client, paired):
    _, token = paired
    reg = _register(client)
    r = client.post(
        "/api/devices/link",
        json={"code": reg["code"]},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert r.status_code == 401


def test_link_accepts_session_cookie(client):
    reg = _register(client)
    client.cookies.set(settings.session_cookie_name, ALICE["X-Session-Token"])
    try:
        r = client.post("/api/devices/link", json={"code": reg["code"]})
    finally:
        client.cookies.clear()
    assert r.status_code == 200


def test_relink_same_user_is_idempotent(client):
    reg = _register(client)
    assert client.post("/api/devices/link", json={"code": reg["code"]}, headers=ALICE).status_code == 200
    r = client.post("/api/devices/link", json={"code": reg["code"]}, headers=ALICE)
    assert r.status_code == 200
    assert r.json()["deviceId"] == reg["deviceId"]


def test_relink_other_user_is_refused(client, db):
    reg = _register(client)
    client.post("/api/devices/link", json={"code": reg["code"]}, headers=ALICE)

    r = client.post("/api/devices/link", json={"code": reg["code"]}, headers=BOB)
    assert r.status_code == 409
    assert r.json()["detail"]["error"] == "already_linked"

    record = db.get(PairingRecord, reg["deviceId"])
    assert record.linked_user_id == "u1"
    assert record.linked_user_email == "a@example.com"


def test_token_row_carries_identity_and_device_name(client, db):
    reg = _register(client, deviceFingerprint="fp-123")
    client.post("/api/devices/link", json={"code": reg["code"]}, headers=ALICE)
    ua = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"
    r = client.post(
        "/api/devices/exchange",
        json={"deviceId": reg["deviceId"], "code": reg["code"]},
        headers={"User-Agent": ua},
    )
    token = r.json()["token"]

    row = db.exec(select(DeviceToken).where(DeviceToken.device_id == reg["deviceId"])).one()
    assert row.token_hash == hash_token(token)
    assert row.token_hash != token
    assert row.user_id == "u1"
    assert row.user_email == "a@example.com"
    assert row.device_name == "Chrome on macOS"
    assert row.device_fingerprint == "fp-123"
    assert db.get(PairingRecord, reg["deviceId"]) is None


def test_missing_fields_are_bad_requests(client):
    r = client.post("/api/devices/exchange", json={"code": "ABC"})
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_request"

    r = client.post("/api/devices/link", json={}, headers=ALICE)
    assert r.status_code == 400


def test_register_is_rate_limited(client, monkeypatch):
    from timetable_server.api.deps import register_limiter

    monkeypatch.setattr(register_limiter, "limit", 3)
    for _ in range(3):
        assert client.post("/api/devices/register", json={}).status_code == 200
    r = client.post("/api/devices/register", json={})
    assert r.status_code == 429
    assert r.json()["detail"]["error"] == "rate_limited"


def test_register_gives_generic_error_when_codes_keep_colliding(client, monkeypatch):
    from timetable_server.services import pairing_service

    monkeypatch.setattr(pairing_service, "generate_pairing_code", lambda: "SAMECODE")
    assert client.post("/api/devices/register", json={}).status_code == 200

    r = client.post("/api/devices/register", json={})
    assert r.status_code == 500
    assert r.json() == {"error": "server_error"}
