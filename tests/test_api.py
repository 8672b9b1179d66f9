from conftest import BETA_KEY, session_cookie, with_session
from fastapi.testclient import TestClient
from sqlalchemy import text

from ficai_signals import auth
from ficai_signals.models import Session as SessionModel

URL = "https://forums.spacebattles.com/threads/nemesis-worm-au.747148/"


def test_health(client):
    res = client.get("/")
    assert res.status_code == 200
    assert res.json()["status"] == "running"


def test_register(client):
    res = client.post(
        "/v1/accounts",
        json={"email": "a@x.com", "password": "pw", "betaKey": BETA_KEY},
    )
    assert res.status_code == 201
    body = res.json()
    assert body["email"] == "a@x.com"
    assert isinstance(body["id"], int)
    assert "passwordHash" not in body and "password_hash" not in body

    header = res.headers["set-cookie"]
    assert header.startswith("FicAiSession=")
    for attr in ("Domain=testserver", "HttpOnly", "Path=/", "Secure", "SameSite=lax"):
        assert attr in header
    assert session_cookie(res)


def test_register_twice_conflicts(client, register, db):
    register()
    res = client.post(
        "/v1/accounts",
        json={"email": "a@x.com", "password": "other", "betaKey": BETA_KEY},
    )
    assert res.status_code == 409
    assert res.json()["code"] == "conflict"
    assert "set-cookie" not in res.headers
    assert db.query(SessionModel).count() == 1


def test_register_bad_beta_key(client):
    res = client.post(
        "/v1/accounts",
        json={"email": "a@x.com", "password": "pw", "betaKey": "nope"},
    )
    assert res.status_code == 400
    assert res.json() == {"code": "bad_request", "message": "invalid beta key"}


def test_register_validation(client):
    res = client.post("/v1/accounts", json={"email": "not an email", "password": "pw"})
    assert res.status_code == 400
    assert res.json()["code"] == "bad_request"


def test_log_in(client, register):
    account_id, _ = register()
    res = client.post("/v1/sessions", json={"email": "a@x.com", "password": "pw"})
    assert res.status_code == 200
    assert res.json()["id"] == account_id

    token = session_cookie(res)
    res = client.get("/v1/sessions", headers=with_session(token))
    assert res.status_code == 200
    assert res.json() == {"id": account_id, "email": "a@x.com"}


def test_log_in_bad_credentials(client, register):
    register()
    for body in ({"email": "a@x.com", "password": "wrong"},
                 {"email": "b@x.com", "password": "pw"}):
        res = client.post("/v1/sessions", json=body)
        assert res.status_code == 403
        assert res.json() == {"code": "forbidden", "message": "invalid credentials"}


def test_session_required(client):
    res = client.get("/v1/sessions")
    assert res.status_code == 403
    assert res.json()["code"] == "forbidden"


def test_malformed_cookie(client):
    res = client.get("/v1/sessions", headers=with_session("not*base64"))
    assert res.status_code == 400
    assert res.json()["code"] == "bad_request"


def test_log_out(client, register):
    _, token = register()
    res = client.delete("/v1/sessions", headers=with_session(token))
    assert res.status_code == 200
    assert res.json() == {}
    header = res.headers["set-cookie"]
    assert "Max-Age=0" in header
    assert "Domain=testserver" in header
    assert not session_cookie(res)

    res = client.get("/v1/sessions", headers=with_session(token))
    assert res.status_code == 403

    res = client.delete("/v1/sessions", headers=with_session(token))
    assert res.status_code == 403


def test_log_out_keeps_other_sessions(client, register):
    _, first = register()
    second = session_cookie(client.post("/v1/sessions", json={"email": "a@x.com", "password": "pw"}))
    client.delete("/v1/sessions", headers=with_session(first))
    assert client.get("/v1/sessions", headers=with_session(second)).status_code == 200


def test_patch_then_get(client, register):
    _, token = register()
    res = client.patch("/v1/signals", json={"url": URL, "add": ["fluff"]}, headers=with_session(token))
    assert res.status_code == 200
    assert res.json() == {}

    res = client.get("/v1/signals", params={"url": URL}, headers=with_session(token))
    assert res.status_code == 200
    assert res.json() == {
        "tags": [{"tag": "fluff", "signalsFor": 1, "signalsAgainst": 0, "mySignal": True}]
    }


def test_get_signals_anonymous(client, register):
    _, token = register()
    client.patch("/v1/signals", json={"url": URL, "rm": ["angst"]}, headers=with_session(token))

    res = client.get("/v1/signals", params={"url": URL})
    assert res.status_code == 200
    assert res.json() == {
        "tags": [{"tag": "angst", "signalsFor": 0, "signalsAgainst": 1, "mySignal": None}]
    }


def test_get_signals_other_account(client, register):
    _, first = register("a@x.com")
    _, second = register("b@x.com")
    client.patch("/v1/signals", json={"url": URL, "add": ["fluff"]}, headers=with_session(first))
    client.patch("/v1/signals", json={"url": URL, "add": ["fluff"]}, headers=with_session(second))
    client.patch("/v1/signals", json={"url": URL, "erase": ["fluff"]}, headers=with_session(second))

    res = client.get("/v1/signals", params={"url": URL}, headers=with_session(second))
    assert res.json()["tags"] == [
        {"tag": "fluff", "signalsFor": 1, "signalsAgainst": 0, "mySignal": None}
    ]


def test_get_signals_requires_url(client):
    res = client.get("/v1/signals")
    assert res.status_code == 400


def test_patch_requires_session(client):
    res = client.patch("/v1/signals", json={"url": URL, "add": ["fluff"]})
    assert res.status_code == 403
    assert client.get("/v1/signals", params={"url": URL}).json() == {"tags": []}


def test_search_tags(client, register):
    _, token = register()
    client.patch("/v1/signals", json={"url": URL, "add": ["angst", "fluff"]}, headers=with_session(token))

    res = client.get("/v1/tags", params={"q": "flufy", "limit": 5})
    assert res.status_code == 200
    assert res.json() == {"tags": ["fluff", "angst"]}

    res = client.get("/v1/tags")
    assert res.json() == {"tags": ["angst", "fluff"]}


def test_search_tags_bad_limit(client):
    res = client.get("/v1/tags", params={"limit": -1})
    assert res.status_code == 400
    assert res.json()["code"] == "bad_request"


def test_urls(client, register):
    _, token = register()
    client.patch("/v1/signals", json={"url": URL, "add": ["fluff"]}, headers=with_session(token))
    res = client.get("/v1/urls")
    assert res.status_code == 200
    assert res.json() == {"urls": [URL]}


def test_get_signals_malformed_cookie(client):
    res = client.get("/v1/signals", params={"url": URL}, headers=with_session("not*base64"))
    assert res.status_code == 400
    assert res.json()["code"] == "bad_request"


def test_get_signals_unknown_session(client, register):
    _, token = register()
    client.patch("/v1/signals", json={"url": URL, "add": ["fluff"]}, headers=with_session(token))
    client.delete("/v1/sessions", headers=with_session(token))

    res = client.get("/v1/signals", params={"url": URL}, headers=with_session(token))
    assert res.status_code == 403
    assert res.json()["code"] == "forbidden"

    unknown = auth.encode_session_id(auth.generate_session_id())
    res = client.get("/v1/signals", params={"url": URL}, headers=with_session(unknown))
    assert res.status_code == 403


def test_patch_failure_names_the_tag(client, register, engine):
    _, token = register()
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TRIGGER reject_broken BEFORE INSERT ON signal "
            "WHEN NEW.tag = 'broken' "
            "BEGIN SELECT RAISE(ABORT, 'tag rejected'); END"
        ))

    res = client.patch(
        "/v1/signals",
        json={"url": URL, "add": ["fluff", "broken", "au"]},
        headers=with_session(token),
    )
    assert res.status_code == 500
    assert res.json() == {"code": "batch_failed", "message": "failed to add signal 'broken'"}
    assert "tag rejected" not in res.text

    res = client.get("/v1/signals", params={"url": URL}, headers=with_session(token))
    assert [t["tag"] for t in res.json()["tags"]] == ["fluff"]


def test_unexpected_error_is_structured(app, monkeypatch):
    def broken_hash(password, pepper):
        raise RuntimeError("hasher exploded")

    monkeypatch.setattr(auth, "hash_password", broken_hash)
    client = TestClient(app, raise_server_exceptions=False)

    res = client.post(
        "/v1/accounts",
        json={"email": "a@x.com", "password": "pw", "betaKey": BETA_KEY},
    )
    assert res.status_code == 500
    assert res.json() == {"code": "internal", "message": "internal error"}


def test_framework_errors_are_structured(client):
    res = client.put("/v1/signals", json={})
    assert res.status_code == 405
    assert res.json()["code"] == "bad_request"
    assert "PATCH" in res.headers["allow"]

    res = client.get("/v1/nowhere")
    assert res.status_code == 404
    assert res.json()["code"] == "not_found"


def test_email_stored_as_given(client, register):
    first_id, _ = register("a@X.com")
    second_id, _ = register("a@x.com")
    assert first_id != second_id

    res = client.post("/v1/sessions", json={"email": "a@X.com", "password": "pw"})
    assert res.status_code == 200
    assert res.json() == {"id": first_id, "email": "a@X.com"}
