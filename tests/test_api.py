def add(client, category, amount, note=""):
    resp = client.post("/expenses", json={"category": category, "amount": amount, "note": note})
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


def test_root(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["message"] == "Smart Expense Tracker"


def test_unknown_route(client):
    resp = client.get("/nope")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


def test_expenses_require_sign_in(client):
    resp = client.get("/expenses")
    assert resp.status_code == 401
    assert resp.json() == {"error": "not_authenticated", "detail": "Please sign in."}
    assert client.get("/analytics/summary").status_code == 401


def test_sign_up_issues_session_cookie(client):
    resp = client.post("/auth/sign-up", json={"email": "ada@example.com", "password": "secret1"})
    assert resp.status_code == 201
    assert resp.json()["signed_in"] is True
    assert "expense_session" in resp.cookies
    me = client.get("/auth/me").json()
    assert me["user"]["email"] == "ada@example.com"


def test_auth_errors(client):
    client.post("/auth/sign-up", json={"email": "ada@example.com", "password": "secret1"})
    client.post("/auth/sign-out")
    resp = client.post("/auth/sign-up", json={"email": "ada@example.com", "password": "secret1"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "email-already-in-use"
    resp = client.post("/auth/sign-in", json={"email": "ada@example.com", "password": "nope!!"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "invalid-credential"
    resp = client.post("/auth/sign-up", json={"email": "bob@example.com", "password": "1"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "weak-password"


def test_create_and_list(signed_in_client):
    client = signed_in_client
    first = add(client, " Food ", "12.5", "  lunch ")
    second = add(client, "Travel", 30)
    body = client.get("/expenses").json()
    assert body["status"] == "live"
    assert body["count"] == 2
    assert body["total_amount"] == 42.5
    assert body["total_display"] == "$42.50"
    assert [e["id"] for e in body["expenses"]] == [second, first]
    food = body["expenses"][1]
    assert food["category"] == "Food"
    assert food["note"] == "lunch"
    assert food["amount"] == 12.5
    assert food["display_time"]


def test_create_validation(signed_in_client):
    resp = signed_in_client.post("/expenses", json={"category": "", "amount": 5})
    assert resp.status_code == 422
    assert resp.json() == {"error": "validation_error", "detail": "Please fill in category and amount"}
    resp = signed_in_client.post("/expenses", json={"category": "Food", "amount": "-3"})
    assert resp.json()["detail"] == "Please enter a valid amount"
    assert signed_in_client.get("/expenses").json()["count"] == 0


def test_delete_flow(signed_in_client):
    client = signed_in_client
    expense_id = add(client, "Food", 4)
    resp = client.delete(f"/expenses/{expense_id}")
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Are you sure you want to delete this expense?"

    assert client.delete(f"/expenses/{expense_id}?confirm=true").status_code == 204
    assert client.get("/expenses").json()["count"] == 0

    resp = client.delete(f"/expenses/{expense_id}?confirm=true")
    assert resp.status_code == 404
    assert resp.json()["error"] == "not-found"
    assert resp.json()["detail"] == "Failed to delete expense. The expense no longer exists."


def test_summary(signed_in_client):
    client = signed_in_client
    empty = client.get("/analytics/summary").json()
    assert empty["has_data"] is False
    assert empty["categories"] == []
    assert empty["top_category"] is None

    add(client, "Food", 10)
    add(client, "Travel", 30)
    add(client, "Food", 5)
    body = client.get("/analytics/summary").json()
    assert body["has_data"] is True
    assert body["total_count"] == 3
    assert body["total_amount"] == 45.0
    assert [(c["category"], c["total"], c["percent"]) for c in body["categories"]] == [
        ("Travel", 30.0, 66.7),
        ("Food", 15.0, 33.3),
    ]
    assert body["top_category"]["category"] == "Travel"
    assert body["chart"]["labels"] == ["Travel", "Food"]


def test_users_are_isolated(client):
    client.post("/auth/sign-up", json={"email": "ada@example.com", "password": "secret1"})
    add(client, "Food", 10)
    client.cookies.clear()
    client.post("/auth/sign-up", json={"email": "bob@example.com", "password": "secret1"})
    assert client.get("/expenses").json()["count"] == 0


def test_sign_out_closes_feed(signed_in_client):
    client = signed_in_client
    add(client, "Food", 1)
    resp = client.post("/auth/sign-out")
    assert resp.json() == {"signed_in": False, "user": None}
    assert client.get("/expenses").status_code == 401
    client.post("/auth/sign-in", json={"email": "ada@example.com", "password": "secret1"})
    assert client.get("/expenses").json()["count"] == 1


def test_refresh_bumps_generation(signed_in_client):
    client = signed_in_client
    add(client, "Food", 1)
    first = client.post("/expenses/refresh").json()["generation"]
    second = client.post("/expenses/refresh").json()["generation"]
    assert second == first + 1
    assert client.get("/expenses").json()["count"] == 1


def test_activity_reports_countdown(signed_in_client):
    resp = signed_in_client.post("/session/activity", json={"kind": "key-press"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["signed_in"] is True
    assert 0 < body["expires_in_seconds"] <= body["idle_timeout_seconds"] == 900


def test_activity_rejects_unknown_kind(client):
    resp = client.post("/session/activity", json={"kind": "blink"})
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"


def test_teardown_ends_client_session(signed_in_client):
    client = signed_in_client
    sessions = client.app.state.sessions
    assert len(sessions) == 1
    assert client.post("/session/teardown").status_code == 204
    assert len(sessions) == 0
    assert client.get("/auth/me").json()["signed_in"] is False


def test_teardown_without_session_is_ignored(client):
    assert client.post("/session/teardown").status_code == 204


def test_deleting_unknown_id_leaves_list_intact(signed_in_client):
    client = signed_in_client
    add(client, "Food", 2)
    resp = client.delete("/expenses/does-not-exist?confirm=true")
    assert resp.status_code == 404
    assert client.get("/expenses").json()["count"] == 1


def test_anonymous_requests_create_no_sessions(client):
    sessions = client.app.state.sessions
    for _ in range(50):
        assert client.get("/expenses").status_code == 401
    client.get("/analytics/summary")
    client.get("/auth/me")
    client.post("/auth/sign-out")
    client.post("/session/activity", json={"kind": "scroll"})
    client.get("/ui")
    assert len(sessions) == 0
    assert "expense_session" not in client.cookies


def test_idle_expiry_signs_out_and_releases_session(settings):
    import time

    from fastapi.testclient import TestClient

    from app.main import create_app

    settings.session_idle_timeout_seconds = 0.2
    with TestClient(create_app(settings)) as client:
        sessions = client.app.state.sessions
        client.post("/auth/sign-up", json={"email": "ada@example.com", "password": "secret1"})
        time.sleep(0.6)
        assert client.get("/auth/me").json()["signed_in"] is False
        assert len(sessions) == 0

        resp = client.post("/auth/sign-in", json={"email": "ada@example.com", "password": "secret1"})
        assert resp.json()["signed_in"] is True
        assert len(sessions) == 1
        time.sleep(0.6)
        assert client.get("/auth/me").json()["signed_in"] is False
        assert len(sessions) == 0
