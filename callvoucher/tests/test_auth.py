from callvoucher.schemas import TokenResponse


def test_login_success(client, admin, audit):
    response = client.post("/api/v1/admin/login", json={"username": "admin", "password": "adminpassword"})
    assert response.status_code == 200
    data = TokenResponse(**response.json())
    assert data.access_token
    assert data.token_type == "bearer"
    assert audit.events[-1].action == "admin_login"
    assert audit.events[-1].details == {"status": "success"}


def test_login_failure(client, admin):
    response = client.post("/api/v1/admin/login", json={"username": "admin", "password": "wrong-password"})
    assert response.status_code == 401


def test_login_unknown_user(client):
    response = client.post("/api/v1/admin/login", json={"username": "nobody", "password": "whatever"})
    assert response.status_code == 401


def test_login_is_rate_limited(client, admin, monkeypatch):
    from callvoucher.services import rate_limit

    monkeypatch.setattr(rate_limit.login_limiter, "limit", 2)
    for _ in range(2):
        assert client.post("/api/v1/admin/login", json={"username": "admin", "password": "bad-pass"}).status_code == 401
    response = client.post("/api/v1/admin/login", json={"username": "admin", "password": "adminpassword"})
    assert response.status_code == 429
