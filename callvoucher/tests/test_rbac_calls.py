import pytest


@pytest.mark.parametrize(
    "method,path",
    [
        ("post", "/api/v1/admin/vouchers/generate"),
        ("post", "/api/v1/admin/vouchers/batch"),
        ("get", "/api/v1/admin/vouchers"),
        ("get", "/api/v1/admin/calls"),
        ("get", "/api/v1/admin/dashboard/summary"),
    ],
)
def test_admin_endpoints_require_auth(client, method, path):
    response = getattr(client, method)(path)
    assert response.status_code == 401


def test_invalid_token_is_rejected(client):
    response = client.get("/api/v1/admin/calls", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_inactive_admin_is_rejected(client, admin_headers, session_factory, admin):
    from callvoucher.models import AdminUser

    with session_factory() as db, db.begin():
        db.get(AdminUser, admin.id).is_active = False

    response = client.get("/api/v1/admin/calls", headers=admin_headers)
    assert response.status_code == 401


def test_device_endpoints_do_not_require_auth(client):
    response = client.post("/api/v1/vouchers/validate", json={"code": "UNKNOWN", "deviceId": "device-a"})
    assert response.status_code == 200
