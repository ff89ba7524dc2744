from httpx import ASGITransport, AsyncClient

from civic_reporter.core.config import settings
from civic_reporter.models import UserRole
from civic_reporter.services import queries
from main import app
from tests.conftest import auth_headers


async def test_register_login_and_me(api_client):
    payload = {"name": "Jane Citizen", "email": "Jane@Example.com", "password": "Secret123"}
    response = await api_client.post("/api/auth/register", json=payload)
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["email"] == "jane@example.com"
    assert body["data"]["role"] == "user"

    duplicate = await api_client.post("/api/auth/register", json=payload)
    assert duplicate.status_code == 409
    assert duplicate.json() == {"success": False, "message": "Email already registered"}

    login = await api_client.post("/api/auth/login", json={"email": "jane@example.com", "password": "Secret123"})
    assert login.status_code == 200
    token = login.json()["data"]["access_token"]
    assert settings.AUTH_COOKIE_NAME in login.headers.get("set-cookie", "")

    me = await api_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["data"]["name"] == "Jane Citizen"


async def test_login_with_wrong_password(api_client, make_user):
    user = await make_user()
    response = await api_client.post("/api/auth/login", json={"email": user.email, "password": "Wrong1234"})
    assert response.status_code == 401
    assert response.json()["success"] is False


async def test_register_validation_uses_envelope(api_client):
    response = await api_client.post(
        "/api/auth/register", json={"name": "J", "email": "not-an-email", "password": "short"}
    )
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert body["errors"]


async def test_auth_rate_limit(api_client, make_user, monkeypatch):
    monkeypatch.setattr(settings, "AUTH_RATE_LIMIT_REQUESTS", 2)
    user = await make_user()
    credentials = {"email": user.email, "password": "Password1"}

    for _ in range(2):
        assert (await api_client.post("/api/auth/login", json=credentials)).status_code == 200
    blocked = await api_client.post("/api/auth/login", json=credentials)
    assert blocked.status_code == 429
    assert blocked.json()["success"] is False


async def test_missing_credentials_are_rejected(api_client):
    response = await api_client.get("/api/reports/mine")
    assert response.status_code == 401
    assert response.json()["success"] is False
    assert response.headers["x-content-type-options"] == "nosniff"


async def test_create_report_with_media(api_client, make_user, media_store):
    user = await make_user()
    response = await api_client.post(
        "/api/reports",
        data={
            "title": "Overflowing bin",
            "description": "Corner of 5th and Main",
            "category": "sanitation",
            "severity": "high",
            "lat": "40.7128",
            "lng": "-74.0060",
            "address": "5th and Main",
        },
        files=[("media", ("bin.jpg", b"\xff\xd8\xff", "image/jpeg"))],
        headers=auth_headers(user),
    )

    assert response.status_code == 201
    report = response.json()["data"]
    assert report["status"] == "reported"
    assert report["location"] == {"lat": 40.7128, "lng": -74.006, "address": "5th and Main"}
    assert report["media"][0]["type"] == "image"
    assert len(report["history"]) == 1
    stored_key = report["media"][0]["url"].split("/media/", 1)[1]
    assert (media_store.root / stored_key).exists()


async def test_create_report_failure_cleans_up_media(api_client, make_user, media_store):
    user = await make_user()
    response = await api_client.post(
        "/api/reports",
        data={"title": "No location", "category": "sanitation"},
        files=[("media", ("bin.jpg", b"\xff\xd8\xff", "image/jpeg"))],
        headers=auth_headers(user),
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Location is required"}
    assert not any(media_store.root.rglob("*.jpg"))


async def test_report_read_upvote_and_delete(api_client, make_user, make_report):
    owner, voter = await make_user(), await make_user()
    report = await make_report(owner)

    public = await api_client.get(f"/api/reports/{report.id}")
    assert public.status_code == 200
    assert public.json()["data"]["has_upvoted"] is False

    first = await api_client.patch(f"/api/reports/{report.id}/upvote", headers=auth_headers(voter))
    assert first.json()["data"] == {"upvotes": 1, "has_upvoted": True}
    second = await api_client.patch(f"/api/reports/{report.id}/upvote", headers=auth_headers(voter))
    assert second.json()["data"] == {"upvotes": 0, "has_upvoted": False}

    forbidden = await api_client.delete(f"/api/reports/{report.id}", headers=auth_headers(voter))
    assert forbidden.status_code == 403

    deleted = await api_client.delete(f"/api/reports/{report.id}", headers=auth_headers(owner))
    assert deleted.status_code == 200

    missing = await api_client.get(f"/api/reports/{report.id}")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "message": "Report not found"}


async def test_my_reports_and_nearby(api_client, make_user, make_report):
    owner, other = await make_user(), await make_user()
    mine = await make_report(owner, lat=40.0, lng=-75.0)
    theirs = await make_report(other, lat=40.0005, lng=-75.0)

    listing = await api_client.get("/api/reports/mine", headers=auth_headers(owner))
    data = listing.json()["data"]
    assert data["total"] == 1
    assert [item["id"] for item in data["items"]] == [mine.id]

    nearby = await api_client.get(
        "/api/reports/nearby",
        params={"lat": 40.0, "lng": -75.0, "radius": 100},
        headers=auth_headers(owner),
    )
    items = nearby.json()["data"]
    assert [item["id"] for item in items] == [mine.id, theirs.id]
    assert items[0]["distance_m"] == 0

    invalid = await api_client.get(
        "/api/reports/nearby",
        params={"lat": 95, "lng": -75.0, "radius": 100},
        headers=auth_headers(owner),
    )
    assert invalid.status_code == 400


async def test_admin_endpoints_require_admin(api_client, make_user, make_report):
    citizen = await make_user()
    report = await make_report(citizen)

    for method, path, body in [
        ("get", "/api/admin/reports", None),
        ("get", "/api/admin/dashboard/stats", None),
        ("patch", f"/api/admin/reports/{report.id}/status", {"status": "resolved", "notes": ""}),
        ("patch", "/api/admin/users/1/role", {"role": "admin"}),
    ]:
        response = await api_client.request(method, path, json=body, headers=auth_headers(citizen))
        assert response.status_code == 403, path
        assert response.json()["success"] is False


async def test_admin_status_update_and_reject(api_client, make_user, make_report):
    admin = await make_user(role=UserRole.ADMIN)
    report = await make_report(await make_user())

    updated = await api_client.patch(
        f"/api/admin/reports/{report.id}/status",
        json={"status": "in_progress", "notes": "Crew dispatched"},
        headers=auth_headers(admin),
    )
    assert updated.status_code == 200
    data = updated.json()["data"]
    assert data["status"] == "in_progress"
    assert data["history"][-1]["notes"] == "Crew dispatched"
    assert data["history"][-1]["updated_by"]["id"] == admin.id

    no_reason = await api_client.patch(
        f"/api/admin/reports/{report.id}/reject", json={"reason": ""}, headers=auth_headers(admin)
    )
    assert no_reason.status_code == 400
    assert no_reason.json()["message"] == "Rejection reason is required"

    rejected = await api_client.patch(
        f"/api/admin/reports/{report.id}/reject", json={"reason": "Private property"}, headers=auth_headers(admin)
    )
    assert rejected.json()["data"]["status"] == "rejected"

    listing = await api_client.get(
        "/api/admin/reports", params={"status": "rejected"}, headers=auth_headers(admin)
    )
    assert [item["id"] for item in listing.json()["data"]["items"]] == [report.id]

    stats = await api_client.get("/api/admin/dashboard/stats", headers=auth_headers(admin))
    assert stats.json()["data"]["reports"]["by_status"]["rejected"] == 1


async def test_admin_user_management(api_client, make_user, make_report):
    admin = await make_user(role=UserRole.ADMIN)
    citizen = await make_user(name="Sam Resident")
    await make_report(citizen)

    search = await api_client.get("/api/admin/users", params={"search": "resident"}, headers=auth_headers(admin))
    assert [item["id"] for item in search.json()["data"]["items"]] == [citizen.id]

    detail = await api_client.get(f"/api/admin/users/{citizen.id}", headers=auth_headers(admin))
    assert detail.json()["data"]["stats"]["total"] == 1
    assert len(detail.json()["data"]["recent_reports"]) == 1

    self_demote = await api_client.patch(
        f"/api/admin/users/{admin.id}/role", json={"role": "user"}, headers=auth_headers(admin)
    )
    assert self_demote.status_code == 400

    promoted = await api_client.patch(
        f"/api/admin/users/{citizen.id}/role", json={"role": "admin"}, headers=auth_headers(admin)
    )
    assert promoted.json()["data"]["role"] == "admin"

    deleted = await api_client.delete(f"/api/admin/users/{citizen.id}", headers=auth_headers(admin))
    assert deleted.status_code == 200
    stats = await api_client.get("/api/admin/dashboard/stats", headers=auth_headers(admin))
    assert stats.json()["data"]["reports"]["total"] == 0


async def test_deactivated_user_is_rejected_immediately(api_client, make_user):
    admin = await make_user(role=UserRole.ADMIN)
    citizen = await make_user()
    headers = auth_headers(citizen)
    assert (await api_client.get("/api/reports/mine", headers=headers)).status_code == 200

    response = await api_client.patch(
        f"/api/admin/users/{citizen.id}/status", json={"is_active": False}, headers=auth_headers(admin)
    )
    assert response.json()["data"]["is_active"] is False

    blocked = await api_client.get("/api/reports/mine", headers=headers)
    assert blocked.status_code == 401
    assert blocked.json()["message"] == "Account is deactivated"


async def test_unknown_route_uses_envelope(api_client):
    response = await api_client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.json()["success"] is False


async def test_nearby_returns_every_match_unless_limited(api_client, make_user, make_report):
    owner = await make_user()
    reports = [await make_report(owner, lat=40.0 + i * 0.0001, lng=-75.0) for i in range(4)]
    params = {"lat": 40.0, "lng": -75.0, "radius": 1000}

    everything = await api_client.get("/api/reports/nearby", params=params, headers=auth_headers(owner))
    assert [item["id"] for item in everything.json()["data"]] == [report.id for report in reports]

    closest = await api_client.get(
        "/api/reports/nearby", params={**params, "limit": 2}, headers=auth_headers(owner)
    )
    assert [item["id"] for item in closest.json()["data"]] == [reports[0].id, reports[1].id]


async def test_unexpected_errors_keep_security_headers(api_client, monkeypatch):
    async def broken_get_report(db, report_id):
        raise RuntimeError("boom")

    monkeypatch.setattr(queries, "get_report", broken_get_report)
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/api/reports/1")

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Server Error"}
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["x-frame-options"] == "DENY"
