import asyncio

import pytest

from civic_reporter.core.config import settings
from civic_reporter.core.errors import ConflictError, RateLimitError, ValidationError
from civic_reporter.models import User
from civic_reporter.schemas import UserCreate
from civic_reporter.services import otp, users
from civic_reporter.services.otp import OtpSender, get_otp_sender
from main import app


class RecordingSender(OtpSender):
    def __init__(self):
        self.sent = []

    async def send(self, email, code):
        self.sent.append((email, code))


@pytest.fixture
def sender(api_client):
    recorder = RecordingSender()
    app.dependency_overrides[get_otp_sender] = lambda: recorder
    return recorder


async def register(api_client, email="jane@example.com"):
    response = await api_client.post(
        "/api/auth/register", json={"name": "Jane Citizen", "email": email, "password": "Secret123"}
    )
    assert response.status_code == 201
    return response.json()["data"]


async def test_concurrent_registration_with_same_email(session_factory):
    user_in = UserCreate(name="Jane Citizen", email="jane@example.com", password="Secret123")

    async def attempt():
        async with session_factory() as session:
            return await users.register_user(session, user_in)

    results = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

    assert sorted(type(result).__name__ for result in results) == ["ConflictError", "User"]
    created = next(result for result in results if isinstance(result, User))
    assert created.email == "jane@example.com"


async def test_registration_conflict_after_commit(db, make_user):
    existing = await make_user()
    with pytest.raises(ConflictError):
        await users.register_user(
            db, UserCreate(name="Someone Else", email=existing.email, password="Secret123")
        )


async def test_registration_sends_code_and_verification_logs_in(api_client, sender):
    user = await register(api_client)
    assert user["is_verified"] is False
    assert [email for email, _ in sender.sent] == ["jane@example.com"]
    code = sender.sent[0][1]

    wrong = await api_client.post(
        "/api/auth/verify-otp", json={"email": "jane@example.com", "otp": "000000" if code != "000000" else "111111"}
    )
    assert wrong.status_code == 400
    assert wrong.json() == {"success": False, "message": "Invalid or expired code"}

    verified = await api_client.post("/api/auth/verify-otp", json={"email": "jane@example.com", "otp": code})
    assert verified.status_code == 200
    data = verified.json()["data"]
    assert data["user"]["is_verified"] is True
    assert settings.AUTH_COOKIE_NAME in verified.headers.get("set-cookie", "")

    me = await api_client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.json()["data"]["is_verified"] is True

    again = await api_client.post("/api/auth/verify-otp", json={"email": "jane@example.com", "otp": code})
    assert again.status_code == 400
    assert again.json()["message"] == "Account is already verified"


async def test_repeated_wrong_codes_discard_pending_code(api_client, sender, fake_redis, monkeypatch):
    monkeypatch.setattr(settings, "OTP_MAX_FAILURES", 2)
    await register(api_client)
    code = sender.sent[0][1]
    wrong = "000000" if code != "000000" else "111111"

    first = await api_client.post("/api/auth/verify-otp", json={"email": "jane@example.com", "otp": wrong})
    assert first.status_code == 400
    second = await api_client.post("/api/auth/verify-otp", json={"email": "jane@example.com", "otp": wrong})
    assert second.status_code == 429
    assert await fake_redis.get("otp:email:jane@example.com") is None

    late = await api_client.post("/api/auth/verify-otp", json={"email": "jane@example.com", "otp": code})
    assert late.status_code == 400


async def test_resend_respects_cooldown(api_client, sender, fake_redis):
    await register(api_client)

    throttled = await api_client.post("/api/auth/resend-otp", json={"email": "jane@example.com"})
    assert throttled.status_code == 429

    await fake_redis.delete("otp:email:cooldown:jane@example.com")
    resent = await api_client.post("/api/auth/resend-otp", json={"email": "jane@example.com"})
    assert resent.status_code == 200
    assert len(sender.sent) == 2
    assert await fake_redis.get("otp:email:jane@example.com") == sender.sent[1][1]


async def test_resend_for_unknown_email_sends_nothing(api_client, sender):
    response = await api_client.post("/api/auth/resend-otp", json={"email": "nobody@example.com"})
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert sender.sent == []


async def test_verify_code_rejects_unknown_email(db):
    with pytest.raises(ValidationError):
        await otp.verify_code(db, "nobody@example.com", "123456")


async def test_issue_code_cooldown(fake_redis):
    recorder = RecordingSender()
    await otp.issue_code("Jane@Example.com", recorder)
    with pytest.raises(RateLimitError):
        await otp.issue_code("jane@example.com", recorder)
    assert recorder.sent[0][0] == "jane@example.com"
    assert len(recorder.sent) == 1
