"""Sign-up, sign-in, password flows, tokens, rate limiting and mail."""
import email
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from threadspire.clients.mailer import Mailer
from threadspire.clients.redis_client import RateLimiter
from threadspire.errors import (
    AuthenticationError,
    ConflictError,
    RateLimitError,
    ThreadSpireError,
    ValidationError,
)
from threadspire.security import RESET, create_token, decode_token
from threadspire.services.auth import AuthService

PASSWORD = "correct horse"  # see conftest.make_profile


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the fixed-window limiter."""

    def __init__(self):
        self.values = {}
        self.expiry = {}

    async def incr(self, key):
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def expire(self, key, seconds):
        self.expiry[key] = seconds


# ── Tokens ─────────────────────────────────────────────────────────────────

def test_token_roundtrip_and_purpose(settings):
    token = create_token(settings, "user-1")
    assert decode_token(settings, token) == "user-1"
    with pytest.raises(AuthenticationError):
        decode_token(settings, token, purpose=RESET)


def test_expired_token_is_rejected(settings):
    token = create_token(settings, "user-1", ttl=-10)
    with pytest.raises(AuthenticationError):
        decode_token(settings, token)


# ── Rate limiter ───────────────────────────────────────────────────────────

async def test_rate_limiter_fixed_window():
    redis = FakeRedis()
    limiter = RateLimiter(redis, window=60, max_hits=5)
    results = [await limiter.hit("signup:a@b.c") for _ in range(6)]
    assert results == [True] * 5 + [False]
    assert redis.expiry == {"rate-limit:signup:a@b.c": 60}


async def test_rate_limiter_check_raises():
    limiter = RateLimiter(FakeRedis(), max_hits=1)
    await limiter.check("signup", "x")
    with pytest.raises(RateLimitError):
        await limiter.check("signup", "x")
    await limiter.check("signup", "y")


# ── Accounts ───────────────────────────────────────────────────────────────

async def test_signup_then_sign_in(backend, settings):
    async with backend.session() as db:
        token = await AuthService(db, None, backend).signup("Dana", "Dana@Example.com", "s3cretpass")
    assert decode_token(settings, token.access_token) == token.user_id

    async with backend.session() as db:
        signed_in = await AuthService(db, None, backend).sign_in("dana@example.com", "s3cretpass")
    assert signed_in.user_id == token.user_id

    async with backend.session() as db:
        with pytest.raises(AuthenticationError):
            await AuthService(db, None, backend).sign_in("dana@example.com", "wrong-password")


async def test_signup_validations(backend, alice):
    async with backend.session() as db:
        svc = AuthService(db, None, backend)
        with pytest.raises(ValidationError):
            await svc.signup("Short", "short@example.com", "1234567")
        with pytest.raises(ConflictError):
            await svc.signup("Again", alice.email.upper(), "long-enough")


async def test_signup_is_rate_limited_per_email(backend):
    limiter = RateLimiter(FakeRedis(), max_hits=1)
    async with backend.session() as db:
        await AuthService(db, None, backend, rate_limiter=limiter).signup("A", "a@x.io", "password1")
    async with backend.session() as db:
        with pytest.raises(RateLimitError):
            await AuthService(db, None, backend, rate_limiter=limiter).signup("A", "a@x.io", "password1")


async def test_password_reset_flow(backend, settings, alice):
    mailer = MagicMock()
    mailer.send_password_reset = AsyncMock()
    async with backend.session() as db:
        await AuthService(db, None, backend, mailer=mailer).request_password_reset(alice.email)

    to, token = mailer.send_password_reset.await_args.args
    assert to == alice.email
    assert decode_token(settings, token, purpose=RESET) == alice.id

    async with backend.session() as db:
        await AuthService(db, None, backend).reset_password(token, "brand-new-pass")
    async with backend.session() as db:
        assert (await AuthService(db, None, backend).sign_in(alice.email, "brand-new-pass")).user_id == alice.id


async def test_reset_token_works_only_once(backend, alice):
    mailer = MagicMock()
    mailer.send_password_reset = AsyncMock()
    async with backend.session() as db:
        await AuthService(db, None, backend, mailer=mailer).request_password_reset(alice.email)
    _, token = mailer.send_password_reset.await_args.args

    async with backend.session() as db:
        await AuthService(db, None, backend).reset_password(token, "brand-new-pass")
    async with backend.session() as db:
        with pytest.raises(AuthenticationError):
            await AuthService(db, None, backend).reset_password(token, "attacker-pass")
    async with backend.session() as db:
        assert (await AuthService(db, None, backend).sign_in(alice.email, "brand-new-pass")).user_id == alice.id


async def test_password_reset_for_unknown_email_sends_nothing(backend):
    mailer = MagicMock()
    mailer.send_password_reset = AsyncMock()
    async with backend.session() as db:
        await AuthService(db, None, backend, mailer=mailer).request_password_reset("ghost@x.io")
    mailer.send_password_reset.assert_not_awaited()


async def test_password_reset_mail_failure(backend, alice):
    mailer = MagicMock()
    mailer.send_password_reset = AsyncMock(side_effect=OSError("smtp down"))
    async with backend.session() as db:
        with pytest.raises(ThreadSpireError, match="Failed to send reset email"):
            await AuthService(db, None, backend, mailer=mailer).request_password_reset(alice.email)


async def test_access_token_cannot_reset_password(backend, settings, alice):
    async with backend.session() as db:
        with pytest.raises(AuthenticationError):
            await AuthService(db, None, backend).reset_password(
                create_token(settings, alice.id), "brand-new-pass"
            )


async def test_change_password_checks_current(backend, alice):
    async with backend.session() as db:
        with pytest.raises(AuthenticationError):
            await AuthService(db, alice, backend).change_password("nope", "another-pass")
    async with backend.session() as db:
        await AuthService(db, alice, backend).change_password(PASSWORD, "another-pass")
    async with backend.session() as db:
        assert (await AuthService(db, None, backend).sign_in(alice.email, "another-pass")).user_id == alice.id


async def test_update_profile(backend, alice):
    async with backend.session() as db:
        updated = await AuthService(db, alice, backend).update_profile(name="Alice B.", bio="Writer")
    assert (updated.name, updated.bio) == ("Alice B.", "Writer")
    async with backend.session() as db:
        public = await AuthService(db, None, backend).get_public_profile(alice.id)
    assert public.name == "Alice B."


# ── Mailer ─────────────────────────────────────────────────────────────────

async def test_mailer_sends_reset_link(settings):
    with patch("threadspire.clients.mailer.smtplib.SMTP") as smtp_cls:
        server = smtp_cls.return_value.__enter__.return_value
        await Mailer(settings).send_password_reset("a@x.io", "tok123")

    smtp_cls.assert_called_once_with(settings.smtp_host, settings.smtp_port, timeout=10)
    server.starttls.assert_called_once()
    sender, recipients, raw = server.sendmail.call_args.args
    assert sender == settings.mail_from
    assert recipients == ["a@x.io"]
    body = email.message_from_string(raw).get_payload(decode=True).decode()
    assert "https://threadspire.test/auth/reset-password?token=tok123" in body
