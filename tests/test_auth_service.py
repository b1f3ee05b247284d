import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from datetime import timedelta
from urllib.parse import parse_qs, urlparse
import pytest
from sqlalchemy import update
from auth_service import AuthService, LoggingMagicLinkSender, hash_code, safe_redirect
from core.db import utcnow
from models.magic_link import MagicLinkToken
from utils.exceptions import CustomException
from utils.jwt import decode_token


def code_from(link):
    return parse_qs(urlparse(link).query)["code"][0]


@pytest.mark.asyncio
async def test_magic_link_stores_only_hash_and_sends_link(db_session):
    sender = LoggingMagicLinkSender()
    auth = AuthService(db_session, sender=sender, base_url="http://test")
    await auth.sign_in_with_magic_link("kim@example.com", first_name="Kim", redirect_to="/profile")
    [(email, link)] = sender.sent
    assert email == "kim@example.com"
    assert link.startswith("http://test/authentication/confirm?code=")
    assert parse_qs(urlparse(link).query)["next"] == ["/profile"]

    code = code_from(link)
    token = (await db_session.execute(
        MagicLinkToken.__table__.select().where(MagicLinkToken.email == "kim@example.com"))).first()
    assert token.token_hash == hash_code(code)
    assert code not in token.token_hash


@pytest.mark.asyncio
async def test_exchange_creates_profile_and_returns_jwt(db_session):
    sender = LoggingMagicLinkSender()
    auth = AuthService(db_session, sender=sender)
    await auth.sign_in_with_magic_link("new@example.com", first_name="New", last_name="User")
    token, profile = await auth.exchange_code_for_session(code_from(sender.sent[0][1]))
    assert profile.email == "new@example.com"
    assert profile.first_name == "New"
    assert profile.auth_user_id
    assert decode_token(token.access_token)["sub"] == profile.id
    assert token.redirect_to == "/"
    assert (await auth.get_current_user(token.access_token)).id == profile.id


@pytest.mark.asyncio
async def test_code_is_single_use(db_session):
    sender = LoggingMagicLinkSender()
    auth = AuthService(db_session, sender=sender)
    await auth.sign_in_with_magic_link("kim@example.com")
    code = code_from(sender.sent[0][1])
    await auth.exchange_code_for_session(code)
    with pytest.raises(CustomException) as exc_info:
        await auth.exchange_code_for_session(code)
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_expired_and_unknown_codes_are_rejected(db_session):
    sender = LoggingMagicLinkSender()
    auth = AuthService(db_session, sender=sender)
    await auth.sign_in_with_magic_link("kim@example.com")
    await db_session.execute(update(MagicLinkToken).values(expires_at=utcnow() - timedelta(minutes=1)))
    await db_session.commit()
    with pytest.raises(CustomException):
        await auth.exchange_code_for_session(code_from(sender.sent[0][1]))
    with pytest.raises(CustomException):
        await auth.exchange_code_for_session("bogus")
    with pytest.raises(CustomException):
        await auth.exchange_code_for_session("")


@pytest.mark.asyncio
async def test_get_current_user_rejects_bad_tokens(db_session):
    auth = AuthService(db_session)
    for token in [None, "not-a-jwt"]:
        with pytest.raises(CustomException):
            await auth.get_current_user(token)


@pytest.mark.asyncio
async def test_check_email_exists_swallows_errors(db_session):
    auth = AuthService(db_session)

    async def broken(email):
        raise RuntimeError("db down")

    auth.registry.email_exists = broken
    assert await auth.check_email_exists("kim@example.com") is False


def test_safe_redirect():
    assert safe_redirect("/profile") == "/profile"
    assert safe_redirect("https://evil.example.com") == "/"
    assert safe_redirect("//evil.example.com") == "/"
    assert safe_redirect(None) == "/"
