from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Optional
from urllib.parse import parse_qsl

from pydantic import ValidationError as PydanticValidationError

from ..config import settings
from ..schemas import TelegramUser


class InvalidInitData(Exception):
    pass


class BotTokenNotConfigured(RuntimeError):
    """initData cannot be checked without the bot token."""


def _secret_key(bot_token: str) -> bytes:
    return hmac.new(b"WebAppData", bot_token.encode("utf-8"), hashlib.sha256).digest()


def data_check_string(fields: dict[str, str]) -> str:
    return "\n".join(f"{k}={v}" for k, v in sorted(fields.items()))


def sign_init_data(fields: dict[str, str], bot_token: str) -> str:
    """Hash Telegram would attach to these fields (hex)."""
    return hmac.new(
        _secret_key(bot_token),
        data_check_string(fields).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def validate_init_data(
    init_data: str,
    bot_token: Optional[str] = None,
    max_age_seconds: Optional[int] = None,
    now: Optional[float] = None,
) -> TelegramUser:
    """
    Verify Mini App initData and return the embedded user.
    https://core.telegram.org/bots/webapps#validating-data-received-via-the-mini-app
    """
    bot_token = bot_token if bot_token is not None else settings.telegram_bot_token
    if max_age_seconds is None:
        max_age_seconds = settings.init_data_max_age_seconds
    if not bot_token:
        raise BotTokenNotConfigured("TELEGRAM_BOT_TOKEN is not configured")
    if not init_data:
        raise InvalidInitData("Missing initData")

    fields = dict(parse_qsl(init_data, keep_blank_values=True))
    received_hash = fields.pop("hash", None)
    if not received_hash:
        raise InvalidInitData("Missing hash in initData")

    expected = sign_init_data(fields, bot_token)
    if not hmac.compare_digest(expected, received_hash):
        raise InvalidInitData("Invalid hash")

    try:
        auth_date = int(fields.get("auth_date", "0"))
    except ValueError:
        raise InvalidInitData("Invalid auth_date")
    current = time.time() if now is None else now
    if current - auth_date > max_age_seconds:
        raise InvalidInitData("initData is too old")

    raw_user = fields.get("user")
    if not raw_user:
        raise InvalidInitData("Missing user data")
    try:
        return TelegramUser.model_validate(json.loads(raw_user))
    except (ValueError, PydanticValidationError):
        raise InvalidInitData("Malformed user data")
