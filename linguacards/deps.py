import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from . import crud, schemas
from .config import settings
from .database import get_db
from .services.security import BotTokenNotConfigured, InvalidInitData, validate_init_data

logger = logging.getLogger(__name__)

DEV_USER = schemas.TelegramUser(
    id=123456789,
    first_name="Dev",
    last_name="User",
    username="devuser",
    language_code="ru",
)


def get_telegram_user(
    x_telegram_init_data: Optional[str] = Header(default=None),
    init_data: Optional[str] = Query(default=None, alias="initData"),
) -> schemas.TelegramUser:
    raw = x_telegram_init_data or init_data
    if not raw:
        if settings.dev_auth:
            return DEV_USER
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Telegram authentication data",
        )

    try:
        return validate_init_data(raw)
    except BotTokenNotConfigured:
        logger.error("Cannot authenticate request: TELEGRAM_BOT_TOKEN is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication is not configured",
        )
    except InvalidInitData as e:
        logger.info("Rejected initData: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Telegram authentication",
        )


def get_current_user(
    tg_user: schemas.TelegramUser = Depends(get_telegram_user),
    db: Session = Depends(get_db),
):
    return crud.find_or_create_user(db, tg_user)


def require_admin(current_user=Depends(get_current_user)):
    """
    Set env ADMIN_TELEGRAM_IDS="123,456" (comma-separated).
    """
    if current_user.telegram_id not in settings.admin_ids:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return current_user
