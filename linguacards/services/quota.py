from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..config import settings
from ..errors import QuotaExceededError, ValidationError
from ..utils.time import app_today, utc_now

logger = logging.getLogger(__name__)

UNLIMITED = -1


def _add_month(dt: datetime) -> datetime:
    year = dt.year + dt.month // 12
    month = dt.month % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def is_premium(db: Session, user: models.User, now: Optional[datetime] = None) -> bool:
    """Premium check with lazy expiry: an expired grant is cleared on read."""
    if not user.is_premium:
        return False

    now = now or utc_now()
    if user.premium_until is not None and now > user.premium_until:
        crud.update_user(db, user, schemas.UserUpdate(is_premium=False, premium_until=None))
        logger.info("Premium expired for user %s", user.id)
        return False

    return True


def daily_limit_for(user: models.User) -> int:
    if user.daily_cards_limit is not None:
        return user.daily_cards_limit
    return settings.free_daily_cards_limit


def get_daily_limit_info(db: Session, user: models.User) -> schemas.DailyLimitOut:
    if is_premium(db, user):
        return schemas.DailyLimitOut(
            cards_studied_today=_studied_today(db, user.id),
            daily_limit=UNLIMITED,
            remaining_cards=UNLIMITED,
            is_limit_exceeded=False,
            is_premium=True,
        )

    studied = _studied_today(db, user.id)
    limit = daily_limit_for(user)
    return schemas.DailyLimitOut(
        cards_studied_today=studied,
        daily_limit=limit,
        remaining_cards=max(0, limit - studied),
        is_limit_exceeded=studied >= limit,
        is_premium=False,
    )


def ensure_within_limit(db: Session, user: models.User) -> schemas.DailyLimitOut:
    info = get_daily_limit_info(db, user)
    if info.is_limit_exceeded:
        logger.info(
            "Daily limit reached for user %s (%s/%s)",
            user.id,
            info.cards_studied_today,
            info.daily_limit,
        )
        raise QuotaExceededError(info)
    return info


def _studied_today(db: Session, user_id: int) -> int:
    row = crud.get_daily_stat(db, user_id, app_today())
    return row.cards_studied if row else 0


def grant_premium(db: Session, user: models.User, duration: str) -> models.User:
    try:
        duration = schemas.PremiumDuration(duration)
    except ValueError:
        raise ValidationError(f"Unknown premium duration: {duration}")

    now = utc_now()
    if duration == schemas.PremiumDuration.DAY:
        until = now + timedelta(days=1)
    elif duration == schemas.PremiumDuration.MONTH:
        until = _add_month(now)
    else:
        until = None

    user = crud.update_user(db, user, schemas.UserUpdate(is_premium=True, premium_until=until))
    logger.info("Granted %s premium to user %s", duration.value, user.id)
    return user


def reset_daily_limit(db: Session, user: models.User) -> schemas.DailyLimitOut:
    """Zero today's studied counter (limit unlock). Answer counters are kept."""
    row = crud.get_daily_stat(db, user.id, app_today())
    if row is not None:
        row.cards_studied = 0
        db.commit()
    logger.info("Daily limit reset for user %s", user.id)
    return get_daily_limit_info(db, user)
