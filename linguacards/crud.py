from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .utils.time import app_today, utc_now

logger = logging.getLogger(__name__)


def dialect_insert(db: Session, model):
    """INSERT construct that supports ``on_conflict_do_update`` for the bound dialect."""
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert(model)
    if name == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upserts are not supported on {name}")


# ----------------- Users -----------------

def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_telegram_id(db: Session, telegram_id: int) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.telegram_id == telegram_id).first()


def create_user(db: Session, tg_user: schemas.TelegramUser) -> models.User:
    user = models.User(
        telegram_id=tg_user.id,
        username=tg_user.username,
        first_name=tg_user.first_name,
        last_name=tg_user.last_name,
        language_code=tg_user.language_code or "en",
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise
    db.refresh(user)
    logger.info("Created user for telegram id %s", tg_user.id)
    return user


def update_user(db: Session, user: models.User, data: schemas.UserUpdate) -> models.User:
    # only fields the caller explicitly set; an explicit None clears the column
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user


def find_or_create_user(db: Session, tg_user: schemas.TelegramUser) -> models.User:
    user = get_user_by_telegram_id(db, tg_user.id)
    if user is None:
        try:
            return create_user(db, tg_user)
        except IntegrityError:
            # created by a concurrent request in the meantime
            user = get_user_by_telegram_id(db, tg_user.id)
            if user is None:
                raise

    changes = {}
    for field in ("username", "first_name", "last_name", "language_code"):
        value = getattr(tg_user, field)
        if value is not None and value != getattr(user, field):
            changes[field] = value
    if not changes:
        return user
    return update_user(db, user, schemas.UserUpdate(**changes))


# ----------------- Decks -----------------

def get_deck(db: Session, deck_id: int) -> Optional[models.Deck]:
    return db.query(models.Deck).filter(models.Deck.id == deck_id).first()


def create_deck(db: Session, payload: schemas.DeckCreate) -> models.Deck:
    deck = models.Deck(**payload.model_dump(), cards_count=0)
    db.add(deck)
    db.commit()
    db.refresh(deck)
    return deck


def refresh_deck_cards_count(db: Session, deck_id: int) -> int:
    count = (
        db.query(func.count(models.Card.id))
        .filter(models.Card.deck_id == deck_id, models.Card.deleted_at.is_(None))
        .scalar()
    )
    db.query(models.Deck).filter(models.Deck.id == deck_id).update(
        {models.Deck.cards_count: count}, synchronize_session=False
    )
    return count


# ----------------- Cards -----------------

def get_card(db: Session, card_id: int) -> Optional[models.Card]:
    """Active (not soft-deleted) card by id."""
    return (
        db.query(models.Card)
        .filter(models.Card.id == card_id, models.Card.deleted_at.is_(None))
        .first()
    )


def list_deck_cards(db: Session, deck_id: int) -> List[models.Card]:
    return (
        db.query(models.Card)
        .filter(models.Card.deck_id == deck_id, models.Card.deleted_at.is_(None))
        .order_by(models.Card.sort_order.asc(), models.Card.id.asc())
        .all()
    )


def create_card(db: Session, deck_id: int, payload: schemas.CardCreate) -> models.Card:
    last = (
        db.query(func.max(models.Card.sort_order))
        .filter(models.Card.deck_id == deck_id)
        .scalar()
    )
    card = models.Card(
        deck_id=deck_id,
        ru_text=payload.ru_text.strip(),
        en_text=payload.en_text.strip(),
        example_ru=payload.example_ru,
        example_en=payload.example_en,
        sort_order=(last or 0) + 1,
    )
    db.add(card)
    db.flush()
    refresh_deck_cards_count(db, deck_id)
    db.commit()
    db.refresh(card)
    return card


def soft_delete_card(db: Session, card_id: int) -> bool:
    card = get_card(db, card_id)
    if not card:
        return False
    card.deleted_at = utc_now()
    db.flush()
    refresh_deck_cards_count(db, card.deck_id)
    db.commit()
    return True


# ----------------- Subscriptions -----------------

def get_user_deck(db: Session, user_id: int, deck_id: int) -> Optional[models.UserDeck]:
    return (
        db.query(models.UserDeck)
        .filter(models.UserDeck.user_id == user_id, models.UserDeck.deck_id == deck_id)
        .first()
    )


def active_deck_ids(user_id: int):
    """SELECT of deck ids the user is actively subscribed to, for use in ``in_()``."""
    return select(models.UserDeck.deck_id).where(
        models.UserDeck.user_id == user_id, models.UserDeck.is_active.is_(True)
    )


# ----------------- Daily stats -----------------

def get_daily_stat(db: Session, user_id: int, day: Optional[date] = None) -> Optional[models.DailyStat]:
    if day is None:
        day = app_today()
    return (
        db.query(models.DailyStat)
        .filter(models.DailyStat.user_id == user_id, models.DailyStat.date == day)
        .first()
    )


def upsert_daily_stat(db: Session, user_id: int, is_correct: bool, day: Optional[date] = None) -> None:
    """Atomic per-row increment; does not commit."""
    if day is None:
        day = app_today()
    correct = 1 if is_correct else 0
    wrong = 0 if is_correct else 1

    table = models.DailyStat.__table__
    stmt = dialect_insert(db, models.DailyStat).values(
        user_id=user_id,
        date=day,
        cards_studied=1,
        correct_answers=correct,
        wrong_answers=wrong,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "date"],
        set_={
            "cards_studied": table.c.cards_studied + 1,
            "correct_answers": table.c.correct_answers + correct,
            "wrong_answers": table.c.wrong_answers + wrong,
        },
    )
    db.execute(stmt)
