from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..errors import NotFoundError
from ..models import ProgressStatus
from ..utils.time import utc_now

logger = logging.getLogger(__name__)


def subscribe(db: Session, user_id: int, deck_id: int) -> models.UserDeck:
    """
    Idempotent: one row per (user, deck). A previously unsubscribed row is
    reactivated; card progress is never touched.
    """
    if crud.get_deck(db, deck_id) is None:
        raise NotFoundError("Deck not found")

    now = utc_now()
    stmt = crud.dialect_insert(db, models.UserDeck).values(
        user_id=user_id,
        deck_id=deck_id,
        is_active=True,
        total_cards_studied=0,
        progress_percentage=0,
        started_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "deck_id"],
        set_={"is_active": True, "last_studied_at": now},
    )
    db.execute(stmt)
    db.commit()

    return crud.get_user_deck(db, user_id, deck_id)


def unsubscribe(db: Session, user_id: int, deck_id: int) -> bool:
    updated = (
        db.query(models.UserDeck)
        .filter(models.UserDeck.user_id == user_id, models.UserDeck.deck_id == deck_id)
        .update({models.UserDeck.is_active: False}, synchronize_session=False)
    )
    db.commit()
    return updated > 0


def is_subscribed(db: Session, user_id: int, deck_id: int) -> bool:
    ud = crud.get_user_deck(db, user_id, deck_id)
    return bool(ud and ud.is_active)


def _deck_counters(db: Session, user_id: int, deck_ids: list[int]) -> dict[int, dict]:
    if not deck_ids:
        return {}

    rows = (
        db.query(
            models.Card.deck_id,
            func.count(models.Card.id),
            func.count(models.UserProgress.id),
            func.sum(case((models.UserProgress.status == ProgressStatus.KNOWN.value, 1), else_=0)),
            func.sum(case((models.UserProgress.status == ProgressStatus.REPEAT.value, 1), else_=0)),
        )
        .outerjoin(
            models.UserProgress,
            and_(
                models.UserProgress.card_id == models.Card.id,
                models.UserProgress.user_id == user_id,
            ),
        )
        .filter(models.Card.deck_id.in_(deck_ids), models.Card.deleted_at.is_(None))
        .group_by(models.Card.deck_id)
        .all()
    )

    out = {}
    for deck_id, total, studied, known, repeat in rows:
        known = int(known or 0)
        repeat = int(repeat or 0)
        out[deck_id] = {
            "total_cards_studied": int(studied or 0),
            "cards_known": known,
            "cards_repeat": repeat,
            "cards_new": int(total) - known - repeat,
            "progress_percentage": float(round(known * 100.0 / total)) if total else 0.0,
        }
    return out


def _with_progress(
    deck: models.Deck,
    counters: dict,
    ud: Optional[models.UserDeck],
) -> schemas.DeckWithProgressOut:
    c = counters.get(deck.id) or {
        "total_cards_studied": 0,
        "cards_known": 0,
        "cards_repeat": 0,
        "cards_new": 0,
        "progress_percentage": 0.0,
    }
    return schemas.DeckWithProgressOut(
        **schemas.DeckOut.model_validate(deck).model_dump(),
        **c,
        is_subscribed=bool(ud and ud.is_active),
        started_at=ud.started_at if ud else None,
        last_studied_at=ud.last_studied_at if ud else None,
    )


def list_public_decks(db: Session, user_id: int) -> list[schemas.DeckWithProgressOut]:
    decks = (
        db.query(models.Deck)
        .filter(models.Deck.is_public.is_(True))
        .order_by(models.Deck.sort_order.asc(), models.Deck.created_at.asc(), models.Deck.id.asc())
        .all()
    )
    subs = {
        ud.deck_id: ud
        for ud in db.query(models.UserDeck).filter(models.UserDeck.user_id == user_id).all()
    }
    counters = _deck_counters(db, user_id, [d.id for d in decks])
    return [_with_progress(d, counters, subs.get(d.id)) for d in decks]


def list_user_decks(db: Session, user_id: int) -> list[schemas.DeckWithProgressOut]:
    rows = (
        db.query(models.Deck, models.UserDeck)
        .join(models.UserDeck, models.UserDeck.deck_id == models.Deck.id)
        .filter(models.UserDeck.user_id == user_id, models.UserDeck.is_active.is_(True))
        .order_by(
            models.UserDeck.last_studied_at.desc().nulls_last(),
            models.UserDeck.started_at.desc(),
        )
        .all()
    )
    counters = _deck_counters(db, user_id, [d.id for d, _ in rows])
    return [_with_progress(d, counters, ud) for d, ud in rows]
