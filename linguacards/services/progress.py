from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import and_, case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..config import settings
from ..database import begin_write
from ..errors import NotFoundError, PersistenceError
from ..models import ProgressStatus
from ..utils.time import app_today, utc_now

logger = logging.getLogger(__name__)


def status_from_accuracy(accuracy: float, correct_answers: int) -> str:
    """
    - no correct answers yet      -> new
    - accuracy >= threshold (80%) -> known
    - anything else               -> repeat
    """
    if correct_answers == 0:
        return ProgressStatus.NEW.value
    if accuracy >= settings.known_accuracy_threshold:
        return ProgressStatus.KNOWN.value
    return ProgressStatus.REPEAT.value


def _accuracy(correct: int, repetitions: int) -> float:
    if repetitions <= 0:
        return 0.0
    return correct / repetitions * 100


def apply_answer(rec: models.UserProgress, is_correct: bool) -> models.UserProgress:
    """Fold one answer into a progress row (new or existing). Pure arithmetic, no I/O."""
    rec.repetitions = (rec.repetitions or 0) + 1
    if is_correct:
        rec.correct_answers = (rec.correct_answers or 0) + 1
        rec.wrong_answers = rec.wrong_answers or 0
        rec.current_streak = (rec.current_streak or 0) + 1
    else:
        rec.correct_answers = rec.correct_answers or 0
        rec.wrong_answers = (rec.wrong_answers or 0) + 1
        rec.current_streak = 0

    rec.best_streak = max(rec.best_streak or 0, rec.current_streak)
    rec.accuracy_percentage = _accuracy(rec.correct_answers, rec.repetitions)
    rec.status = status_from_accuracy(rec.accuracy_percentage, rec.correct_answers)
    rec.last_studied_at = utc_now()
    return rec


def submit_answer(
    db: Session,
    user_id: int,
    card_id: int,
    is_correct: bool,
    direction: Optional[str] = None,
) -> models.UserProgress:
    """
    Record one answer. Progress row, review history, daily stat and the deck
    aggregate are written in a single transaction; on any database error the
    whole thing is rolled back and PersistenceError is raised.
    """
    if crud.get_user(db, user_id) is None:
        raise NotFoundError("User not found")
    card = crud.get_card(db, card_id)
    if card is None:
        raise NotFoundError("Card not found")
    deck_id = card.deck_id

    try:
        begin_write(db)
        # concurrent first answers both land on the same row
        db.execute(
            crud.dialect_insert(db, models.UserProgress)
            .values(user_id=user_id, card_id=card_id)
            .on_conflict_do_nothing(index_elements=["user_id", "card_id"])
        )
        rec = (
            db.query(models.UserProgress)
            .filter(
                models.UserProgress.user_id == user_id,
                models.UserProgress.card_id == card_id,
            )
            .with_for_update()
            .populate_existing()
            .one()
        )
        apply_answer(rec, is_correct)

        db.add(
            models.ReviewHistory(
                user_id=user_id,
                card_id=card_id,
                was_correct=is_correct,
                direction=direction,
                reviewed_at=rec.last_studied_at,
            )
        )
        crud.upsert_daily_stat(db, user_id, is_correct, app_today())

        db.flush()
        refresh_deck_aggregate(db, user_id, deck_id)

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Answer transaction failed (user=%s, card=%s)", user_id, card_id)
        raise PersistenceError("Failed to record answer") from e

    db.refresh(rec)
    return rec


def refresh_deck_aggregate(db: Session, user_id: int, deck_id: int) -> Optional[models.UserDeck]:
    """Recompute the UserDeck snapshot if the user has one for this deck. Does not commit."""
    ud = (
        db.query(models.UserDeck)
        .filter(models.UserDeck.user_id == user_id, models.UserDeck.deck_id == deck_id)
        .with_for_update()
        .first()
    )
    if ud is None:
        return None

    total = (
        db.query(func.count(models.Card.id))
        .filter(models.Card.deck_id == deck_id, models.Card.deleted_at.is_(None))
        .scalar()
    ) or 0
    studied, known = (
        db.query(
            func.count(models.UserProgress.id),
            func.sum(case((models.UserProgress.status == ProgressStatus.KNOWN.value, 1), else_=0)),
        )
        .join(models.Card, models.Card.id == models.UserProgress.card_id)
        .filter(
            models.UserProgress.user_id == user_id,
            models.Card.deck_id == deck_id,
            models.Card.deleted_at.is_(None),
        )
        .one()
    )

    ud.total_cards_studied = studied or 0
    ud.progress_percentage = round((known or 0) * 100.0 / total, 2) if total else 0.0
    ud.last_studied_at = utc_now()
    return ud


# ----------------- Read models -----------------

def get_card_progress(db: Session, user_id: int, card_id: int) -> Optional[models.UserProgress]:
    return (
        db.query(models.UserProgress)
        .filter(models.UserProgress.user_id == user_id, models.UserProgress.card_id == card_id)
        .first()
    )


def _cards_with_progress_query(db: Session, user_id: int):
    return (
        db.query(models.Card, models.Deck, models.UserProgress)
        .join(models.Deck, models.Deck.id == models.Card.deck_id)
        .outerjoin(
            models.UserProgress,
            and_(
                models.UserProgress.card_id == models.Card.id,
                models.UserProgress.user_id == user_id,
            ),
        )
        .filter(models.Card.deleted_at.is_(None))
    )


def _card_with_progress(card, deck, up) -> schemas.CardWithProgressOut:
    return schemas.CardWithProgressOut(
        id=up.id if up else 0,
        card_id=card.id,
        ru_text=card.ru_text,
        en_text=card.en_text,
        deck_id=deck.id,
        deck_title=deck.title,
        deck_emoji=deck.emoji,
        status=up.status if up else ProgressStatus.NEW.value,
        repetitions=up.repetitions if up else 0,
        correct_answers=up.correct_answers if up else 0,
        wrong_answers=up.wrong_answers if up else 0,
        current_streak=up.current_streak if up else 0,
        best_streak=up.best_streak if up else 0,
        accuracy_percentage=up.accuracy_percentage if up else 0.0,
    )


def get_deck_progress(db: Session, user_id: int, deck_id: int) -> list[schemas.CardWithProgressOut]:
    if crud.get_deck(db, deck_id) is None:
        raise NotFoundError("Deck not found")
    rows = (
        _cards_with_progress_query(db, user_id)
        .filter(models.Card.deck_id == deck_id)
        .order_by(models.Card.sort_order.asc(), models.Card.id.asc())
        .all()
    )
    return [_card_with_progress(*row) for row in rows]


def get_all_decks_progress(db: Session, user_id: int) -> list[schemas.CardWithProgressOut]:
    rows = (
        _cards_with_progress_query(db, user_id)
        .filter(models.Card.deck_id.in_(crud.active_deck_ids(user_id)))
        .order_by(models.Deck.title.asc(), models.Card.sort_order.asc(), models.Card.id.asc())
        .all()
    )
    return [_card_with_progress(*row) for row in rows]


def get_user_stats(db: Session, user_id: int) -> schemas.UserStatsOut:
    rows = (
        db.query(models.UserProgress.status, func.count(models.UserProgress.id))
        .filter(models.UserProgress.user_id == user_id)
        .group_by(models.UserProgress.status)
        .all()
    )
    counts = {s.value: 0 for s in ProgressStatus}
    for status, c in rows:
        if status in counts:
            counts[status] = int(c)

    avg_accuracy = (
        db.query(func.avg(models.UserProgress.accuracy_percentage))
        .filter(models.UserProgress.user_id == user_id)
        .scalar()
    )

    daily = crud.get_daily_stat(db, user_id, app_today())

    return schemas.UserStatsOut(
        total_studied=sum(counts.values()),
        cards_known=counts[ProgressStatus.KNOWN.value],
        cards_repeat=counts[ProgressStatus.REPEAT.value],
        cards_new=counts[ProgressStatus.NEW.value],
        avg_accuracy=float(avg_accuracy or 0),
        today=schemas.TodayStatsOut(
            cards_studied=daily.cards_studied if daily else 0,
            correct_answers=daily.correct_answers if daily else 0,
            wrong_answers=daily.wrong_answers if daily else 0,
        ),
    )
