from __future__ import annotations

import random
from typing import Optional

from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..models import STATUS_PRIORITY, ProgressStatus

# scope value meaning "every deck the user is actively subscribed to"
ALL_DECKS = None

_status = func.coalesce(models.UserProgress.status, ProgressStatus.NEW.value)

_priority = case(
    (_status == ProgressStatus.REPEAT.value, STATUS_PRIORITY[ProgressStatus.REPEAT.value]),
    (_status == ProgressStatus.NEW.value, STATUS_PRIORITY[ProgressStatus.NEW.value]),
    else_=STATUS_PRIORITY[ProgressStatus.KNOWN.value],
)


def _scoped(q, user_id: int, deck_id: Optional[int]):
    q = q.outerjoin(
        models.UserProgress,
        and_(
            models.UserProgress.card_id == models.Card.id,
            models.UserProgress.user_id == user_id,
        ),
    ).filter(models.Card.deleted_at.is_(None))

    if deck_id is ALL_DECKS:
        return q.filter(models.Card.deck_id.in_(crud.active_deck_ids(user_id)))
    return q.filter(models.Card.deck_id == deck_id)


def _to_study_card(card: models.Card, deck: models.Deck, up: Optional[models.UserProgress]) -> schemas.StudyCardOut:
    return schemas.StudyCardOut(
        id=card.id,
        deck_id=card.deck_id,
        ru_text=card.ru_text,
        en_text=card.en_text,
        example_ru=card.example_ru,
        example_en=card.example_en,
        sort_order=card.sort_order,
        deck_title=deck.title,
        deck_emoji=deck.emoji,
        status=up.status if up else ProgressStatus.NEW.value,
        repetitions=up.repetitions if up else 0,
        correct_answers=up.correct_answers if up else 0,
        wrong_answers=up.wrong_answers if up else 0,
        current_streak=up.current_streak if up else 0,
        last_studied_at=up.last_studied_at if up else None,
    )


def select_study_cards(
    db: Session,
    deck_id: Optional[int],
    user_id: int,
    limit: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> list[schemas.StudyCardOut]:
    """
    Cards to study, ordered repeat -> new -> known.

    Single deck: within a status, least recently studied first (never studied
    first of all), then deck sort order.
    All decks (``deck_id=ALL_DECKS``): shuffled within each status, anew on every
    call. Pass ``rng`` for a reproducible order.
    """
    base = db.query(models.Card, models.Deck, models.UserProgress).join(
        models.Deck, models.Deck.id == models.Card.deck_id
    )
    q = _scoped(base, user_id, deck_id)
    if limit is not None and limit <= 0:
        limit = None

    if deck_id is not ALL_DECKS:
        q = q.order_by(
            _priority,
            models.UserProgress.last_studied_at.asc().nulls_first(),
            models.Card.sort_order.asc(),
            models.Card.id.asc(),
        )
        if limit is not None:
            q = q.limit(limit)
        return [_to_study_card(*row) for row in q.all()]

    rng = rng or random.Random()
    buckets: dict[int, list] = {p: [] for p in sorted(STATUS_PRIORITY.values())}
    # stable input order so a seeded rng gives the same result every time
    for row in q.order_by(models.Card.id.asc()).all():
        status = row[2].status if row[2] else ProgressStatus.NEW.value
        buckets[STATUS_PRIORITY[status]].append(row)

    ordered = []
    for priority in sorted(buckets):
        rows = buckets[priority]
        rng.shuffle(rows)
        ordered.extend(rows)

    if limit is not None:
        ordered = ordered[:limit]
    return [_to_study_card(*row) for row in ordered]


def study_stats(db: Session, deck_id: Optional[int], user_id: int) -> schemas.StudyStatsOut:
    """Status counts over the whole scope, regardless of any limit."""
    q = db.query(
        func.count(models.Card.id),
        func.sum(case((_status == ProgressStatus.NEW.value, 1), else_=0)),
        func.sum(case((models.UserProgress.status == ProgressStatus.REPEAT.value, 1), else_=0)),
        func.sum(case((models.UserProgress.status == ProgressStatus.KNOWN.value, 1), else_=0)),
    ).select_from(models.Card)
    total, new, repeat, known = _scoped(q, user_id, deck_id).one()

    return schemas.StudyStatsOut(
        total=int(total or 0),
        new=int(new or 0),
        repeat=int(repeat or 0),
        known=int(known or 0),
    )
