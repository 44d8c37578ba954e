from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from .. import schemas
from ..errors import NotFoundError, PersistenceError, QuotaExceededError
from ..services import progress as progress_service
from ..services import quota

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/progress", tags=["progress"])


@router.post("/answer", response_model=schemas.SubmitAnswerOut)
def submit_answer(
    payload: schemas.SubmitAnswerIn,
    current_user=Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        quota.ensure_within_limit(db, current_user)
        rec = progress_service.submit_answer(
            db,
            current_user.id,
            payload.card_id,
            payload.is_correct,
            direction=payload.direction,
        )
    except QuotaExceededError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": "DAILY_LIMIT_EXCEEDED",
                "message": str(e),
                "limitInfo": e.limit_info.model_dump(by_alias=True),
            },
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError:
        raise HTTPException(status_code=500, detail="Database error")

    return schemas.SubmitAnswerOut(
        data=schemas.UserProgressOut.model_validate(rec),
        limit_info=quota.get_daily_limit_info(db, current_user),
    )


@router.get("/stats", response_model=schemas.UserStatsOut)
def my_stats(current_user=Depends(get_current_user), db: Session = Depends(get_db)):
    return progress_service.get_user_stats(db, current_user.id)


@router.get("/card/{card_id}", response_model=schemas.CardProgressOut)
def card_progress(card_id: int, current_user=Depends(get_current_user), db: Session = Depends(get_db)):
    return {"data": progress_service.get_card_progress(db, current_user.id, card_id)}


@router.get("/deck/{deck_id}", response_model=schemas.CardsWithProgressOut)
def deck_progress(deck_id: int, current_user=Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        return {"data": progress_service.get_deck_progress(db, current_user.id, deck_id)}
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/all-decks", response_model=schemas.CardsWithProgressOut)
def all_decks_progress(current_user=Depends(get_current_user), db: Session = Depends(get_db)):
    return {"data": progress_service.get_all_decks_progress(db, current_user.id)}
