from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from .. import crud, schemas
from ..services.study import ALL_DECKS, select_study_cards, study_stats

router = APIRouter(prefix="/cards", tags=["cards"])


def _require_deck(db: Session, deck_id: int):
    if not crud.get_deck(db, deck_id):
        raise HTTPException(status_code=404, detail="Deck not found")


@router.get("/deck/{deck_id}", response_model=list[schemas.CardOut])
def list_cards(deck_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    _require_deck(db, deck_id)
    return crud.list_deck_cards(db, deck_id)


@router.get("/study-all", response_model=schemas.StudySetOut)
def study_all(
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    return {
        "cards": select_study_cards(db, ALL_DECKS, user.id, limit=limit),
        "stats": study_stats(db, ALL_DECKS, user.id),
    }


@router.get("/study/{deck_id}", response_model=schemas.StudySetOut)
def study_deck(
    deck_id: int,
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    _require_deck(db, deck_id)
    return {
        "cards": select_study_cards(db, deck_id, user.id, limit=limit),
        "stats": study_stats(db, deck_id, user.id),
    }


@router.get("/stats/{deck_id}", response_model=schemas.StudyStatsOut)
def deck_stats(deck_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    _require_deck(db, deck_id)
    return study_stats(db, deck_id, user.id)
