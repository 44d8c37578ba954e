from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import require_admin
from .. import crud, schemas
from ..services import quota

router = APIRouter(prefix="/admin", tags=["admin"])


def _user_or_404(db: Session, telegram_id: int):
    user = crud.get_user_by_telegram_id(db, telegram_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.post("/users/{telegram_id}/premium", response_model=schemas.UserOut)
def grant_premium(
    telegram_id: int,
    payload: schemas.GrantPremiumIn,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin),
):
    user = _user_or_404(db, telegram_id)
    return quota.grant_premium(db, user, payload.duration)


@router.post("/users/{telegram_id}/daily-limit/reset", response_model=schemas.DailyLimitOut)
def reset_daily_limit(
    telegram_id: int,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin),
):
    user = _user_or_404(db, telegram_id)
    return quota.reset_daily_limit(db, user)


@router.post("/decks", response_model=schemas.DeckOut, status_code=status.HTTP_201_CREATED)
def create_deck(
    payload: schemas.DeckCreate,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin),
):
    return crud.create_deck(db, payload)


@router.post("/decks/{deck_id}/cards", response_model=schemas.CardOut, status_code=status.HTTP_201_CREATED)
def create_card(
    deck_id: int,
    payload: schemas.CardCreate,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin),
):
    if not crud.get_deck(db, deck_id):
        raise HTTPException(status_code=404, detail="Deck not found")
    return crud.create_card(db, deck_id, payload)


@router.delete("/cards/{card_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_card(
    card_id: int,
    db: Session = Depends(get_db),
    _admin=Depends(require_admin),
):
    if not crud.soft_delete_card(db, card_id):
        raise HTTPException(status_code=404, detail="Card not found")
    return
