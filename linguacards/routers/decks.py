from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from .. import crud, schemas
from ..errors import NotFoundError
from ..services import deck as deck_service

router = APIRouter(prefix="/decks", tags=["decks"])


@router.get("", response_model=list[schemas.DeckWithProgressOut])
def list_public_decks(db: Session = Depends(get_db), user=Depends(get_current_user)):
    return deck_service.list_public_decks(db, user.id)


@router.get("/my")
def list_my_decks(db: Session = Depends(get_db), user=Depends(get_current_user)):
    return {"data": deck_service.list_user_decks(db, user.id)}


@router.get("/{deck_id}", response_model=schemas.DeckOut)
def get_deck(deck_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    deck = crud.get_deck(db, deck_id)
    if not deck:
        raise HTTPException(status_code=404, detail="Deck not found")
    return deck


@router.post("/{deck_id}/subscribe", response_model=schemas.SubscribeOut)
def subscribe(deck_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    try:
        user_deck = deck_service.subscribe(db, user.id, deck_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {
        "success": True,
        "data": user_deck,
        "message": "Successfully subscribed to deck",
    }


@router.delete("/{deck_id}/subscribe", response_model=schemas.SubscribeOut)
def unsubscribe(deck_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    ok = deck_service.unsubscribe(db, user.id, deck_id)
    return {
        "success": ok,
        "message": "Successfully unsubscribed from deck" if ok else "Subscription not found",
    }


@router.get("/{deck_id}/subscribed", response_model=schemas.IsSubscribedOut)
def is_subscribed(deck_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return {"is_subscribed": deck_service.is_subscribed(db, user.id, deck_id)}
