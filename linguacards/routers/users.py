from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps import get_current_user
from .. import schemas
from ..services import quota

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
def me(current_user=Depends(get_current_user), db: Session = Depends(get_db)):
    # clears an expired premium grant before it is reported
    quota.is_premium(db, current_user)
    return current_user


@router.get("/me/daily-limit", response_model=schemas.DailyLimitOut)
def my_daily_limit(current_user=Depends(get_current_user), db: Session = Depends(get_db)):
    return quota.get_daily_limit_info(db, current_user)
