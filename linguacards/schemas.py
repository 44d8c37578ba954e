from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ----------------- TELEGRAM / USER SECTION -----------------

class TelegramUser(BaseModel):
    """The ``user`` object inside Mini App initData."""

    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    language_code: Optional[str] = None
    is_premium: Optional[bool] = None

    model_config = ConfigDict(extra="ignore")


class UserUpdate(BaseModel):
    """Partial update: only fields that were explicitly set are applied."""

    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    language_code: Optional[str] = None
    is_premium: Optional[bool] = None
    premium_until: Optional[datetime] = None
    daily_cards_limit: Optional[int] = None


class UserOut(BaseModel):
    id: int
    telegram_id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    language_code: str
    is_premium: bool
    premium_until: Optional[datetime] = None
    daily_cards_limit: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class DailyLimitOut(BaseModel):
    cards_studied_today: int
    daily_limit: int  # -1 = unlimited
    remaining_cards: int  # -1 = unlimited
    is_limit_exceeded: bool
    is_premium: bool

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PremiumDuration(str, Enum):
    DAY = "day"
    MONTH = "month"
    LIFETIME = "lifetime"


class GrantPremiumIn(BaseModel):
    duration: PremiumDuration


# ----------------- DECK SECTION -----------------

class DeckCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    emoji: Optional[str] = None
    category: Optional[str] = None
    is_public: bool = True
    sort_order: int = 0


class DeckOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    emoji: Optional[str] = None
    category: Optional[str] = None
    cards_count: int
    is_public: bool
    sort_order: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class DeckWithProgressOut(DeckOut):
    is_subscribed: bool
    progress_percentage: float
    total_cards_studied: int
    cards_known: int
    cards_repeat: int
    cards_new: int
    started_at: Optional[datetime] = None
    last_studied_at: Optional[datetime] = None


class UserDeckOut(BaseModel):
    id: int
    user_id: int
    deck_id: int
    is_active: bool
    total_cards_studied: int
    progress_percentage: float
    started_at: datetime
    last_studied_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class SubscribeOut(BaseModel):
    success: bool
    data: Optional[UserDeckOut] = None
    message: str


class IsSubscribedOut(BaseModel):
    is_subscribed: bool


# ----------------- CARD SECTION -----------------

class CardCreate(BaseModel):
    ru_text: str = Field(min_length=1, max_length=500)
    en_text: str = Field(min_length=1, max_length=500)
    example_ru: Optional[str] = None
    example_en: Optional[str] = None


class CardOut(BaseModel):
    id: int
    deck_id: int
    ru_text: str
    en_text: str
    example_ru: Optional[str] = None
    example_en: Optional[str] = None
    sort_order: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class StudyCardOut(BaseModel):
    id: int
    deck_id: int
    ru_text: str
    en_text: str
    example_ru: Optional[str] = None
    example_en: Optional[str] = None
    sort_order: int
    deck_title: Optional[str] = None
    deck_emoji: Optional[str] = None

    status: str
    repetitions: int = 0
    correct_answers: int = 0
    wrong_answers: int = 0
    current_streak: int = 0
    last_studied_at: Optional[datetime] = None


class StudyStatsOut(BaseModel):
    total: int
    new: int
    repeat: int
    known: int


class StudySetOut(BaseModel):
    cards: List[StudyCardOut]
    stats: StudyStatsOut


# ----------------- STUDY / PROGRESS -----------------

class SubmitAnswerIn(BaseModel):
    card_id: int = Field(alias="cardId", ge=1)
    answer: Literal["know", "dont_know"]
    direction: Literal["ru-en", "en-ru"]

    model_config = ConfigDict(populate_by_name=True)

    @property
    def is_correct(self) -> bool:
        return self.answer == "know"


class UserProgressOut(BaseModel):
    id: int
    user_id: int
    card_id: int
    status: str  # new | repeat | known
    repetitions: int
    correct_answers: int
    wrong_answers: int
    current_streak: int
    best_streak: int
    accuracy_percentage: float
    last_studied_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class SubmitAnswerOut(BaseModel):
    success: bool = True
    data: UserProgressOut
    limit_info: DailyLimitOut = Field(alias="limitInfo")

    model_config = ConfigDict(populate_by_name=True)


class CardProgressOut(BaseModel):
    data: Optional[UserProgressOut] = None


class CardWithProgressOut(BaseModel):
    id: int  # progress row id, 0 when never studied
    card_id: int
    ru_text: str
    en_text: str
    deck_id: int
    deck_title: str
    deck_emoji: Optional[str] = None
    status: str
    repetitions: int
    correct_answers: int
    wrong_answers: int
    current_streak: int
    best_streak: int
    accuracy_percentage: float


class CardsWithProgressOut(BaseModel):
    data: List[CardWithProgressOut]


class TodayStatsOut(BaseModel):
    cards_studied: int
    correct_answers: int
    wrong_answers: int


class UserStatsOut(BaseModel):
    total_studied: int
    cards_known: int
    cards_repeat: int
    cards_new: int
    avg_accuracy: float
    today: TodayStatsOut

