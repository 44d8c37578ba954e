from __future__ import annotations

import enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base
from .utils.time import utc_now


class ProgressStatus(str, enum.Enum):
    NEW = "new"
    REPEAT = "repeat"
    KNOWN = "known"


# study order: repeat -> new -> known
STATUS_PRIORITY = {
    ProgressStatus.REPEAT.value: 1,
    ProgressStatus.NEW.value: 2,
    ProgressStatus.KNOWN.value: 3,
}


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    telegram_id = Column(BigInteger, unique=True, index=True, nullable=False)
    username = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    language_code = Column(String, default="en", nullable=False)

    is_premium = Column(Boolean, default=False, nullable=False)
    premium_until = Column(DateTime, nullable=True)
    # per-user override of the free daily limit
    daily_cards_limit = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    subscriptions = relationship("UserDeck", back_populates="user", cascade="all, delete-orphan")


class Deck(Base):
    __tablename__ = "decks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    emoji = Column(String, nullable=True)
    category = Column(String, nullable=True)

    # non-deleted cards only
    cards_count = Column(Integer, default=0, nullable=False)
    is_public = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    cards = relationship("Card", back_populates="deck", cascade="all, delete-orphan")


class Card(Base):
    __tablename__ = "cards"

    id = Column(Integer, primary_key=True, index=True)
    deck_id = Column(Integer, ForeignKey("decks.id"), nullable=False, index=True)

    ru_text = Column(String, nullable=False)
    en_text = Column(String, nullable=False)
    example_ru = Column(String, nullable=True)
    example_en = Column(String, nullable=True)

    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    deleted_at = Column(DateTime, nullable=True, index=True)

    deck = relationship("Deck", back_populates="cards")

    __table_args__ = (Index("ix_cards_deck_sort", "deck_id", "sort_order"),)


class UserDeck(Base):
    __tablename__ = "user_decks"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    deck_id = Column(Integer, ForeignKey("decks.id", ondelete="CASCADE"), nullable=False, index=True)

    is_active = Column(Boolean, default=True, nullable=False)
    total_cards_studied = Column(Integer, default=0, nullable=False)
    progress_percentage = Column(Float, default=0, nullable=False)

    started_at = Column(DateTime, default=utc_now, nullable=False)
    last_studied_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="subscriptions")
    deck = relationship("Deck")

    __table_args__ = (UniqueConstraint("user_id", "deck_id", name="uq_user_decks_user_deck"),)


class UserProgress(Base):
    """
    Per-user running accuracy for a specific card.
    Created on the first answer, updated on every answer, never deleted.
    """

    __tablename__ = "user_progress"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    card_id = Column(Integer, ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True)

    # new | repeat | known
    status = Column(String, default=ProgressStatus.NEW.value, nullable=False)

    repetitions = Column(Integer, default=0, nullable=False)
    correct_answers = Column(Integer, default=0, nullable=False)
    wrong_answers = Column(Integer, default=0, nullable=False)
    current_streak = Column(Integer, default=0, nullable=False)
    best_streak = Column(Integer, default=0, nullable=False)
    accuracy_percentage = Column(Float, default=0, nullable=False)

    last_studied_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "card_id", name="uq_user_progress_user_card"),
        Index("ix_user_progress_user_status", "user_id", "status"),
    )


class ReviewHistory(Base):
    __tablename__ = "review_history"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    card_id = Column(Integer, ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True)
    was_correct = Column(Boolean, nullable=False)
    # ru-en | en-ru
    direction = Column(String, nullable=True)
    reviewed_at = Column(DateTime, default=utc_now, nullable=False)


class DailyStat(Base):
    __tablename__ = "daily_stats"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)

    cards_studied = Column(Integer, default=0, nullable=False)
    correct_answers = Column(Integer, default=0, nullable=False)
    wrong_answers = Column(Integer, default=0, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_daily_stats_user_date"),)
