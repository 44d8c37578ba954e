import json
import time
from typing import Optional
from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient

# IMPORTANT: ensure models are imported so Base.metadata is populated
from linguacards import models  # noqa: F401
from linguacards.config import settings
from linguacards.database import Database
from linguacards.main import create_app
from linguacards.services.security import sign_init_data

TEST_BOT_TOKEN = "123456:TEST-TOKEN"
ADMIN_TG_ID = 1000


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch):
    monkeypatch.setattr(settings, "telegram_bot_token", TEST_BOT_TOKEN)
    monkeypatch.setattr(settings, "admin_telegram_ids", str(ADMIN_TG_ID))
    monkeypatch.setattr(settings, "dev_auth", False)
    monkeypatch.setattr(settings, "free_daily_cards_limit", 40)
    monkeypatch.setattr(settings, "known_accuracy_threshold", 80.0)


@pytest.fixture()
def database(tmp_path):
    # fresh SQLite file per test keeps rollback behaviour real
    database = Database(f"sqlite:///{tmp_path / 'test_linguacards.db'}")
    database.init(create_tables=True)
    yield database
    database.dispose()


@pytest.fixture()
def db(database):
    session = database.session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(database):
    with TestClient(create_app(database)) as c:
        yield c


def make_init_data(
    telegram_id: int,
    first_name: str = "Test",
    username: Optional[str] = None,
    auth_date: Optional[int] = None,
    bot_token: str = TEST_BOT_TOKEN,
) -> str:
    user = {"id": telegram_id, "first_name": first_name, "language_code": "en"}
    if username:
        user["username"] = username
    fields = {
        "auth_date": str(auth_date if auth_date is not None else int(time.time())),
        "query_id": "AAH-test",
        "user": json.dumps(user, separators=(",", ":")),
    }
    fields["hash"] = sign_init_data(fields, bot_token)
    return urlencode(fields)


def auth_headers(telegram_id: int = 42, **kwargs) -> dict:
    return {"X-Telegram-Init-Data": make_init_data(telegram_id, **kwargs)}


def admin_headers() -> dict:
    return auth_headers(ADMIN_TG_ID, first_name="Admin")


def create_deck(client, title: str = "Basics", **extra) -> int:
    r = client.post("/admin/decks", json={"title": title, **extra}, headers=admin_headers())
    assert r.status_code == 201, r.text
    return r.json()["id"]


def add_card(client, deck_id: int, ru: str, en: str) -> dict:
    r = client.post(
        f"/admin/decks/{deck_id}/cards",
        json={"ru_text": ru, "en_text": en},
        headers=admin_headers(),
    )
    assert r.status_code == 201, r.text
    return r.json()


def answer(client, card_id: int, know: bool = True, telegram_id: int = 42):
    return client.post(
        "/progress/answer",
        json={"cardId": card_id, "answer": "know" if know else "dont_know", "direction": "ru-en"},
        headers=auth_headers(telegram_id),
    )


# ----------------- ORM helpers for service-level tests -----------------

def make_user(db, telegram_id: int = 42, **fields) -> models.User:
    user = models.User(telegram_id=telegram_id, first_name="Test", **fields)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_deck(db, title: str = "Deck", n_cards: int = 0) -> tuple[models.Deck, list[models.Card]]:
    deck = models.Deck(title=title, emoji="📚", cards_count=n_cards)
    db.add(deck)
    db.flush()
    cards = [
        models.Card(deck_id=deck.id, ru_text=f"ru{i}", en_text=f"en{i}", sort_order=i + 1)
        for i in range(n_cards)
    ]
    db.add_all(cards)
    db.commit()
    return deck, cards


def subscribe_row(db, user_id: int, deck_id: int, active: bool = True) -> models.UserDeck:
    ud = models.UserDeck(user_id=user_id, deck_id=deck_id, is_active=active)
    db.add(ud)
    db.commit()
    return ud
