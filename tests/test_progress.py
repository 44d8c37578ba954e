import threading

import pytest
from sqlalchemy.exc import OperationalError

from linguacards import models
from linguacards.errors import NotFoundError, PersistenceError
from linguacards.services import progress as progress_service
from linguacards.services.progress import status_from_accuracy, submit_answer
from linguacards.utils.time import app_today, utc_now
from tests.conftest import make_deck, make_user, subscribe_row


def test_status_from_accuracy_rules():
    assert status_from_accuracy(0, 0) == "new"
    # never answered correctly stays new even after many attempts
    assert status_from_accuracy(0.0, 0) == "new"
    assert status_from_accuracy(100, 1) == "known"
    assert status_from_accuracy(80, 4) == "known"
    assert status_from_accuracy(79.99, 4) == "repeat"
    assert status_from_accuracy(20, 1) == "repeat"


def test_first_correct_answer_on_new_card(db):
    user = make_user(db)
    _, cards = make_deck(db, n_cards=1)

    p = submit_answer(db, user.id, cards[0].id, True)

    assert p.repetitions == 1
    assert p.correct_answers == 1
    assert p.wrong_answers == 0
    assert p.current_streak == 1
    assert p.best_streak == 1
    assert p.accuracy_percentage == 100
    assert p.status == "known"
    assert p.last_studied_at is not None


def test_first_wrong_answer_on_new_card(db):
    user = make_user(db)
    _, cards = make_deck(db, n_cards=1)

    p = submit_answer(db, user.id, cards[0].id, False)

    assert p.repetitions == 1
    assert p.correct_answers == 0
    assert p.wrong_answers == 1
    assert p.current_streak == 0
    assert p.best_streak == 0
    assert p.accuracy_percentage == 0
    assert p.status == "new"


def test_wrong_answer_on_existing_repeat_row(db):
    user = make_user(db)
    _, cards = make_deck(db, n_cards=1)
    db.add(
        models.UserProgress(
            user_id=user.id,
            card_id=cards[0].id,
            status="repeat",
            repetitions=4,
            correct_answers=1,
            wrong_answers=3,
            current_streak=1,
            best_streak=1,
            accuracy_percentage=25,
        )
    )
    db.commit()

    p = submit_answer(db, user.id, cards[0].id, False)

    assert p.repetitions == 5
    assert p.correct_answers == 1
    assert p.wrong_answers == 4
    assert p.current_streak == 0
    assert p.best_streak == 1
    assert p.accuracy_percentage == pytest.approx(20)
    assert p.status == "repeat"


def test_invariants_hold_over_answer_sequence(db):
    user = make_user(db)
    _, cards = make_deck(db, n_cards=1)
    sequence = [True, True, False, True, True, True, False, False, True, True, True, True]

    best_before = 0
    for is_correct in sequence:
        p = submit_answer(db, user.id, cards[0].id, is_correct)

        assert p.repetitions == p.correct_answers + p.wrong_answers
        assert p.best_streak >= best_before
        best_before = p.best_streak
        if not is_correct:
            assert p.current_streak == 0
        assert p.accuracy_percentage == pytest.approx(p.correct_answers / p.repetitions * 100)
        if p.correct_answers == 0:
            assert p.status == "new"
        elif p.accuracy_percentage >= 80:
            assert p.status == "known"
        else:
            assert p.status == "repeat"

    assert p.repetitions == len(sequence)
    assert p.best_streak == 4
    assert p.current_streak == 4

    # exactly one progress row per (user, card)
    assert db.query(models.UserProgress).count() == 1


def test_answer_writes_history_and_daily_stat(db):
    user = make_user(db)
    _, cards = make_deck(db, n_cards=2)

    submit_answer(db, user.id, cards[0].id, True, direction="ru-en")
    submit_answer(db, user.id, cards[1].id, False, direction="en-ru")
    submit_answer(db, user.id, cards[0].id, True)

    history = db.query(models.ReviewHistory).order_by(models.ReviewHistory.id).all()
    assert [h.was_correct for h in history] == [True, False, True]
    assert [h.direction for h in history] == ["ru-en", "en-ru", None]

    stats = db.query(models.DailyStat).all()
    assert len(stats) == 1
    assert stats[0].date == app_today()
    assert stats[0].cards_studied == 3
    assert stats[0].correct_answers == 2
    assert stats[0].wrong_answers == 1


def test_answer_refreshes_deck_aggregate_for_subscribers(db):
    user = make_user(db)
    deck, cards = make_deck(db, n_cards=4)
    subscribe_row(db, user.id, deck.id)

    submit_answer(db, user.id, cards[0].id, True)
    submit_answer(db, user.id, cards[1].id, False)

    ud = db.query(models.UserDeck).one()
    assert ud.total_cards_studied == 2
    assert ud.progress_percentage == pytest.approx(25.0)
    assert ud.last_studied_at is not None


def test_unknown_user_or_card_is_not_found(db):
    user = make_user(db)
    _, cards = make_deck(db, n_cards=1)

    with pytest.raises(NotFoundError):
        submit_answer(db, user.id + 100, cards[0].id, True)
    with pytest.raises(NotFoundError):
        submit_answer(db, user.id, 9999, True)

    assert db.query(models.UserProgress).count() == 0
    assert db.query(models.ReviewHistory).count() == 0
    assert db.query(models.DailyStat).count() == 0


def test_soft_deleted_card_cannot_be_answered(db):
    user = make_user(db)
    _, cards = make_deck(db, n_cards=1)
    cards[0].deleted_at = utc_now()
    db.commit()

    with pytest.raises(NotFoundError):
        submit_answer(db, user.id, cards[0].id, True)


def test_failure_inside_transaction_rolls_everything_back(db, monkeypatch):
    user = make_user(db)
    deck, cards = make_deck(db, n_cards=1)
    subscribe_row(db, user.id, deck.id)
    submit_answer(db, user.id, cards[0].id, True)

    def boom(*args, **kwargs):
        raise OperationalError("UPDATE user_decks ...", {}, Exception("connection lost"))

    monkeypatch.setattr(progress_service, "refresh_deck_aggregate", boom)

    with pytest.raises(PersistenceError) as exc:
        submit_answer(db, user.id, cards[0].id, False)
    assert isinstance(exc.value.__cause__, OperationalError)

    db.expire_all()
    p = db.query(models.UserProgress).one()
    assert p.repetitions == 1
    assert p.wrong_answers == 0
    assert db.query(models.ReviewHistory).count() == 1
    assert db.query(models.DailyStat).one().cards_studied == 1


def test_read_models_fill_defaults(db):
    user = make_user(db)
    deck, cards = make_deck(db, title="Animals", n_cards=3)
    cards[2].deleted_at = utc_now()
    db.commit()
    submit_answer(db, user.id, cards[1].id, True)

    rows = progress_service.get_deck_progress(db, user.id, deck.id)
    assert [r.card_id for r in rows] == [cards[0].id, cards[1].id]
    assert rows[0].id == 0
    assert rows[0].status == "new"
    assert rows[0].repetitions == 0
    assert rows[1].status == "known"
    assert rows[1].deck_title == "Animals"

    assert progress_service.get_card_progress(db, user.id, cards[0].id) is None
    assert progress_service.get_card_progress(db, user.id, cards[1].id).repetitions == 1

    with pytest.raises(NotFoundError):
        progress_service.get_deck_progress(db, user.id, 999)


def test_all_decks_progress_only_active_subscriptions(db):
    user = make_user(db)
    d1, c1 = make_deck(db, title="B deck", n_cards=1)
    d2, c2 = make_deck(db, title="A deck", n_cards=2)
    d3, _ = make_deck(db, title="C deck", n_cards=2)
    subscribe_row(db, user.id, d1.id)
    subscribe_row(db, user.id, d2.id)
    subscribe_row(db, user.id, d3.id, active=False)

    rows = progress_service.get_all_decks_progress(db, user.id)
    assert [r.deck_title for r in rows] == ["A deck", "A deck", "B deck"]


def test_user_stats(db):
    user = make_user(db)
    _, cards = make_deck(db, n_cards=3)
    submit_answer(db, user.id, cards[0].id, True)
    submit_answer(db, user.id, cards[1].id, False)
    submit_answer(db, user.id, cards[2].id, True)
    submit_answer(db, user.id, cards[2].id, False)

    stats = progress_service.get_user_stats(db, user.id)
    assert stats.total_studied == 3
    assert stats.cards_known == 1
    assert stats.cards_new == 1
    assert stats.cards_repeat == 1
    assert stats.avg_accuracy == pytest.approx((100 + 0 + 50) / 3)
    assert stats.today.cards_studied == 4
    assert stats.today.correct_answers == 2
    assert stats.today.wrong_answers == 2


def _answer_in_threads(database, user_id, card_id, answers):
    errors = []
    start = threading.Barrier(len(answers))

    def worker(is_correct):
        session = database.session()
        try:
            start.wait()
            submit_answer(session, user_id, card_id, is_correct)
        except Exception as e:  # collected for the assertion below
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(a,)) for a in answers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return errors


def _counters(database, user_id, card_id):
    with database.session() as s:
        p = s.query(models.UserProgress).filter_by(user_id=user_id, card_id=card_id).one()
        history = s.query(models.ReviewHistory).filter_by(user_id=user_id, card_id=card_id).count()
        daily = s.query(models.DailyStat).filter_by(user_id=user_id).one()
        return p, history, daily


def test_concurrent_answers_lose_nothing(database, db):
    user = make_user(db)
    deck, cards = make_deck(db, n_cards=1)
    subscribe_row(db, user.id, deck.id)
    user_id, card_id = user.id, cards[0].id
    submit_answer(db, user_id, card_id, True)
    db.close()

    answers = [True, False] * 4
    errors = _answer_in_threads(database, user_id, card_id, answers)
    assert errors == []

    p, history, daily = _counters(database, user_id, card_id)
    assert p.repetitions == 1 + len(answers)
    assert p.repetitions == history == daily.cards_studied
    assert p.correct_answers == 5
    assert p.wrong_answers == 4
    assert daily.correct_answers == p.correct_answers
    assert daily.wrong_answers == p.wrong_answers


def test_concurrent_first_answers_share_one_row(database, db):
    user = make_user(db)
    _, cards = make_deck(db, n_cards=1)
    user_id, card_id = user.id, cards[0].id
    db.close()

    errors = _answer_in_threads(database, user_id, card_id, [True, True])
    assert errors == []

    p, history, daily = _counters(database, user_id, card_id)
    assert p.repetitions == 2
    assert p.correct_answers == 2
    assert history == 2
    assert daily.cards_studied == 2
    with database.session() as s:
        assert s.query(models.UserProgress).count() == 1
