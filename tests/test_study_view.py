"""
Tests for the study screens in handlers/study.py.

Only the pure render functions: they take a StudySession and return
(text, markup), no Telegram network calls involved.
"""
import database.database as db
from handlers.study import render_flashcard, render_gender_quiz, render_summary
from utils.session import StudyMode, StudySession
from utils.srs import Grade


def _session(app, mode, goal=1):
    deck = db.create_deck(app.db_path, 'View')
    db.create_card(app.db_path, deck.id, {
        'english': 'the house', 'german': 'Haus', 'article': 'das',
    }, now=app.clock())
    session = StudySession(app)
    session.start(deck.id, mode, goal)
    return session


def _callbacks(markup):
    return [button.callback_data for row in markup.inline_keyboard for button in row]


class TestFlashcardView:
    def test_front_english(self, app):
        session = _session(app, StudyMode.FLASHCARD)
        text, markup = render_flashcard(session, 'english', app.clock())
        assert 'the house' in text
        assert 'Haus' not in text
        assert '1/1' in text
        assert 'study_grade_again' in _callbacks(markup)

    def test_front_german(self, app):
        session = _session(app, StudyMode.FLASHCARD)
        text, _ = render_flashcard(session, 'german', app.clock())
        assert '<b>das Haus</b>' in text
        assert 'the house' not in text

    def test_front_german_without_article(self, app):
        deck = db.create_deck(app.db_path, 'Verbs')
        db.create_card(app.db_path, deck.id, {'english': 'to go', 'german': 'gehen'}, now=app.clock())
        session = StudySession(app)
        session.start(deck.id, StudyMode.FLASHCARD, 1)
        text, _ = render_flashcard(session, 'german', app.clock())
        assert '<b>gehen</b>' in text

    def test_flipped_shows_both(self, app):
        session = _session(app, StudyMode.FLASHCARD)
        session.flip()
        text, _ = render_flashcard(session, 'english', app.clock())
        assert 'the house' in text
        assert 'das Haus' in text

    def test_grade_buttons_show_intervals(self, app):
        session = _session(app, StudyMode.FLASHCARD)
        _, markup = render_flashcard(session, 'english', app.clock())
        labels = [b.text for row in markup.inline_keyboard for b in row]
        assert any(label.endswith('6h') for label in labels)
        assert any(label.endswith('2d') for label in labels)


class TestGenderQuizView:
    def test_unanswered_has_no_grades(self, app):
        session = _session(app, StudyMode.GENDER_QUIZ)
        text, markup = render_gender_quiz(session, app.clock())
        callbacks = _callbacks(markup)
        assert 'study_gender_der' in callbacks
        assert 'study_reveal' in callbacks
        assert not any(c.startswith('study_grade_') for c in callbacks)
        assert 'das Haus' not in text

    def test_wrong_answer(self, app):
        session = _session(app, StudyMode.GENDER_QUIZ)
        session.answer_gender('der')
        text, markup = render_gender_quiz(session, app.clock())
        assert 'not der' in text
        assert 'study_grade_good' in _callbacks(markup)


class TestSummary:
    def test_counts(self, app):
        session = _session(app, StudyMode.GENDER_QUIZ)
        session.answer_gender('das')
        session.grade(Grade.EASY)
        text = render_summary(session)
        assert '1/1 recalled' in text
        assert 'Articles right: 1/1' in text
