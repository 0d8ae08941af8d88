import pytest

from lingolift.domain.models import Flashcard, Lesson
from lingolift.infrastructure.adapters.sqlite_store import SqliteLessonStore


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    for var in (
        "LINGOLIFT_SERVER_URL",
        "LINGOLIFT_API_KEY",
        "LINGOLIFT_MULTI_USER",
        "LINGOLIFT_CONTENT_AUTHORITY",
        "LINGOLIFT_DB_PATH",
        "LINGOLIFT_SERVER_DB_PATH",
    ):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def store(tmp_path):
    return SqliteLessonStore(tmp_path / "lingolift.db")


def _card(card_id="c1", **kwargs) -> Flashcard:
    kwargs.setdefault("front", f"front {card_id}")
    kwargs.setdefault("back", f"back {card_id}")
    return Flashcard(id=card_id, **kwargs)


def _lesson(lesson_id="l1", cards=None, **kwargs) -> Lesson:
    kwargs.setdefault("title", f"Lesson {lesson_id}")
    kwargs.setdefault("created_at", 1_000)
    return Lesson(id=lesson_id, flashcards=list(cards or []), **kwargs)


@pytest.fixture
def make_card():
    """Factory for flashcards with readable default text."""
    return _card


@pytest.fixture
def make_lesson():
    return _lesson
