import pytest

from lingolift.application.lesson_import import (
    LessonImportError,
    load_lessons_from_yaml,
    parse_lessons,
)

YAML = """
lessons:
  - title: Negotiation
    description: Useful phrases
    tags: [business, business, verbs]
    markdown: "# Notes"
    cards:
      - front: Leverage
        back: Power to influence people
      - front: missing back
  - id: lesson_fixed
    title: Travel
    cards:
      - id: card_fixed
        front: Boarding pass
        back: Tarjeta de embarque
"""


def test_load_lessons_from_yaml(tmp_path):
    path = tmp_path / "lessons.yaml"
    path.write_text(YAML, encoding="utf-8")

    lessons = load_lessons_from_yaml(path, now=500)

    negotiation, travel = lessons
    assert negotiation.id.startswith("lesson_")
    assert negotiation.tags == ["business", "verbs"]
    assert negotiation.markdown_content == "# Notes"
    assert negotiation.created_at == 500
    assert [c.front for c in negotiation.flashcards] == ["Leverage"]  # malformed card skipped
    assert negotiation.flashcards[0].next_review == 500

    assert travel.id == "lesson_fixed"
    assert travel.flashcards[0].id == "card_fixed"
    assert not travel.flashcards[0].is_user_created


@pytest.mark.parametrize("data", [None, [], {"lessons": "nope"}, {"other": []}])
def test_rejects_wrong_shape(data):
    with pytest.raises(LessonImportError):
        parse_lessons(data)


def test_rejects_untitled_lesson():
    with pytest.raises(LessonImportError, match="#2"):
        parse_lessons({"lessons": [{"title": "ok"}, {"cards": []}]})


def test_invalid_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("lessons: [unclosed", encoding="utf-8")
    with pytest.raises(LessonImportError, match="Invalid YAML"):
        load_lessons_from_yaml(path)


def test_missing_file(tmp_path):
    with pytest.raises(LessonImportError, match="Cannot read"):
        load_lessons_from_yaml(tmp_path / "absent.yaml")
