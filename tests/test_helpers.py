"""
Unit tests for pure helpers.

Tests cover:
- Exam grading (points weighting, unanswered and malformed answers)
- Slug derivation for blog posts
- Gallery tag normalisation
- HTML sanitisation of authored content
- Upload storage keys and the public/private split
"""

from datetime import datetime
from types import SimpleNamespace

from app.raportal.modules.exams.service import grade_answers
from app.raportal.modules.gallery.service import normalize_tag
from app.raportal.sanitize import sanitize_html, strip_tags
from app.raportal.uploads import GALLERY_IMAGE, RECEIPT, build_storage_key, is_public_key
from app.raportal.utils import slugify


def _q(qid, correct, points=1):
    return SimpleNamespace(id=qid, correct_answer=correct, points=points)


class TestGradeAnswers:
    def test_all_correct(self):
        g = grade_answers([_q(1, 0), _q(2, 3)], {"1": 0, "2": 3}, 70)
        assert g.score == 100
        assert g.passed is True

    def test_points_weight_the_score(self):
        g = grade_answers([_q(1, 0, points=3), _q(2, 1, points=1)], {"1": 0, "2": 0}, 80)
        assert g.score == 75
        assert g.passed is False
        assert (g.earned, g.total) == (3, 4)

    def test_pass_score_is_inclusive(self):
        assert grade_answers([_q(1, 0), _q(2, 0)], {"1": 0}, 50).passed is True

    def test_unanswered_and_non_integer_answers_are_wrong(self):
        g = grade_answers([_q(1, 0), _q(2, 1)], {"1": "0", "2": None}, 50)
        assert g.score == 0

    def test_unknown_question_ids_are_ignored(self):
        assert grade_answers([_q(1, 2)], {"99": 2}, 50).score == 0

    def test_no_questions_scores_zero(self):
        g = grade_answers([], None, 0)
        assert g.score == 0
        assert g.total == 0


class TestSlugify:
    def test_basic(self):
        assert slugify("Annual Camp Recap") == "annual-camp-recap"

    def test_punctuation_and_whitespace(self):
        assert slugify("  Hello,   World!  ") == "hello-world"
        assert slugify("RA -- News__Flash") == "ra-news-flash"

    def test_accents_are_transliterated(self):
        assert slugify("Café Égba") == "cafe-egba"

    def test_empty(self):
        assert slugify("") == ""
        assert slugify("!!!") == ""


class TestNormalizeTag:
    def test_lowercases_and_hyphenates(self):
        assert normalize_tag("Annual Camp 2026") == "annual-camp-2026"

    def test_collapses_whitespace(self):
        assert normalize_tag("  Leadership\t Retreat ") == "leadership-retreat"

    def test_none(self):
        assert normalize_tag(None) == ""


class TestSanitize:
    def test_keeps_allowed_markup(self):
        html = '<p>Hello <strong>RA</strong> <a href="https://example.com">link</a></p>'
        assert sanitize_html(html) == html

    def test_strips_scripts_and_handlers(self):
        out = sanitize_html('<p onclick="steal()">Hi</p><script>bad()</script>')
        assert "<script" not in out
        assert "onclick" not in out
        assert out.startswith("<p>Hi</p>")

    def test_drops_javascript_urls(self):
        out = sanitize_html('<a href="javascript:alert(1)">x</a>')
        assert "javascript" not in out

    def test_strip_tags_for_titles(self):
        assert strip_tags("  <em>Camp</em> News ") == "Camp News"
        assert strip_tags(None) == ""


class TestStorageKeys:
    def test_key_layout(self):
        key = build_storage_key(GALLERY_IMAGE, "my photo.png", when=datetime(2026, 3, 9))
        assert key.startswith("gallery/2026/03/")
        assert key.endswith("-my_photo.png")

    def test_receipts_are_never_public(self):
        assert is_public_key(build_storage_key(GALLERY_IMAGE, "a.png")) is True
        assert is_public_key(build_storage_key(RECEIPT, "r.pdf")) is False
        assert is_public_key("gallery/../receipts/r.pdf") is False
