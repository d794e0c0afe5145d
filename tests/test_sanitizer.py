import pytest

from morning_letter.core.sanitizer import ContentSanitizer


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://a.example.com/post?utm_source=rss", "https://a.example.com/post"),
        ("https://a.example.com/post#comments", "https://a.example.com/post"),
        ("https://a.example.com/post?x=1#top", "https://a.example.com/post"),
        ("  https://a.example.com/post  ", "https://a.example.com/post"),
        ("", ""),
    ],
)
def test_normalize_url(url, expected):
    assert ContentSanitizer.normalize_url(url) == expected


def test_clean_summary_strips_tags_and_decodes_entities():
    sanitizer = ContentSanitizer()
    raw = "<p>Fish &amp; chips&nbsp;&lt;3 &quot;daily&quot;</p>"
    assert sanitizer.clean_summary(raw) == 'Fish & chips <3 "daily"'


def test_clean_summary_truncates_to_500():
    sanitizer = ContentSanitizer()
    assert len(sanitizer.clean_summary("a" * 800)) == 500


def test_clean_summary_handles_empty():
    assert ContentSanitizer().clean_summary(None) == ""


def test_clean_title_decodes_and_collapses_whitespace():
    sanitizer = ContentSanitizer()
    assert sanitizer.clean_title("  Seed &amp;\n  Series A ") == "Seed & Series A"


def test_sanitizer_flags_ai_refusal_phrase():
    sanitizer = ContentSanitizer()
    text, issues = sanitizer.sanitize_ai_text(
        "As an AI language model, I cannot write this letter."
    )
    assert text == "As an AI language model, I cannot write this letter."
    assert issues == ["Possible AI refusal: As an AI language model"]


def test_sanitizer_passes_normal_text():
    text, issues = ContentSanitizer().sanitize_ai_text("  Good morning, founders.  ")
    assert text == "Good morning, founders."
    assert issues == []


def test_sanitizer_flags_empty_text():
    text, issues = ContentSanitizer().sanitize_ai_text("   ")
    assert text == ""
    assert issues == ["Empty AI response"]
