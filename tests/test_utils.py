import pytest

from morning_letter.core.utils import extract_source_from_url, is_valid_email, truncate_text


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://www.venturesquare.net/12345", "VentureSquare"),
        ("https://platum.kr/archives/1", "Platum"),
        ("https://m.example-news.co.kr/a", "Example News"),
        ("https://techcrunch.com/2025/01/06/x", "TechCrunch"),
        ("", ""),
        ("not a url", ""),
    ],
)
def test_extract_source_from_url(url, expected):
    assert extract_source_from_url(url) == expected


@pytest.mark.parametrize(
    "email,expected",
    [
        ("reader@example.com", True),
        ("reader@example", False),
        ("no-at.example.com", False),
        ("", False),
    ],
)
def test_is_valid_email(email, expected):
    assert is_valid_email(email) is expected


def test_truncate_text():
    assert truncate_text("abcdef", 3) == "abc..."
    assert truncate_text("", 3) == "..."
