"""Utility functions for URL, email and text processing."""

from __future__ import annotations

import re
from urllib.parse import urlparse

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def extract_source_from_url(url: str) -> str:
    """Extract a human friendly publisher name from a URL.

    Removes common subdomains and TLDs, applies known mappings and
    returns a title-cased domain name. Returns an empty string if the
    URL cannot be parsed.
    """
    if not url:
        return ""

    try:
        parsed = urlparse(url)
    except ValueError:
        return ""

    domain = parsed.netloc.lower().split(":", 1)[0]
    if not domain:
        return ""

    domain = re.sub(r"^(www\.|m\.|mobile\.|news\.)", "", domain)
    domain = re.sub(r"\.(com|org|net|io|co\.kr|kr|ai)$", "", domain)

    source_mapping = {
        "venturesquare": "VentureSquare",
        "platum": "Platum",
        "techcrunch": "TechCrunch",
        "zdnet": "ZDNet",
        "etnews": "ETNews",
        "bloter": "Bloter",
        "thevc": "THE VC",
        "youtube": "YouTube",
        "linkedin": "LinkedIn",
        "github": "GitHub",
        "medium": "Medium",
    }
    if domain in source_mapping:
        return source_mapping[domain]

    main_domain = domain.split(".")[0]
    return main_domain.replace("-", " ").replace("_", " ").title()


def is_valid_email(email: str) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email.strip()))


def truncate_text(text: str, length: int, suffix: str = "...") -> str:
    """Cut ``text`` to ``length`` characters and append ``suffix``."""
    return (text or "")[:length] + suffix
