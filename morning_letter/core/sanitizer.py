"""Content sanitization for feed text and AI output."""

import re
from typing import List, Optional, Tuple

SUMMARY_MAX_LENGTH = 500


class ContentSanitizer:
    """Cleans feed markup and screens AI output before it is stored."""

    TAG_PATTERN = re.compile(r"<[^>]*>")

    # Only the entities feeds commonly carry
    ENTITY_REPLACEMENTS = [
        ("&nbsp;", " "),
        ("&amp;", "&"),
        ("&lt;", "<"),
        ("&gt;", ">"),
        ("&quot;", '"'),
    ]

    AI_REFUSAL_PATTERNS = [
        r"I cannot fulfill your request",
        r"I can't fulfill your request",
        r"I am just an AI model",
        r"I can't provide assistance",
        r"I cannot create content",
        r"not within my programming",
        r"As an AI language model",
        r"I'm not able to assist with",
        r"I cannot help with that request",
    ]

    def __init__(self, max_length: int = SUMMARY_MAX_LENGTH):
        self.max_length = max_length
        self._refusal_regex = re.compile(
            "|".join(self.AI_REFUSAL_PATTERNS), re.IGNORECASE
        )

    @staticmethod
    def normalize_url(url: str) -> str:
        """Dedup key for an article link: the URL without query or fragment."""
        if not url:
            return ""
        return url.strip().split("?", 1)[0].split("#", 1)[0]

    def decode_entities(self, text: str) -> str:
        for entity, replacement in self.ENTITY_REPLACEMENTS:
            text = text.replace(entity, replacement)
        return text

    def strip_tags(self, text: str) -> str:
        return self.TAG_PATTERN.sub("", text)

    def clean_summary(self, raw: Optional[str]) -> str:
        """Remove markup, decode entities and cap the length of a description."""
        if not raw:
            return ""
        text = self.decode_entities(self.strip_tags(raw)).strip()
        return text[: self.max_length]

    def clean_title(self, raw: Optional[str]) -> str:
        if not raw:
            return ""
        text = self.decode_entities(self.strip_tags(raw))
        return " ".join(text.split())

    def sanitize_ai_text(self, text: str) -> Tuple[str, List[str]]:
        """Return the stripped text and a list of issues found in it."""
        issues: List[str] = []
        if not text or not text.strip():
            issues.append("Empty AI response")
            return "", issues

        match = self._refusal_regex.search(text)
        if match:
            issues.append(f"Possible AI refusal: {match.group(0)}")

        return text.strip(), issues
