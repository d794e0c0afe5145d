from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from morning_letter.clients.link_preview import LinkPreviewClient, parse_link_preview
from morning_letter.core.errors import ValidationError

PAGE = """<html><head>
<title> Fallback title </title>
<meta property="og:title" content="OG title">
<meta name="description" content="Plain description">
<meta property="og:image" content="https://img.example.com/og.png">
</head><body></body></html>"""


def test_parse_link_preview_prefers_open_graph():
    preview = parse_link_preview("https://www.venturesquare.net/1", PAGE)
    assert preview.title == "OG title"
    assert preview.description == "Plain description"
    assert preview.image == "https://img.example.com/og.png"
    assert preview.site_name == "VentureSquare"


def test_parse_link_preview_falls_back_to_title_tag():
    preview = parse_link_preview("https://x.example.com", "<title> Only title </title>")
    assert preview.title == "Only title"
    assert preview.description is None
    assert preview.image is None


@pytest.mark.asyncio
async def test_preview_fetch_failure_is_validation_error():
    client = LinkPreviewClient()
    with patch.object(
        client, "fetch_html", AsyncMock(side_effect=aiohttp.ClientError("refused"))
    ):
        with pytest.raises(ValidationError):
            await client.preview("https://x.example.com")
