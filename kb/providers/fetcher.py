"""
URL fetching and readable-text extraction for capturing web pages.
"""

from __future__ import annotations

from urllib.parse import urlparse, urlunparse

import httpx
from bs4 import BeautifulSoup

import kb.config as config
from kb.errors import InvalidInput

logger = config.logger

SKIP_TAGS = ["script", "style", "nav", "header", "footer", "aside", "noscript", "iframe"]


class FetchError(InvalidInput):
    def __init__(self, message: str):
        super().__init__(message, field="url", error_type="fetch_failed")


def is_url(value: str) -> bool:
    value = value.strip()
    return value.startswith(("http://", "https://", "www."))


def normalize_url(raw_url: str) -> str:
    value = raw_url.strip()
    parsed = urlparse(value)
    if not parsed.scheme:
        parsed = urlparse(f"https://{value}")
    if parsed.scheme not in {"http", "https"}:
        raise FetchError(f"unsupported scheme: {parsed.scheme}")
    if not parsed.netloc:
        raise FetchError(f"invalid URL: {raw_url}")
    return urlunparse(parsed)


def extract_text(html: str, max_chars: int = config.FETCH_MAX_TEXT_CHARS) -> str:
    """Visible text of an HTML document, whitespace collapsed, truncated to max_chars."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(SKIP_TAGS):
        tag.decompose()
    text = " ".join(soup.get_text(separator=" ").split())
    if len(text) > max_chars:
        text = text[:max_chars] + "..."
    return text.strip()


def fetch_text(raw_url: str, client: httpx.Client | None = None) -> str:
    """Download a page and return its readable text."""
    url = normalize_url(raw_url)
    owns_client = client is None
    if client is None:
        client = httpx.Client(
            timeout=httpx.Timeout(config.FETCH_TIMEOUT_SECONDS),
            headers={"User-Agent": config.FETCH_USER_AGENT},
            follow_redirects=True,
        )
    try:
        with client.stream("GET", url) as response:
            if response.status_code != 200:
                raise FetchError(f"HTTP {response.status_code} fetching {url}")
            body = bytearray()
            for chunk in response.iter_bytes():
                body.extend(chunk)
                if len(body) >= config.FETCH_MAX_BYTES:
                    del body[config.FETCH_MAX_BYTES:]
                    break
            encoding = response.encoding or "utf-8"
    except httpx.RequestError as exc:
        raise FetchError(f"fetch failed: {type(exc).__name__}") from exc
    finally:
        if owns_client:
            client.close()

    text = extract_text(bytes(body).decode(encoding, errors="replace"))
    if not text:
        raise FetchError("no text content found")
    logger.info("url_fetched", extra={"url": url, "chars": len(text)})
    return text
