import httpx
import pytest

from kb.errors import InvalidInput
from kb.providers.fetcher import FetchError, extract_text, fetch_text, is_url, normalize_url


PAGE = """
<html>
  <head><title>Channels</title><style>body { color: red; }</style></head>
  <body>
    <nav>Home | About</nav>
    <header>Site header</header>
    <main>
      <h1>Go   channels</h1>
      <p>Channels connect
         goroutines.</p>
      <script>console.log("tracking")</script>
    </main>
    <aside>Related links</aside>
    <footer>Copyright</footer>
  </body>
</html>
"""


def test_extract_text_skips_chrome_and_collapses_whitespace():
    text = extract_text(PAGE)
    assert "Go channels" in text
    assert "Channels connect goroutines." in text
    for unwanted in ("Home", "Site header", "tracking", "Related links", "Copyright", "color: red"):
        assert unwanted not in text


def test_extract_text_truncates():
    text = extract_text("<p>" + "word " * 100 + "</p>", max_chars=20)
    assert text.endswith("...")
    assert len(text) == 23


def test_is_url():
    assert is_url("https://example.com/a")
    assert is_url("www.example.com")
    assert not is_url("just some text")


def test_normalize_url():
    assert normalize_url("example.com/page") == "https://example.com/page"
    with pytest.raises(FetchError):
        normalize_url("ftp://example.com/file")


def test_fetch_text_with_mock_transport():
    def handler(request):
        return httpx.Response(200, html=PAGE)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    assert "Channels connect goroutines." in fetch_text("https://example.com", client=client)


def test_fetch_text_http_error_is_invalid_input():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    with pytest.raises(InvalidInput) as exc_info:
        fetch_text("https://example.com/missing", client=client)
    assert exc_info.value.error_type == "fetch_failed"


def test_fetch_text_empty_page():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, html="<script>x</script>")))
    with pytest.raises(FetchError):
        fetch_text("https://example.com", client=client)
