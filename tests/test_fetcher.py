import pytest
import requests

from backend.app.config import PipelineSettings
from backend.app.errors import FetchError
from backend.agents.fetcher import DirectFetcher, FirecrawlFetcher, build_fetcher

PAGE = """<html><head>
<link rel="stylesheet" href="/css/main.css">
<link rel="stylesheet" href="https://cdn.example/broken.css">
<style>.brand { color: #1E6FD9; }</style>
</head><body><h1>Acme</h1></body></html>"""


def test_direct_fetch_collects_inline_and_linked_css(fake_session, fake_response, settings):
    session = fake_session({
        ("GET", "https://acme.example/"): fake_response(text=PAGE, url="https://acme.example/"),
        ("GET", "https://acme.example/css/main.css"): fake_response(text="body { font-family: Inter; }"),
        ("GET", "https://cdn.example/broken.css"): requests.ConnectionError("refused"),
    })

    document = DirectFetcher(settings, session=session).fetch("https://acme.example/")

    assert document.url == "https://acme.example/"
    assert "<h1>Acme</h1>" in document.html
    assert ".brand { color: #1E6FD9; }" in document.stylesheet_text
    assert "font-family: Inter" in document.stylesheet_text
    assert document.screenshot_hint is None


def test_direct_fetch_honours_base_href(fake_session, fake_response, settings):
    html = '<html><head><base href="https://static.acme.example/site/"></head></html>'
    session = fake_session({("GET", "https://acme.example/"): fake_response(text=html, url="https://acme.example/")})

    document = DirectFetcher(settings, session=session).fetch("https://acme.example/")
    assert document.url == "https://static.acme.example/site/"


def test_direct_fetch_error_status_raises(fake_session, fake_response, settings):
    session = fake_session({("GET", "https://acme.example/"): fake_response(status_code=404)})

    with pytest.raises(FetchError) as exc_info:
        DirectFetcher(settings, session=session).fetch("https://acme.example/")
    assert exc_info.value.status_code == 404


def test_direct_fetch_timeout_raises(fake_session, settings):
    session = fake_session({("GET", "https://acme.example/"): requests.Timeout("slow")})

    with pytest.raises(FetchError, match="timed out"):
        DirectFetcher(settings, session=session).fetch("https://acme.example/", timeout=2.0)
    assert session.calls[0][2]["timeout"] == 2.0


def test_firecrawl_fetch_returns_screenshot_hint(fake_session, fake_response):
    settings = PipelineSettings(firecrawl_api_key="fc-test", max_stylesheets=0)
    payload = {
        "success": True,
        "data": {
            "html": "<title>Acme</title>",
            "metadata": {"sourceURL": "https://acme.example/home"},
            "screenshot": {"url": "https://cdn.firecrawl.example/shot.png"},
        },
    }
    session = fake_session({("POST", "https://api.firecrawl.dev/v1/scrape"): fake_response(json_data=payload)})

    document = FirecrawlFetcher(settings, session=session).fetch("https://acme.example/")

    assert document.url == "https://acme.example/home"
    assert document.html == "<title>Acme</title>"
    assert document.screenshot_hint == "https://cdn.firecrawl.example/shot.png"
    _, _, kwargs = session.calls[0]
    assert kwargs["headers"]["Authorization"] == "Bearer fc-test"
    assert kwargs["json"]["formats"] == ["html", "screenshot"]


def test_firecrawl_unsuccessful_scrape_raises(fake_session, fake_response):
    settings = PipelineSettings(firecrawl_api_key="fc-test")
    session = fake_session({
        ("POST", "https://api.firecrawl.dev/v1/scrape"): fake_response(json_data={"success": False}),
    })

    with pytest.raises(FetchError, match="unsuccessful"):
        FirecrawlFetcher(settings, session=session).fetch("https://acme.example/")


def test_build_fetcher_picks_backend_from_settings(fake_session):
    assert isinstance(build_fetcher(PipelineSettings(), session=fake_session()), DirectFetcher)
    assert isinstance(
        build_fetcher(PipelineSettings(firecrawl_api_key="fc-test"), session=fake_session()), FirecrawlFetcher
    )
