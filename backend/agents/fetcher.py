"""Document retrieval: raw markup plus stylesheet text for one URL.

A fetcher makes exactly one attempt. Any failure is a ``FetchError``; the
caller decides whether to retry.
"""
from typing import List, Optional

import requests
from bs4 import BeautifulSoup

from backend.app.config import PipelineSettings
from backend.app.errors import FetchError
from backend.app.logger import logger
from backend.app.models import CapturedDocument
from backend.agents.heuristics import resolve_url


def _new_session(user_agent: str) -> requests.Session:
    session = requests.Session()
    session.headers.update({
        'User-Agent': user_agent,
        'Accept-Language': 'en-US,en;q=0.9',
    })
    return session


def _inline_css(soup: BeautifulSoup) -> List[str]:
    return [tag.get_text() for tag in soup.find_all('style') if tag.get_text().strip()]


def _stylesheet_links(soup: BeautifulSoup, base_url: str) -> List[str]:
    links = []
    for link in soup.find_all('link', href=True):
        rel = link.get('rel') or []
        if isinstance(rel, str):
            rel = rel.split()
        if 'stylesheet' in [r.lower() for r in rel]:
            href = resolve_url(base_url, link['href'])
            if href.startswith(('http://', 'https://')) and href not in links:
                links.append(href)
    return links


def collect_stylesheets(
    soup: BeautifulSoup,
    base_url: str,
    session: requests.Session,
    limit: int,
    timeout: float,
) -> str:
    """Inline ``<style>`` blocks followed by up to ``limit`` linked stylesheets.

    A linked stylesheet that cannot be downloaded is skipped.
    """
    parts = _inline_css(soup)
    for href in _stylesheet_links(soup, base_url)[:limit]:
        try:
            response = session.get(href, timeout=timeout)
            if response.status_code == 200 and response.text:
                parts.append(response.text)
            else:
                logger.debug(f"Skipping stylesheet {href}: status {response.status_code}")
        except requests.RequestException as e:
            logger.debug(f"Skipping stylesheet {href}: {e}")
    return '\n'.join(parts)


class DirectFetcher:
    """Plain HTTP GET of the page, parsed with BeautifulSoup."""

    name = "direct"

    def __init__(self, settings: PipelineSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or _new_session(settings.user_agent)

    def fetch(self, url: str, timeout: Optional[float] = None) -> CapturedDocument:
        timeout = timeout or self.settings.fetch_timeout
        logger.info(f"Fetching {url} (direct, timeout {timeout:.1f}s)")
        try:
            response = self.session.get(url, timeout=timeout, allow_redirects=True)
        except requests.Timeout:
            raise FetchError(url, f"timed out after {timeout:.1f}s")
        except requests.RequestException as e:
            raise FetchError(url, f"network error: {e}")

        if response.status_code >= 400:
            raise FetchError(url, "non-success status", status_code=response.status_code)

        html = response.text or ''
        soup = BeautifulSoup(html, 'html.parser')
        base_url = response.url or url
        base_tag = soup.find('base', href=True)
        if base_tag:
            base_url = resolve_url(base_url, base_tag['href'])

        stylesheet_text = collect_stylesheets(
            soup, base_url, self.session, self.settings.max_stylesheets, timeout
        )
        logger.info(f"Fetched {len(html)} chars of HTML and {len(stylesheet_text)} chars of CSS")
        return CapturedDocument(url=base_url, html=html, stylesheet_text=stylesheet_text)


class FirecrawlFetcher:
    """Scrape through the Firecrawl API, which renders JavaScript-heavy pages."""

    name = "firecrawl"
    INCLUDE_TAGS = ['title', 'h1', 'h2', 'style', 'link', 'img', 'meta', 'svg', 'header', 'nav']
    EXCLUDE_TAGS = ['script', 'noscript']

    def __init__(
        self,
        settings: PipelineSettings,
        session: Optional[requests.Session] = None,
        request_screenshot: bool = True,
    ):
        if not settings.firecrawl_api_key:
            raise ValueError("FirecrawlFetcher requires FIRECRAWL_API_KEY")
        self.settings = settings
        self.session = session or _new_session(settings.user_agent)
        self.request_screenshot = request_screenshot

    def fetch(self, url: str, timeout: Optional[float] = None) -> CapturedDocument:
        timeout = timeout or self.settings.fetch_timeout
        endpoint = f"{self.settings.firecrawl_base_url.rstrip('/')}/v1/scrape"
        formats = ['html', 'screenshot'] if self.request_screenshot else ['html']
        logger.info(f"Fetching {url} via Firecrawl (formats={formats})")

        try:
            response = self.session.post(
                endpoint,
                headers={
                    'Authorization': f"Bearer {self.settings.firecrawl_api_key}",
                    'Content-Type': 'application/json',
                },
                json={
                    'url': url,
                    'formats': formats,
                    'includeTags': self.INCLUDE_TAGS,
                    'excludeTags': self.EXCLUDE_TAGS,
                    'timeout': int(timeout * 1000),
                },
                timeout=timeout,
            )
        except requests.Timeout:
            raise FetchError(url, f"Firecrawl timed out after {timeout:.1f}s")
        except requests.RequestException as e:
            raise FetchError(url, f"Firecrawl network error: {e}")

        if response.status_code >= 400:
            logger.error(f"Firecrawl API error: {response.status_code} - {response.text[:300]}")
            raise FetchError(url, "Firecrawl returned an error", status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError:
            raise FetchError(url, "Firecrawl returned a non-JSON body")

        if not isinstance(payload, dict) or not payload.get('success'):
            raise FetchError(url, "Firecrawl reported an unsuccessful scrape")

        data = payload.get('data') or {}
        html = data.get('html') or ''
        metadata = data.get('metadata') or {}
        page_url = metadata.get('sourceURL') or url

        # The screenshot may be a bare URL or an object carrying one
        screenshot = data.get('screenshot')
        if isinstance(screenshot, dict):
            screenshot = screenshot.get('url')
        screenshot_hint = screenshot if isinstance(screenshot, str) and screenshot else None

        soup = BeautifulSoup(html, 'html.parser')
        stylesheet_text = collect_stylesheets(
            soup, page_url, self.session, self.settings.max_stylesheets, timeout
        )
        logger.info(
            f"Firecrawl returned {len(html)} chars of HTML, {len(stylesheet_text)} chars of CSS, "
            f"screenshot={'yes' if screenshot_hint else 'no'}"
        )
        return CapturedDocument(
            url=page_url,
            html=html,
            stylesheet_text=stylesheet_text,
            screenshot_hint=screenshot_hint,
        )


def build_fetcher(settings: PipelineSettings, session: Optional[requests.Session] = None):
    """Firecrawl when a key is configured, otherwise a direct HTTP fetch."""
    if settings.firecrawl_api_key:
        return FirecrawlFetcher(settings, session=session)
    return DirectFetcher(settings, session=session)
