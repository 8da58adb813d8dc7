"""Shared fixtures: fake HTTP session, recorded sleeps and a sample page."""
import os
import tempfile

# Keep test log files out of the working tree; must run before backend.app.logger is imported
os.environ.setdefault("BRAND_LOG_DIR", tempfile.mkdtemp(prefix="brandkit-logs-"))

import pytest
import requests

from backend.app.config import PipelineSettings
from backend.app.models import CapturedDocument


class FakeResponse:
    def __init__(self, status_code=200, text="", json_data=None, headers=None, url=None, content=b""):
        self.status_code = status_code
        self.text = text
        self._json = json_data
        self.headers = headers or {}
        self.url = url
        self.content = content

    def json(self):
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json

    def close(self):
        pass


class FakeSession:
    """Routes requests by (method, url) to canned responses or exceptions."""

    def __init__(self, routes=None, default=None):
        self.routes = routes or {}
        self.default = default
        self.calls = []
        self.headers = {}

    def _respond(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        result = self.routes.get((method, url), self.default)
        if result is None:
            raise requests.ConnectionError(f"no route for {method} {url}")
        if isinstance(result, Exception):
            raise result
        return result

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)

    def head(self, url, **kwargs):
        return self._respond("HEAD", url, **kwargs)

    def post(self, url, **kwargs):
        return self._respond("POST", url, **kwargs)


class SleepRecorder:
    """Stands in for time.sleep and remembers each delay."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


SAMPLE_CSS = """
:root { --brand-primary: #1E6FD9; }
.btn-primary { background: #1E6FD9; color: #ffffff; }
body { font-family: "Inter", sans-serif; color: #333333; }
"""

SAMPLE_HTML = """<html><head><title>Acme Rockets | Home</title>
<link rel="icon" href="/favicon.ico">
<style>""" + SAMPLE_CSS + """</style></head>
<body>
<header class="site-header"><img src="/static/acme-logo.svg" alt="Acme"></header>
<h1>Rockets for everyone</h1>
<div style="background-color: rgb(30, 111, 217)">Launch</div>
<svg><path fill="#1E6FD9"/></svg>
</body></html>
"""

# Smallest byte prefix a PNG sniffer recognises, padded past the 10KB floor
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 20000


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def settings():
    return PipelineSettings()


@pytest.fixture
def sample_document():
    return CapturedDocument(url="https://acme.example/", html=SAMPLE_HTML, stylesheet_text=SAMPLE_CSS)


@pytest.fixture
def png_bytes():
    return PNG_BYTES
