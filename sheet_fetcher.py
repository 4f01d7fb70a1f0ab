"""Download the published schedule sheet, falling back to a CORS proxy."""

import logging
from typing import Optional
from urllib import parse

import requests

logger = logging.getLogger(__name__)

SHEET_URL = (
    "https://docs.google.com/spreadsheets/d/e/"
    "2PACX-1vQEUW3vd8VtYtI7vy_wpMeATDMZDuW5-y4u7jmyw0qlEaBSZ8fBdNnFKMl1yTwJmQ8mRVC2jvE812b9"
    "/pub?gid=1943990106&single=true&output=csv"
)

# "{url}" is replaced with the url-encoded sheet address
PROXY_URL_TEMPLATE = "https://api.allorigins.win/get?url={url}"

DEFAULT_TIMEOUT = 8.0

HTML_DOCUMENT_MARKER = "<!DOCTYPE html>"


class SheetError(Exception):
    """Base class for schedule retrieval failures."""


class SheetFetchError(SheetError):
    """The sheet could not be downloaded, directly or through the proxy."""


class SheetFormatError(SheetError):
    """The sheet source answered with an HTML page instead of data."""


def build_proxy_url(sheet_url: str, proxy_template: str = PROXY_URL_TEMPLATE) -> str:
    return proxy_template.format(url=parse.quote(sheet_url, safe=""))


def fetch_sheet_text(
    sheet_url: str = SHEET_URL,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    proxy_template: str = PROXY_URL_TEMPLATE,
    session: Optional[requests.Session] = None,
) -> str:
    """
    Fetch the raw sheet text.

    One attempt against the sheet itself; on an HTTP error status a single
    attempt through the CORS proxy, whose JSON envelope carries the sheet
    text under "contents". There is no retry or backoff beyond that.
    """
    if session is not None:
        return _fetch_with_session(session, sheet_url, timeout, proxy_template)
    with requests.Session() as http:
        return _fetch_with_session(http, sheet_url, timeout, proxy_template)


def _fetch_with_session(http, sheet_url: str, timeout: float, proxy_template: str) -> str:
    try:
        response = http.get(sheet_url, timeout=timeout)
        if response.ok:
            return response.text

        logger.warning("Sheet request failed with HTTP %s, trying proxy", response.status_code)
        proxy_response = http.get(build_proxy_url(sheet_url, proxy_template), timeout=timeout)
        proxy_data = proxy_response.json()
    except requests.RequestException as exc:
        raise SheetFetchError(f"Sheet request failed: {exc}") from exc
    except ValueError as exc:
        # Proxy answered with something that is not JSON
        raise SheetFetchError("Could not fetch via proxy") from exc

    contents = proxy_data.get("contents") if isinstance(proxy_data, dict) else None
    if not contents:
        raise SheetFetchError("Could not fetch via proxy")
    return contents


def ensure_schedule_text(text: str) -> str:
    """Reject HTML pages (e.g. an unpublished sheet's sign-in page) before parsing."""
    if text.strip().startswith(HTML_DOCUMENT_MARKER):
        raise SheetFormatError("Received an HTML page instead of sheet data")
    return text


def load_schedule_text(
    sheet_url: str = SHEET_URL,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    proxy_template: str = PROXY_URL_TEMPLATE,
    session: Optional[requests.Session] = None,
) -> str:
    text = fetch_sheet_text(
        sheet_url, timeout=timeout, proxy_template=proxy_template, session=session
    )
    return ensure_schedule_text(text)
