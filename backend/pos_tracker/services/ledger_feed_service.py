# Overview: Pull/push client for the bank's payment ledger (an Apps Script web app).

"""
Ledger Feed Service

The payment ledger lives in a Google Sheet published through an Apps Script
web app. Fetching it goes wrong in a handful of recognisable ways, and the
operator needs to know which one to fix the deployment quickly:

    transport failure              -> UpstreamUnreachable
    non-2xx response               -> UpstreamStatusError
    body is not a JSON array       -> UpstreamFormatError, with kind:
        login_redirect    Google served its sign-in page (access not "Anyone")
        handler_missing   doGet/doPost missing in the script
        script_not_found  deployment URL is stale or wrong
        app_error         the script itself threw
        malformed_json    anything else

No function here touches the local payment ledger; callers merge only
after a fetch has fully succeeded.
"""

from __future__ import annotations

import json
import re
from typing import Any

import httpx
from flask import current_app


EXCERPT_CHARS = 500

KIND_LOGIN_REDIRECT = "login_redirect"
KIND_HANDLER_MISSING = "handler_missing"
KIND_SCRIPT_NOT_FOUND = "script_not_found"
KIND_APP_ERROR = "app_error"
KIND_MALFORMED_JSON = "malformed_json"

HINTS = {
    KIND_LOGIN_REDIRECT: "Google login page returned. In the Apps Script deployment, set access to Anyone and redeploy.",
    KIND_HANDLER_MISSING: "Apps Script endpoint is reachable, but the doGet/doPost handler is missing or mismatched.",
    KIND_SCRIPT_NOT_FOUND: "The script was not found. Check that the URL is correct and the deployment is active.",
    KIND_APP_ERROR: "Apps Script returned an internal error. Check the Apps Script execution logs.",
    KIND_MALFORMED_JSON: "Google response was not valid JSON.",
}

_TITLE_RE = re.compile(r"<title>(.*?)</title>", re.IGNORECASE | re.DOTALL)


class LedgerFeedError(Exception):
    """Base class for ledger feed failures."""
    status_code = 502

    def __init__(self, message: str, *, details: str | None = None):
        super().__init__(message)
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": str(self)}
        if self.details:
            body["details"] = self.details
        return body


class FeedConfigError(LedgerFeedError):
    """Feed URL missing or not an Apps Script web app URL."""
    status_code = 400


class UpstreamUnreachable(LedgerFeedError):
    """Transport-level failure (DNS, connect, timeout)."""


class UpstreamStatusError(LedgerFeedError):
    """The feed answered with a non-2xx status."""

    def __init__(self, status: int, *, details: str | None = None):
        super().__init__(f"Google Script returned HTTP {status}", details=details)
        self.status = status


class UpstreamFormatError(LedgerFeedError):
    """The feed answered 2xx but the body is not the expected JSON array."""

    def __init__(self, kind: str, *, title: str | None = None, details: str | None = None):
        message = f'Google Error: "{title}"' if title else "Google Script returned invalid JSON"
        super().__init__(message, details=details)
        self.kind = kind
        self.hint = HINTS[kind]
        self.title = title

    def to_dict(self) -> dict:
        body = super().to_dict()
        body.update({"kind": self.kind, "hint": self.hint})
        return body


def _excerpt(text: str, limit: int = EXCERPT_CHARS) -> str:
    return text[:limit]


def get_feed_url() -> str:
    url = current_app.config.get("LEDGER_FEED_URL")
    if not url:
        err = FeedConfigError("LEDGER_FEED_URL is not configured")
        err.status_code = 500
        raise err
    return url


def validate_feed_url(url: str) -> str:
    if "docs.google.com/spreadsheets" in url:
        raise FeedConfigError(
            "Wrong URL Type",
            details="Use the Google Apps Script Web App URL from Deploy > Manage deployments.",
        )
    if "script.google.com/macros/s/" not in url or "/exec" not in url:
        raise FeedConfigError(
            "Invalid Web App URL",
            details="URL must look like https://script.google.com/macros/s/.../exec",
        )
    return url


def extract_json_array(text: str) -> list:
    """Parse the outermost [...] in the body; Apps Script sometimes wraps it."""
    body = text.strip()
    start = body.find("[")
    end = body.rfind("]")
    if start != -1 and end != -1 and start < end:
        body = body[start:end + 1]
    data = json.loads(body)
    if not isinstance(data, list):
        raise ValueError("expected a JSON array")
    return data


def _is_html(text: str) -> bool:
    lower = text.lower()
    return "<!doctype html" in lower or "<html" in lower


def classify_body(text: str) -> tuple[str, str | None]:
    """Return (kind, html title or None) for a body that failed to parse."""
    lower = text.lower()
    if _is_html(text):
        match = _TITLE_RE.search(text)
        title = match.group(1).strip() if match else "Unknown Error"
        if "servicelogin" in lower or "service login" in lower or "google account" in lower:
            return KIND_LOGIN_REDIRECT, title
        if "script function not found" in lower:
            return KIND_HANDLER_MISSING, title
        if "script not found" in lower or "404" in lower:
            return KIND_SCRIPT_NOT_FOUND, title
        return KIND_APP_ERROR, title
    if "script function not found" in lower:
        return KIND_HANDLER_MISSING, None
    if "exception:" in lower:
        return KIND_APP_ERROR, None
    return KIND_MALFORMED_JSON, None


def _client(transport: httpx.BaseTransport | None = None) -> httpx.Client:
    return httpx.Client(
        timeout=current_app.config.get("LEDGER_FEED_TIMEOUT_SECONDS", 30),
        follow_redirects=True,
        transport=transport,
    )


def fetch_feed(
    url: str | None = None,
    *,
    action: str | None = None,
    transport: httpx.BaseTransport | None = None,
) -> list[Any]:
    """
    GET the feed and return its JSON array.

    Raises:
        FeedConfigError, UpstreamUnreachable, UpstreamStatusError, UpstreamFormatError
    """
    url = validate_feed_url(url or get_feed_url())
    params = {"action": action} if action else None
    logger = current_app.logger
    logger.info("[Ledger Feed] Fetching %s", url)

    try:
        with _client(transport) as client:
            response = client.get(url, params=params)
    except httpx.HTTPError as exc:
        logger.error("[Ledger Feed] Connection error: %s", exc)
        raise UpstreamUnreachable("Failed to connect to Google.", details=str(exc)) from exc

    text = response.text
    if not response.is_success:
        logger.error("[Ledger Feed] Google returned HTTP %d", response.status_code)
        raise UpstreamStatusError(response.status_code, details=_excerpt(text))

    try:
        data = extract_json_array(text)
    except ValueError as exc:
        kind, title = classify_body(text)
        logger.error("[Ledger Feed] Unparsable body (%s). First 1000 chars: %s", kind, text[:1000])
        raise UpstreamFormatError(kind, title=title, details=_excerpt(text)) from exc

    logger.info("[Ledger Feed] Fetched %d records", len(data))
    return data


def push_payment(
    payload: dict,
    url: str | None = None,
    *,
    transport: httpx.BaseTransport | None = None,
) -> None:
    """POST one payment row to the sheet."""
    url = validate_feed_url(url or get_feed_url())
    try:
        with _client(transport) as client:
            response = client.post(url, json=payload)
    except httpx.HTTPError as exc:
        raise UpstreamUnreachable("Failed to proxy sync to Google Script", details=str(exc)) from exc
    if not response.is_success:
        raise UpstreamStatusError(response.status_code, details=_excerpt(response.text))


def probe_feed(url: str | None = None, *, transport: httpx.BaseTransport | None = None) -> dict:
    """Health probe: reachability, status and a short body sample."""
    url = url or get_feed_url()
    try:
        with _client(transport) as client:
            response = client.get(url)
    except httpx.HTTPError as exc:
        return {"ok": False, "error": "Failed to connect to Google", "details": str(exc), "script_url": url}
    return {
        "ok": response.is_success,
        "status": response.status_code,
        "script_url": url,
        "sample": _excerpt(response.text, 300),
    }
