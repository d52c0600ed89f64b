import httpx
import pytest

from conftest import FEED_URL, json_transport, text_transport
from pos_tracker.services import ledger_feed_service
from pos_tracker.services.ledger_feed_service import (
    KIND_APP_ERROR,
    KIND_HANDLER_MISSING,
    KIND_LOGIN_REDIRECT,
    KIND_MALFORMED_JSON,
    KIND_SCRIPT_NOT_FOUND,
    FeedConfigError,
    UpstreamFormatError,
    UpstreamStatusError,
    UpstreamUnreachable,
    classify_body,
    extract_json_array,
    validate_feed_url,
)


def test_validate_feed_url():
    assert validate_feed_url(FEED_URL) == FEED_URL

    with pytest.raises(FeedConfigError, match="Wrong URL Type"):
        validate_feed_url("https://docs.google.com/spreadsheets/d/abc/edit")
    with pytest.raises(FeedConfigError, match="Invalid Web App URL"):
        validate_feed_url("https://example.com/feed")


def test_extract_json_array_tolerates_wrapping():
    assert extract_json_array('  [{"a": 1}]  ') == [{"a": 1}]
    assert extract_json_array('callback([{"a": 1}]);') == [{"a": 1}]
    with pytest.raises(ValueError):
        extract_json_array('{"a": 1}')


@pytest.mark.parametrize("body, kind", [
    ("<!DOCTYPE html><html><title>Sign in</title>ServiceLogin</html>", KIND_LOGIN_REDIRECT),
    ("<html><title>Error</title>Script function not found: doGet</html>", KIND_HANDLER_MISSING),
    ("<html><title>Not Found</title>Sorry, the file you have requested does not exist. 404</html>", KIND_SCRIPT_NOT_FOUND),
    ("<html><title>Error</title>TypeError: cannot read property</html>", KIND_APP_ERROR),
    ("Exception: Sheet not found", KIND_APP_ERROR),
    ("Script function not found: doPost", KIND_HANDLER_MISSING),
    ("definitely not json", KIND_MALFORMED_JSON),
])
def test_classify_body(body, kind):
    assert classify_body(body)[0] == kind


def test_fetch_returns_array(app):
    data = ledger_feed_service.fetch_feed(transport=json_transport([{"a": 1}, {"b": 2}]))
    assert data == [{"a": 1}, {"b": 2}]


def test_fetch_passes_action(app):
    seen = []

    def handler(request):
        seen.append(request.url.params.get("action"))
        return httpx.Response(200, text="[]")

    ledger_feed_service.fetch_feed(action="getStock", transport=httpx.MockTransport(handler))
    assert seen == ["getStock"]


def test_fetch_login_page_is_reported_with_hint(app):
    html = "<html><head><title>Sign in - Google Accounts</title></head><body>ServiceLogin</body></html>"
    with pytest.raises(UpstreamFormatError) as excinfo:
        ledger_feed_service.fetch_feed(transport=text_transport(html))

    err = excinfo.value
    assert err.kind == KIND_LOGIN_REDIRECT
    assert err.title == "Sign in - Google Accounts"
    body = err.to_dict()
    assert body["error"] == 'Google Error: "Sign in - Google Accounts"'
    assert "Anyone" in body["hint"]


def test_fetch_non_2xx(app):
    with pytest.raises(UpstreamStatusError) as excinfo:
        ledger_feed_service.fetch_feed(transport=text_transport("boom", status_code=503))
    assert excinfo.value.status == 503
    assert excinfo.value.details == "boom"


def test_fetch_unreachable(app):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(UpstreamUnreachable):
        ledger_feed_service.fetch_feed(transport=httpx.MockTransport(handler))


def test_missing_url_is_a_server_error(app):
    app.config["LEDGER_FEED_URL"] = None
    try:
        with pytest.raises(FeedConfigError) as excinfo:
            ledger_feed_service.fetch_feed()
        assert excinfo.value.status_code == 500
    finally:
        app.config["LEDGER_FEED_URL"] = FEED_URL


def test_feed_check_reports_sample(app):
    result = ledger_feed_service.probe_feed(transport=text_transport("x" * 1000))
    assert result["ok"] is True
    assert result["status"] == 200
    assert len(result["sample"]) == 300
