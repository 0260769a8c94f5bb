"""Tests for MetaClient over a mocked requests session."""

from __future__ import annotations

import base64
import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from adlaunch.infrastructure.error_handling import MetaApiError, RetryConfig
from adlaunch.integrations.meta_client import (
    TRANSPORT_ERROR,
    MetaClient,
    WriteResult,
    normalize_account_id,
    should_fall_back,
)


def _resp(status=200, body=None, content=b""):
    r = MagicMock()
    r.status_code = status
    r.json.return_value = body if body is not None else {}
    r.text = json.dumps(body)
    r.content = content
    return r


def _error(code, message="error", error_type="OAuthException", subcode=None):
    err = {"message": message, "code": code, "type": error_type}
    if subcode is not None:
        err["error_subcode"] = subcode
    return {"error": err}


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def meta(session):
    return MetaClient(
        "tok",
        api_version="v24.0",
        session=session,
        retry=RetryConfig(max_retries=2, initial_delay=0, jitter=False),
        use_sdk=False,
    )


class TestHelpers:
    def test_normalize_account_id(self):
        assert normalize_account_id("123") == ("123", "act_123")
        assert normalize_account_id("act_123") == ("123", "act_123")

    @pytest.mark.parametrize(
        "error, expected",
        [
            (MetaApiError("x", http_status=503), True),
            (MetaApiError("x", code=2), True),
            (MetaApiError("x", error_type=TRANSPORT_ERROR), True),
            (MetaApiError("x", code=100, http_status=400), False),
            (None, False),
        ],
    )
    def test_should_fall_back(self, error, expected):
        assert should_fall_back(error) is expected

    def test_token_required(self):
        with pytest.raises(ValueError):
            MetaClient("")


class TestWrites:
    def test_create_adset(self, meta, session):
        session.request.return_value = _resp(body={"id": "238"})

        assert meta.create_adset("123", {"name": "A", "bid_amount": None}) == "238"

        method, url = session.request.call_args[0]
        kwargs = session.request.call_args[1]
        assert method == "POST"
        assert url == "https://graph.facebook.com/v24.0/act_123/adsets"
        assert kwargs["params"]["access_token"] == "tok"
        assert kwargs["json"] == {"name": "A"}
        assert kwargs["timeout"] == meta.timeout

    def test_structured_error_not_retried(self, meta, session):
        session.request.return_value = _resp(400, _error(100, "Invalid parameter", subcode=1487390))

        with pytest.raises(MetaApiError) as exc:
            meta.create_ad("act_123", {"name": "A"})

        assert exc.value.code == 100
        assert exc.value.error_type == "OAuthException"
        assert exc.value.subcode == 1487390
        assert exc.value.message == "Invalid parameter"
        assert session.request.call_count == 1

    def test_rate_limit_retried(self, meta, session):
        session.request.side_effect = [_resp(400, _error(613, "Calls limited")), _resp(body={"id": "ad-1"})]
        assert meta.create_ad("123", {"name": "A"}) == "ad-1"
        assert session.request.call_count == 2

    def test_server_error_exhausts_retries(self, meta, session):
        session.request.return_value = _resp(500, _error(1, "An unknown error occurred"))
        with pytest.raises(MetaApiError):
            meta.create_ad_creative("123", {"name": "A"})
        assert session.request.call_count == 3

    def test_missing_id_is_an_error(self, meta, session):
        session.request.return_value = _resp(body={"success": True})
        with pytest.raises(MetaApiError, match="no ID"):
            meta.create_ad("123", {"name": "A"})

    def test_transport_error(self, meta, session):
        session.request.side_effect = requests.ConnectionError("reset")
        with pytest.raises(MetaApiError) as exc:
            meta.create_ad("123", {"name": "A"})
        assert exc.value.error_type == TRANSPORT_ERROR


class TestSdkFallback:
    def test_server_error_falls_back(self, meta, session):
        session.request.return_value = _resp(500, _error(2, "Service temporarily unavailable"))
        meta.use_sdk = True
        with patch.object(MetaClient, "_sdk_write", return_value=WriteResult("sdk", data={"id": "sdk-1"})) as sdk:
            assert meta.create_adset("123", {"name": "A"}) == "sdk-1"
        sdk.assert_called_once_with("adsets", "act_123", {"name": "A"})

    def test_client_error_does_not_fall_back(self, meta, session):
        session.request.return_value = _resp(400, _error(100, "Invalid parameter"))
        meta.use_sdk = True
        with patch.object(MetaClient, "_sdk_write") as sdk:
            with pytest.raises(MetaApiError):
                meta.create_adset("123", {"name": "A"})
        sdk.assert_not_called()

    def test_last_error_surfaces_when_all_strategies_fail(self, meta, session):
        session.request.return_value = _resp(500, _error(1))
        meta.use_sdk = True
        sdk_error = MetaApiError("sdk failed", code=1, http_status=500)
        with patch.object(MetaClient, "_sdk_write", return_value=WriteResult("sdk", error=sdk_error)):
            with pytest.raises(MetaApiError) as exc:
                meta.create_ad("123", {"name": "A"})
        assert exc.value is sdk_error


class TestReads:
    def test_adset_details(self, meta, session):
        session.request.return_value = _resp(body={"id": "238", "status": "PAUSED"})
        assert meta.get_adset_details("238")["status"] == "PAUSED"
        assert "targeting" in session.request.call_args[1]["params"]["fields"]

    def test_adset_details_id_mismatch(self, meta, session):
        session.request.return_value = _resp(body={})
        with pytest.raises(MetaApiError, match="not found"):
            meta.get_adset_details("238")

    def test_insights(self, meta, session):
        session.request.return_value = _resp(body={"data": [{"impressions": "10", "clicks": "2"}]})
        row = meta.get_ad_insights("ad-1", {"since": "2026-03-09", "until": "2026-03-10"})
        assert row["clicks"] == "2"
        params = session.request.call_args[1]["params"]
        assert json.loads(params["time_range"]) == {"since": "2026-03-09", "until": "2026-03-10"}
        assert session.request.call_args[0][1].endswith("/ad-1/insights")

    def test_insights_empty(self, meta, session):
        session.request.return_value = _resp(body={"data": []})
        assert meta.get_ad_insights("ad-1", {"since": "a", "until": "b"}) == {}

    def test_pages(self, meta, session):
        session.request.return_value = _resp(body={"data": [{"id": "1", "name": "Brand"}, {"name": "no id"}]})
        assert meta.get_pages() == [{"id": "1", "name": "Brand"}]

    def test_thumbnail_prefers_preferred(self, meta, session):
        session.request.return_value = _resp(body={"data": [
            {"uri": "https://t/1.jpg", "is_preferred": False},
            {"uri": "https://t/2.jpg", "is_preferred": True},
        ]})
        assert meta.get_video_thumbnail_url("vid-1") == "https://t/2.jpg"

    def test_thumbnail_best_effort(self, meta, session):
        session.request.return_value = _resp(400, _error(100))
        assert meta.get_video_thumbnail_url("vid-1") is None


class TestMedia:
    def test_upload_image(self, meta, session):
        session.get.return_value = _resp(content=b"\x89PNG")
        session.request.return_value = _resp(body={"images": {"a.png": {"hash": "abc123"}}})

        assert meta.upload_media("123", "image", "https://cdn/a.png") == "abc123"

        session.get.assert_called_once()
        assert session.request.call_args[1]["json"] == {"bytes": base64.b64encode(b"\x89PNG").decode("ascii")}
        assert session.request.call_args[0][1].endswith("/act_123/adimages")

    def test_upload_image_without_hash(self, meta, session):
        session.get.return_value = _resp(content=b"x")
        session.request.return_value = _resp(body={"images": {}})
        with pytest.raises(MetaApiError, match="No image hash"):
            meta.upload_ad_image("123", "https://cdn/a.png")

    def test_unreachable_media(self, meta, session):
        session.get.side_effect = requests.ConnectionError("dns")
        with pytest.raises(MetaApiError) as exc:
            meta.upload_ad_image("123", "https://cdn/a.png")
        assert exc.value.error_type == TRANSPORT_ERROR

    def test_upload_video(self, meta, session):
        session.request.return_value = _resp(body={"id": "vid-77"})
        assert meta.upload_media("act_123", "video", "https://cdn/v.mp4") == "vid-77"
        assert session.request.call_args[1]["json"] == {"file_url": "https://cdn/v.mp4"}


class TestDryRun:
    def test_no_http_and_stable_ids(self, session):
        meta = MetaClient("", session=session, dry_run=True, use_sdk=False)
        first = meta.create_ad("123", {"name": "A"})
        assert first == meta.create_ad("123", {"name": "A"})
        assert meta.upload_ad_image("123", "https://cdn/a.png").startswith("IMG_")
        assert meta.get_adset_details("x") == {"id": "x", "mock": True}
        session.request.assert_not_called()
        session.get.assert_not_called()
