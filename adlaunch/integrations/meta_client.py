# meta_client.py
from __future__ import annotations

import base64
import hashlib
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from adlaunch.infrastructure.error_handling import MetaApiError, RetryConfig, RetryHandler
from adlaunch.models import IMAGE, VIDEO

logger = logging.getLogger(__name__)


def _meta_log(level: int, message: str, *args) -> None:
    logger.log(level, f"[META] {message}", *args)


USE_SDK = False
try:
    from facebook_business.api import FacebookAdsApi
    from facebook_business.adobjects.adaccount import AdAccount
    from facebook_business.exceptions import FacebookRequestError
    USE_SDK = True
except ImportError:  # pragma: no cover
    USE_SDK = False


# -------------------------
# Environment & guards
# -------------------------
META_RETRY_MAX    = int(os.getenv("META_RETRY_MAX", "3") or 3)
META_BACKOFF_BASE = float(os.getenv("META_BACKOFF_BASE", "1.0") or 1.0)
META_TIMEOUT      = float(os.getenv("META_TIMEOUT", "30") or 30)
META_API_VERSION  = os.getenv("FB_API_VERSION") or "v24.0"
MEDIA_FETCH_TIMEOUT = float(os.getenv("MEDIA_FETCH_TIMEOUT", "30") or 30)

GRAPH_BASE = "https://graph.facebook.com"

ADSET_DETAIL_FIELDS = (
    "id", "name", "status", "daily_budget", "lifetime_budget", "budget_remaining",
    "targeting", "optimization_goal", "billing_event", "bid_strategy", "bid_amount",
    "promoted_object", "attribution_spec", "start_time", "end_time", "campaign_id",
)
INSIGHT_FIELDS = ("impressions", "clicks", "ctr", "spend", "frequency")

# Meta "unknown"/"service" errors: worth trying the SDK path before giving up.
FALLBACK_ERROR_CODES = (1, 2)
TRANSPORT_ERROR = "TransportError"


# -------------------------
# Helpers
# -------------------------
def _s(x: Any) -> str:
    if x is None or callable(x):
        return ""
    return str(x)


def _sanitize(obj: Any) -> Any:
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, dict):
        return {_s(k): _sanitize(v) for k, v in obj.items() if v is not None}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(v) for v in obj]
    return _s(obj)


def normalize_account_id(account_id: str) -> Tuple[str, str]:
    """Returns (numeric_id, act_prefixed_id). Accepts either '123' or 'act_123'."""
    aid = (account_id or "").strip()
    num = aid[4:] if aid.startswith("act_") else aid
    return num, f"act_{num}"


def _mock_id(prefix: str, *parts: str) -> str:
    h = hashlib.sha256()
    for p in parts:
        h.update((p or "").encode("utf-8"))
        h.update(b"\x1f")
    return f"{prefix}_{int(h.hexdigest()[:12], 16) % 10_000_000}"


def should_fall_back(error: Optional[MetaApiError]) -> bool:
    """Fallback trigger between write strategies: server-side or transport failures only."""
    if error is None:
        return False
    if error.error_type == TRANSPORT_ERROR:
        return True
    if error.code in FALLBACK_ERROR_CODES:
        return True
    return isinstance(error.http_status, int) and error.http_status >= 500


@dataclass
class WriteResult:
    strategy: str
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[MetaApiError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# -------------------------
# Client
# -------------------------
class MetaClient:
    """
    Graph API client for the deployment pipeline.

    Reads are plain HTTP. Writes (adsets/creatives/ads) are HTTP-first with the
    Business SDK as a fallback strategy, tried only for server-side errors.
    Budgets arrive here already in minor currency units (cents).
    """

    def __init__(
        self,
        access_token: str,
        *,
        api_version: Optional[str] = None,
        timeout: float = META_TIMEOUT,
        retry: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
        app_id: Optional[str] = None,
        app_secret: Optional[str] = None,
        dry_run: bool = False,
        use_sdk: bool = USE_SDK,
    ) -> None:
        if not access_token and not dry_run:
            raise ValueError("An access token is required.")
        self.access_token = access_token
        self.api_version = api_version or META_API_VERSION
        self.timeout = float(timeout)
        self.retry = RetryHandler(retry or RetryConfig(max_retries=META_RETRY_MAX, initial_delay=META_BACKOFF_BASE, max_delay=30.0))
        self.session = session or requests.Session()
        self.app_id = app_id or os.getenv("FB_APP_ID")
        self.app_secret = app_secret or os.getenv("FB_APP_SECRET")
        self.dry_run = bool(dry_run)
        self.use_sdk = bool(use_sdk) and USE_SDK
        self._sdk_api = None

    # ------------- HTTP helpers -------------
    def _graph_url(self, path: str) -> str:
        return f"{GRAPH_BASE}/{self.api_version}/{path.lstrip('/')}"

    def _request_once(self, method: str, path: str, *, params: Optional[Dict[str, Any]] = None, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        qp = dict(params or {})
        qp["access_token"] = self.access_token
        try:
            r = self.session.request(
                method,
                self._graph_url(path),
                params=qp,
                json=_sanitize(payload) if payload is not None else None,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise MetaApiError(f"{method} {path} failed: {e}", error_type=TRANSPORT_ERROR, endpoint=path) from e

        if r.status_code >= 400:
            try:
                err = r.json()
            except ValueError:
                err = {"error": {"message": r.text}}
            raise MetaApiError.from_response(err, http_status=r.status_code, endpoint=path)
        try:
            return r.json()
        except ValueError:
            return {"ok": True, "text": r.text}

    def _graph_get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.retry.execute(self._request_once, "GET", path, params=params)

    def _graph_post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.retry.execute(self._request_once, "POST", path, payload=payload)

    # ------------- Write strategies -------------
    def _http_write(self, edge: str, act_id: str, payload: Dict[str, Any]) -> WriteResult:
        try:
            return WriteResult("graph", data=self._graph_post(f"{act_id}/{edge}", payload))
        except MetaApiError as e:
            return WriteResult("graph", error=e)

    def _sdk(self):
        if self._sdk_api is None:
            self._sdk_api = FacebookAdsApi.init(
                app_id=self.app_id,
                app_secret=self.app_secret,
                access_token=self.access_token,
                api_version=self.api_version,
                timeout=self.timeout,
                crash_log=False,
            )
        return self._sdk_api

    def _sdk_write(self, edge: str, act_id: str, payload: Dict[str, Any]) -> WriteResult:
        creators: Dict[str, Callable[..., Any]] = {
            "adsets": lambda acct: acct.create_ad_set,
            "adcreatives": lambda acct: acct.create_ad_creative,
            "ads": lambda acct: acct.create_ad,
        }
        if edge not in creators:
            return WriteResult("sdk", error=MetaApiError(f"SDK cannot write edge {edge!r}", endpoint=edge))
        try:
            account = AdAccount(act_id, api=self._sdk())
            created = creators[edge](account)(fields=[], params=_sanitize(payload))
            return WriteResult("sdk", data=dict(created))
        except FacebookRequestError as e:
            return WriteResult("sdk", error=MetaApiError(
                e.api_error_message() or str(e),
                code=e.api_error_code(),
                error_type=e.api_error_type(),
                subcode=e.api_error_subcode(),
                http_status=e.http_status(),
                endpoint=f"{act_id}/{edge}",
            ))

    def _write_strategies(self) -> List[Callable[[str, str, Dict[str, Any]], WriteResult]]:
        strategies = [self._http_write]
        if self.use_sdk:
            strategies.append(self._sdk_write)
        return strategies

    def _write(self, edge: str, ad_account_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        _, act_id = normalize_account_id(ad_account_id)
        if self.dry_run:
            return {"id": _mock_id(edge.upper()[:2], act_id, repr(sorted(payload.items()))), "mock": True}

        last: Optional[WriteResult] = None
        for strategy in self._write_strategies():
            last = strategy(edge, act_id, payload)
            if last.ok:
                if last.strategy != "graph":
                    _meta_log(logging.WARNING, "%s written via %s fallback", edge, last.strategy)
                return last.data
            if not should_fall_back(last.error):
                break
            _meta_log(logging.WARNING, "%s via %s failed (%s); trying next strategy", edge, last.strategy, last.error)
        assert last is not None and last.error is not None
        raise last.error

    def _created_id(self, edge: str, data: Dict[str, Any]) -> str:
        created = _s(data.get("id")).strip()
        if not created:
            raise MetaApiError(f"{edge} creation succeeded but no ID was returned", endpoint=edge)
        return created

    # ------------- Adsets -------------
    def create_adset(self, ad_account_id: str, payload: Dict[str, Any]) -> str:
        _meta_log(logging.INFO, "create_adset name=%s campaign=%s", payload.get("name"), payload.get("campaign_id"))
        return self._created_id("adsets", self._write("adsets", ad_account_id, payload))

    def get_adset_details(self, adset_id: str) -> Dict[str, Any]:
        if self.dry_run:
            return {"id": adset_id, "mock": True}
        details = self._graph_get(adset_id, params={"fields": ",".join(ADSET_DETAIL_FIELDS)})
        if _s(details.get("id")) != _s(adset_id):
            raise MetaApiError(f"Adset {adset_id} not found", endpoint=adset_id)
        return details

    # ------------- Media -------------
    def _fetch_media_bytes(self, url: str) -> bytes:
        try:
            r = self.session.get(url, timeout=MEDIA_FETCH_TIMEOUT)
            r.raise_for_status()
        except requests.RequestException as e:
            raise MetaApiError(f"Could not fetch media from {url}: {e}", error_type=TRANSPORT_ERROR, endpoint=url) from e
        return r.content

    def upload_ad_image(self, ad_account_id: str, image_url: str) -> str:
        """Upload image bytes to the account's image library and return the image hash."""
        _, act_id = normalize_account_id(ad_account_id)
        if self.dry_run:
            return _mock_id("IMG", act_id, image_url)
        data = self._fetch_media_bytes(image_url)
        _meta_log(logging.INFO, "upload_ad_image %s (%d bytes)", image_url, len(data))
        res = self._graph_post(f"{act_id}/adimages", {"bytes": base64.b64encode(data).decode("ascii")})
        for entry in (res.get("images") or {}).values():
            if isinstance(entry, dict) and entry.get("hash"):
                return _s(entry["hash"])
        raise MetaApiError("No image hash returned from Facebook", endpoint=f"{act_id}/adimages")

    def upload_ad_video(self, ad_account_id: str, video_url: str) -> str:
        _, act_id = normalize_account_id(ad_account_id)
        if self.dry_run:
            return _mock_id("VID", act_id, video_url)
        _meta_log(logging.INFO, "upload_ad_video %s", video_url)
        return self._created_id("advideos", self._graph_post(f"{act_id}/advideos", {"file_url": video_url}))

    def upload_media(self, ad_account_id: str, kind: str, locator: str) -> str:
        if kind == IMAGE:
            return self.upload_ad_image(ad_account_id, locator)
        if kind == VIDEO:
            return self.upload_ad_video(ad_account_id, locator)
        raise ValueError(f"Unsupported media kind: {kind!r}")

    # ------------- Creatives & Ads -------------
    def create_ad_creative(self, ad_account_id: str, payload: Dict[str, Any]) -> str:
        _meta_log(logging.INFO, "create_ad_creative name=%s", payload.get("name"))
        return self._created_id("adcreatives", self._write("adcreatives", ad_account_id, payload))

    def create_ad(self, ad_account_id: str, payload: Dict[str, Any]) -> str:
        _meta_log(logging.INFO, "create_ad name=%s adset=%s", payload.get("name"), payload.get("adset_id"))
        return self._created_id("ads", self._write("ads", ad_account_id, payload))

    # ------------- Reads -------------
    def get_ad_insights(self, ad_id: str, date_range: Dict[str, str]) -> Dict[str, Any]:
        if self.dry_run:
            return {}
        res = self._graph_get(
            f"{ad_id}/insights",
            params={"fields": ",".join(INSIGHT_FIELDS), "time_range": json.dumps({"since": date_range["since"], "until": date_range["until"]})},
        )
        rows = res.get("data") or []
        return rows[0] if rows else {}

    def get_video_thumbnail_url(self, video_id: str) -> Optional[str]:
        """Best effort: a missing thumbnail never blocks the creative."""
        if self.dry_run:
            return None
        try:
            res = self._graph_get(f"{video_id}/thumbnails", params={"fields": "uri,is_preferred"})
        except MetaApiError as e:
            _meta_log(logging.WARNING, "No thumbnail for video %s: %s", video_id, e)
            return None
        thumbs = [t for t in (res.get("data") or []) if t.get("uri")]
        if not thumbs:
            return None
        preferred = next((t for t in thumbs if t.get("is_preferred")), thumbs[0])
        return _s(preferred["uri"])

    def get_pages(self) -> List[Dict[str, str]]:
        if self.dry_run:
            return [{"id": "PAGE_DRY_RUN", "name": "dry run"}]
        res = self._graph_get("me/accounts", params={"fields": "id,name"})
        return [
            {"id": _s(p.get("id")), "name": _s(p.get("name"))}
            for p in (res.get("data") or [])
            if p.get("id")
        ]
