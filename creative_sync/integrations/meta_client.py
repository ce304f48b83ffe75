# meta_client.py
from __future__ import annotations

import base64
import hashlib
import json
import logging
import mimetypes
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests

from ..config import FAN_OUT_BATCH_SIZE, META_API_VERSION_DEFAULT, META_TIMEOUT_DEFAULT, TRACKING_PIXEL_ID_DEFAULT
from ..infrastructure.caching import (
    ADSETS_TTL,
    CAMPAIGNS_TTL,
    IMAGE_THUMBNAIL_TTL,
    INSIGHTS_TTL,
    VIDEO_THUMBNAIL_TTL,
    CacheKeys,
    TTLCache,
    meta_cache,
)
from ..infrastructure.error_handling import CreativeSyncError, PlatformRejectionError, PlatformTimeoutError

if TYPE_CHECKING:
    from ..creative.assembly import AdCreativeBody

logger = logging.getLogger(__name__)
# ---------------------------------------------------------------------------
# Logging helpers
# ---------------------------------------------------------------------------


def _meta_log(level: int, message: str, *args) -> None:
    logger.log(level, f"[META] {message}", *args)


GRAPH_BASE_URL = "https://graph.facebook.com"

# Endpoints that require account-scoped URLs (prefixed with act_<account_id>)
ACCOUNT_SCOPED_ENDPOINTS = {
    "ads",
    "adsets",
    "campaigns",
    "insights",
    "adcreatives",
    "adimages",
    "advideos",
}

CAMPAIGN_FIELDS = "id,name,status,objective,daily_budget,lifetime_budget"
ADSET_FIELDS = "id,campaign_id,name,status,targeting,daily_budget,bid_amount,optimization_goal"
AD_FIELDS = "id,name,status,effective_status,creative{id},created_time"

INSIGHT_FIELDS: Tuple[str, ...] = (
    "ad_id", "date_start", "date_stop",
    "impressions", "reach", "frequency", "spend",
    "clicks", "unique_clicks", "cpc", "cpm", "ctr", "unique_ctr",
    "cost_per_unique_click", "inline_link_clicks", "inline_link_click_ctr", "outbound_clicks",
    "video_p25_watched_actions", "video_p50_watched_actions", "video_p75_watched_actions",
    "video_p100_watched_actions", "video_avg_time_watched_actions", "video_play_actions",
    "quality_ranking", "engagement_rate_ranking", "conversion_rate_ranking",
    "actions", "cost_per_action_type", "conversions", "conversion_values", "cost_per_conversion",
    "social_spend",
)


# -------------------------
# Config dataclasses
# -------------------------
@dataclass
class AccountAuth:
    account_id: str                # can be "act_123" or "123"
    access_token: str
    page_id: str
    api_version: Optional[str] = None  # defaulted below


@dataclass
class ClientConfig:
    timeout: float = META_TIMEOUT_DEFAULT
    fan_out_batch_size: int = FAN_OUT_BATCH_SIZE
    page_limit: int = 500
    pixel_id: str = TRACKING_PIXEL_ID_DEFAULT
    instagram_user_id: Optional[str] = None


# -------------------------
# Helpers
# -------------------------
def _normalize_account_id(account_id: str) -> Tuple[str, str]:
    s = (account_id or "").strip()
    num = s[4:] if s.startswith("act_") else s
    return num, f"act_{num}"


def _mock_id(prefix: str, *parts: str) -> str:
    h = hashlib.sha256()
    for p in parts:
        h.update((p or "").encode("utf-8"))
        h.update(b"\x1f")
    return f"{prefix}_{int(h.hexdigest()[:12], 16) % 10_000_000}"


def _strip_access_token(url: str) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "access_token"]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class MetaClient:
    """
    Thin HTTP gateway to the Graph API.

    Every call goes through ``_send``: absolute URL, access token, bounded
    timeout, classified errors. No retries happen here; callers that want
    them wrap calls in a RetryHandler. Read-heavy lookups are memoized in
    the shared TTL cache.
    """

    def __init__(
        self,
        auth: AccountAuth,
        cfg: Optional[ClientConfig] = None,
        *,
        cache: Optional[TTLCache] = None,
        session: Optional[requests.Session] = None,
        dry_run: bool = False,
    ) -> None:
        if not auth.access_token:
            raise ValueError("META_ACCESS_TOKEN is required")
        if not auth.account_id:
            raise ValueError("META_AD_ACCOUNT_ID is required")
        if not auth.page_id:
            raise ValueError("META_PAGE_ID is required")

        self.auth = auth
        if not self.auth.api_version:
            self.auth.api_version = META_API_VERSION_DEFAULT
        self.cfg = cfg or ClientConfig()
        self.cache = cache if cache is not None else meta_cache
        self.session = session or requests.Session()
        self.dry_run = bool(dry_run)

        self._acct_num, self._acct_act = _normalize_account_id(auth.account_id)

    @property
    def ad_account_id(self) -> str:
        return self._acct_act  # 'act_<id>'

    @property
    def page_id(self) -> str:
        return self.auth.page_id

    @property
    def base_url(self) -> str:
        return f"{GRAPH_BASE_URL}/{self.auth.api_version}"

    # ------------- HTTP helpers -------------
    def _graph_url(self, endpoint: str) -> str:
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        endpoint = (endpoint or "").lstrip("/")
        first_segment = endpoint.split("/", 1)[0].split("?", 1)[0]
        if first_segment in ACCOUNT_SCOPED_ENDPOINTS:
            endpoint = f"{self.ad_account_id}/{endpoint}"
        return f"{self.base_url}/{endpoint}"

    def _send(self, method: str, endpoint: str, *, timeout: Optional[float] = None, **kwargs) -> Dict[str, Any]:
        url = self._graph_url(endpoint)
        timeout = timeout or self.cfg.timeout
        try:
            r = self.session.request(method, url, timeout=timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            _meta_log(logging.ERROR, "Timeout after %ss: %s %s", timeout, method, endpoint)
            raise PlatformTimeoutError(endpoint, timeout) from e

        if r.status_code >= 400:
            try:
                body = r.json()
            except ValueError:
                body = {"error": {"message": r.text}}
            _meta_log(logging.ERROR, "Error response from %s %s: %s", method, endpoint, json.dumps(body, default=str))
            raise PlatformRejectionError.from_response_body(
                body, status_code=r.status_code, endpoint=endpoint, reason=getattr(r, "reason", "") or ""
            )

        try:
            return r.json()
        except ValueError:
            return {"ok": True, "text": r.text}

    def request(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """JSON request. Raises PlatformRejectionError or PlatformTimeoutError."""
        qp = dict(params or {})
        qp["access_token"] = self.auth.access_token
        kwargs: Dict[str, Any] = {"params": qp}
        if json_body is not None:
            kwargs["json"] = json_body
        return self._send(method, endpoint, timeout=timeout, **kwargs)

    def request_multipart(
        self,
        endpoint: str,
        *,
        files: Dict[str, Any],
        data: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Binary form upload with the same timeout and error handling."""
        form = dict(data or {})
        form["access_token"] = self.auth.access_token
        return self._send("POST", endpoint, timeout=timeout, files=files, data=form)

    def paginate(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Follow ``paging.next`` until exhausted.

        Any page failure propagates; partial results are never returned.
        """
        rows: List[Dict[str, Any]] = []
        next_endpoint: Optional[str] = endpoint
        next_params = params
        while next_endpoint:
            response = self.request(next_endpoint, params=next_params)
            rows.extend(response.get("data") or [])
            _meta_log(logging.DEBUG, "Fetched %d rows so far from %s", len(rows), endpoint)

            next_url = (response.get("paging") or {}).get("next")
            # the cursor URL already carries every query param except our token
            next_endpoint = _strip_access_token(next_url) if next_url else None
            next_params = None
        return rows

    def fan_out(
        self,
        items: Iterable[Any],
        fn: Callable[[Any], Any],
        *,
        batch_size: Optional[int] = None,
        label: str = "lookup",
    ) -> Dict[Any, Any]:
        """Run ``fn`` per item in concurrent batches of fixed width.

        Each batch is fully awaited before the next starts. Failures and
        None results are logged and dropped; only successes are returned.
        """
        width = max(1, batch_size or self.cfg.fan_out_batch_size)
        unique = list(dict.fromkeys(items))
        results: Dict[Any, Any] = {}
        for start in range(0, len(unique), width):
            batch = unique[start:start + width]
            with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                futures = [(item, executor.submit(fn, item)) for item in batch]
                for item, future in futures:
                    try:
                        value = future.result()
                    except Exception as e:
                        _meta_log(logging.WARNING, "%s failed for %s: %s", label, item, e)
                        continue
                    if value is not None:
                        results[item] = value
        return results

    def _cached(self, key: str) -> Optional[Any]:
        value = self.cache.get(key)
        if value is not None:
            _meta_log(logging.DEBUG, "Cache hit %s", key)
        return value

    # ------------- Campaigns / ad sets -------------
    def get_campaigns(self) -> List[Dict[str, Any]]:
        cached = self._cached(CacheKeys.campaigns)
        if cached is not None:
            return cached

        response = self.request("campaigns", params={"fields": CAMPAIGN_FIELDS, "limit": 100})
        campaigns = response.get("data") or []
        self.cache.set(CacheKeys.campaigns, campaigns, CAMPAIGNS_TTL)
        return campaigns

    def get_campaign_by_id(self, campaign_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self.request(f"{campaign_id}", params={"fields": "id,name,status,objective"})
        except (CreativeSyncError, requests.RequestException) as e:
            _meta_log(logging.DEBUG, "Campaign %s lookup failed: %s", campaign_id, e)
            return None

    def get_adsets(self, campaign_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if not campaign_id:
            return self.get_all_adsets()

        key = CacheKeys.adsets_by_campaign(campaign_id)
        cached = self._cached(key)
        if cached is not None:
            return cached

        response = self.request(
            f"{campaign_id}/adsets",
            params={"fields": ADSET_FIELDS, "limit": 100},
        )
        adsets = [{**adset, "campaign_id": campaign_id} for adset in (response.get("data") or [])]
        self.cache.set(key, adsets, ADSETS_TTL)
        return adsets

    def get_all_adsets(self) -> List[Dict[str, Any]]:
        """Every ad set in the account through the paginated account-level endpoint."""
        cached = self._cached(CacheKeys.adsets)
        if cached is not None:
            return cached

        _meta_log(logging.INFO, "Fetching ALL adsets using account-level endpoint...")
        adsets = self.paginate("adsets", params={"fields": ADSET_FIELDS, "limit": self.cfg.page_limit})
        _meta_log(logging.INFO, "Done! Total adsets: %d", len(adsets))
        self.cache.set(CacheKeys.adsets, adsets, ADSETS_TTL)
        return adsets

    def get_adset_by_id(self, adset_id: str) -> Optional[Dict[str, Any]]:
        key = CacheKeys.adset_by_id(adset_id)
        cached = self._cached(key)
        if cached is not None:
            return cached
        try:
            adset = self.request(f"{adset_id}", params={"fields": "id,name,status,campaign_id"})
        except (CreativeSyncError, requests.RequestException) as e:
            _meta_log(logging.DEBUG, "Adset %s lookup failed: %s", adset_id, e)
            return None
        self.cache.set(key, adset, ADSETS_TTL)
        return adset

    # ------------- Media uploads -------------
    def upload_image(self, data: bytes, filename: str) -> str:
        """Upload raw image bytes and return the image hash."""
        if self.dry_run:
            return _mock_id("MOCK", filename, str(len(data)))

        response = self.request(
            "adimages",
            method="POST",
            json_body={"filename": filename, "bytes": base64.b64encode(data).decode("ascii")},
        )
        images = response.get("images") or {}
        image = next(iter(images.values()), None) if isinstance(images, dict) else None
        image_hash = (image or {}).get("hash")
        if not image_hash:
            raise CreativeSyncError("Failed to get image hash from Meta API response")
        return image_hash

    def upload_video(self, data: bytes, filename: str, *, timeout: Optional[float] = None) -> str:
        """Upload raw video bytes and return the video id."""
        if self.dry_run:
            return _mock_id("MOCKVID", filename, str(len(data)))

        mime_type = mimetypes.guess_type(filename)[0] or "video/mp4"
        response = self.request_multipart(
            "advideos",
            files={"source": (filename, data, mime_type)},
            data={"title": filename},
            timeout=timeout,
        )
        video_id = response.get("id")
        if not video_id:
            raise CreativeSyncError("Failed to get video ID from Meta API response")
        return str(video_id)

    def get_image_urls(self, hashes: List[str]) -> Dict[str, str]:
        """Map image hash -> thumbnail URL (128px variant preferred)."""
        if not hashes:
            return {}

        result: Dict[str, str] = {}
        uncached: List[str] = []
        for image_hash in hashes:
            cached = self.cache.get(CacheKeys.image_thumbnail(image_hash))
            if cached is not None:
                result[image_hash] = cached
            else:
                uncached.append(image_hash)

        if not uncached:
            _meta_log(logging.DEBUG, "All %d image URLs from cache", len(hashes))
            return result

        _meta_log(logging.INFO, "Fetching %d image URLs (%d from cache)", len(uncached), len(hashes) - len(uncached))
        response = self.request(
            "adimages",
            params={"hashes": json.dumps(uncached), "fields": "hash,url,url_128,permalink_url"},
        )
        for img in response.get("data") or []:
            url = img.get("url_128") or img.get("url")
            if not url:
                continue
            result[img["hash"]] = url
            self.cache.set(CacheKeys.image_thumbnail(img["hash"]), url, IMAGE_THUMBNAIL_TTL)
        return result

    def _fetch_video_thumbnail(self, video_id: str) -> Optional[str]:
        response = self.request(f"{video_id}", params={"fields": "thumbnails"})
        thumbnails = ((response.get("thumbnails") or {}).get("data")) or []
        if not thumbnails:
            return None
        preferred = next((t for t in thumbnails if t.get("is_preferred")), thumbnails[0])
        uri = preferred.get("uri")
        if uri:
            self.cache.set(CacheKeys.video_thumbnail(video_id), uri, VIDEO_THUMBNAIL_TTL)
        return uri

    def get_video_thumbnails(self, video_ids: List[str]) -> Dict[str, str]:
        """Map video id -> thumbnail URI, one lookup per uncached id."""
        if not video_ids:
            return {}

        result: Dict[str, str] = {}
        uncached: List[str] = []
        for video_id in video_ids:
            cached = self.cache.get(CacheKeys.video_thumbnail(video_id))
            if cached is not None:
                result[video_id] = cached
            else:
                uncached.append(video_id)

        if uncached:
            _meta_log(logging.INFO, "Fetching %d video thumbnails (%d from cache)", len(uncached), len(video_ids) - len(uncached))
            result.update(self.fan_out(uncached, self._fetch_video_thumbnail, label="video thumbnail"))
        return result

    # ------------- Insights -------------
    def get_ad_insights(self, ad_ids: List[str], date_preset: str = "last_7d") -> List[Dict[str, Any]]:
        fields = ",".join(INSIGHT_FIELDS)

        def _fetch(ad_id: str) -> List[Dict[str, Any]]:
            key = CacheKeys.insights(ad_id, date_preset)
            cached = self.cache.get(key)
            if cached is not None:
                return cached
            response = self.request(f"{ad_id}/insights", params={"fields": fields, "date_preset": date_preset})
            rows = [{**row, "ad_id": ad_id} for row in (response.get("data") or [])]
            self.cache.set(key, rows, INSIGHTS_TTL)
            return rows

        by_ad = self.fan_out(ad_ids, _fetch, label="insights")
        insights: List[Dict[str, Any]] = []
        for ad_id in dict.fromkeys(ad_ids):
            insights.extend(by_ad.get(ad_id, []))
        return insights

    def get_all_ad_insights(self, date_preset: str = "last_7d") -> List[Dict[str, Any]]:
        """Account-level insights for every ad, fully paginated."""
        _meta_log(logging.INFO, "Fetching ALL ad insights using account-level endpoint...")
        insights = self.paginate(
            "insights",
            params={
                "fields": ",".join(INSIGHT_FIELDS),
                "date_preset": date_preset,
                "level": "ad",
                "limit": self.cfg.page_limit,
            },
        )
        _meta_log(logging.INFO, "Done! Total insights: %d", len(insights))
        return insights

    # ------------- Creatives / ads -------------
    def create_ad_creative(self, creative: "AdCreativeBody") -> str:
        """Submit a creative body. Platform rejections propagate unmodified."""
        creative.validate()
        params = creative.to_params()
        if self.dry_run:
            _meta_log(logging.INFO, "[DRY RUN] Would create %s creative %r", creative.kind, creative.name)
            return _mock_id("CR", creative.name)

        _meta_log(logging.DEBUG, "Creating %s creative: %s", creative.kind, json.dumps(params, default=str))
        try:
            response = self.request("adcreatives", method="POST", json_body=params)
        except PlatformRejectionError:
            _meta_log(logging.ERROR, "Full params that failed: %s", json.dumps(params, default=str))
            raise

        creative_id = response.get("id")
        if not creative_id:
            raise CreativeSyncError("Failed to create ad creative")
        return str(creative_id)

    def create_ad(
        self,
        name: str,
        adset_id: str,
        creative_id: str,
        *,
        status: str = "ACTIVE",
        pixel_id: Optional[str] = None,
    ) -> str:
        params = {
            "name": name,
            "adset_id": adset_id,
            "creative": {"creative_id": creative_id},
            "status": status,
            "tracking_specs": [
                {
                    "action.type": ["offsite_conversion"],
                    "fb_pixel": [pixel_id or self.cfg.pixel_id],
                }
            ],
        }
        if self.dry_run:
            _meta_log(logging.INFO, "[DRY RUN] Would create ad %r in adset %s", name, adset_id)
            return _mock_id("AD", name, adset_id)

        try:
            response = self.request("ads", method="POST", json_body=params)
        except PlatformRejectionError:
            _meta_log(logging.ERROR, "Failed to create ad. Params: %s", json.dumps(params))
            raise

        ad_id = response.get("id")
        if not ad_id:
            raise CreativeSyncError("Failed to create ad")
        return str(ad_id)

    def get_ads_by_adset(self, adset_id: str) -> List[Dict[str, Any]]:
        response = self.request(f"{adset_id}/ads", params={"fields": AD_FIELDS, "limit": 100})
        return [{**ad, "creative": ad.get("creative") or None} for ad in (response.get("data") or [])]

    def get_ad_by_id(self, ad_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self.request(f"{ad_id}", params={"fields": "id,name,status,effective_status"})
        except (CreativeSyncError, requests.RequestException) as e:
            # deleted, never existed, or unreachable
            _meta_log(logging.DEBUG, "Ad %s lookup failed: %s", ad_id, e)
            return None

    def update_ad_status(self, ad_id: str, status: str) -> None:
        self.request(f"{ad_id}", method="POST", json_body={"status": status})

    def update_ad_creative(self, ad_id: str, creative_id: str) -> None:
        self.request(f"{ad_id}", method="POST", json_body={"creative": {"creative_id": creative_id}})

    def delete_ad(self, ad_id: str) -> None:
        self.request(f"{ad_id}", method="DELETE")

    # ------------- Insight parsing -------------
    @staticmethod
    def parse_insight_actions(actions: Optional[List[Dict[str, Any]]]) -> Dict[str, int]:
        result = {"leads": 0, "messages": 0, "messaging_first_reply": 0}
        mapping = {
            "lead": "leads",
            "onsite_conversion.messaging_conversation_started_7d": "messages",
            "onsite_conversion.messaging_first_reply": "messaging_first_reply",
        }
        for action in actions or []:
            key = mapping.get(action.get("action_type", ""))
            if key:
                try:
                    result[key] = int(action.get("value") or 0)
                except (TypeError, ValueError):
                    result[key] = 0
        return result

    @staticmethod
    def parse_cost_per_action(cost_per_action: Optional[List[Dict[str, Any]]]) -> Dict[str, Optional[float]]:
        for entry in cost_per_action or []:
            if entry.get("action_type") == "lead":
                try:
                    return {"cpl": float(entry.get("value"))}
                except (TypeError, ValueError):
                    return {"cpl": None}
        return {"cpl": None}
