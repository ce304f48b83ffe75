"""
Creative synchronization pipeline
Discovers package creatives in the asset store, validates them and uploads
them to the ad platform, one UploadResult per asset
"""

from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import requests

from ..config import (
    IMAGE_EXTENSIONS,
    SYNC_PACING_SECONDS_DEFAULT,
    VARIANT_MAX,
    VARIANT_MIN,
    VIDEO_EXTENSIONS,
    Settings,
)
from ..infrastructure.caching import PACKAGE_CREATIVES_TTL, CacheKeys, TTLCache, meta_cache
from ..infrastructure.error_handling import (
    DOWNLOAD_RETRY,
    IMAGE_UPLOAD_RETRY,
    VIDEO_UPLOAD_RETRY,
    CreativeSyncError,
    NotFoundError,
    RetryHandler,
    RetryPolicy,
    TransportError,
)
from ..integrations.asset_store import AssetStore, DriveAssetStore, StoreEntry, SupabaseAssetStore
from ..integrations.meta_client import AccountAuth, ClientConfig, MetaClient
from .models import AspectMedia, AspectRatio, CreativeAsset, MediaKind, SyncSummary, UploadResult
from .validation import validate_creative_file

logger = logging.getLogger(__name__)

VARIANT_FOLDER_RE = re.compile(r"v(\d+)", re.IGNORECASE)

PackageId = Union[int, str]


@dataclass
class SyncContext:
    """Everything a pipeline run needs, built once and passed in explicitly."""

    gateway: MetaClient
    store: AssetStore
    root_id: str
    cache: TTLCache = field(default_factory=lambda: meta_cache)
    sleep: Callable[[float], None] = time.sleep
    pacing_seconds: float = SYNC_PACING_SECONDS_DEFAULT
    download_policy: RetryPolicy = DOWNLOAD_RETRY
    image_upload_policy: RetryPolicy = IMAGE_UPLOAD_RETRY
    video_upload_policy: RetryPolicy = VIDEO_UPLOAD_RETRY

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        session: Optional[requests.Session] = None,
        cache: Optional[TTLCache] = None,
    ) -> "SyncContext":
        cache = cache if cache is not None else meta_cache
        gateway = MetaClient(
            AccountAuth(
                account_id=settings.meta_ad_account_id,
                access_token=settings.meta_access_token,
                page_id=settings.meta_page_id,
                api_version=settings.meta_api_version,
            ),
            ClientConfig(
                timeout=settings.meta_timeout,
                pixel_id=settings.meta_pixel_id,
                instagram_user_id=settings.meta_instagram_user_id,
            ),
            cache=cache,
            session=session,
            dry_run=settings.dry_run,
        )

        store: AssetStore
        if settings.store_backend == "supabase":
            store = SupabaseAssetStore.from_credentials(
                settings.supabase_url, settings.supabase_key, settings.storage_bucket
            )
        else:
            store = DriveAssetStore(settings.drive_access_token, session=session)

        return cls(
            gateway=gateway,
            store=store,
            root_id=settings.store_root,
            cache=cache,
            pacing_seconds=settings.sync_pacing_seconds,
        )

    def retry(self, policy: RetryPolicy) -> RetryHandler:
        return RetryHandler(policy, sleep=self.sleep)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def parse_variant(folder_name: str) -> Optional[int]:
    match = VARIANT_FOLDER_RE.search(folder_name or "")
    if not match:
        return None
    variant = int(match.group(1))
    if variant < VARIANT_MIN or variant > VARIANT_MAX:
        return None
    return variant


def classify_file(entry: StoreEntry, variant: int) -> Optional[CreativeAsset]:
    """CreativeAsset for a recognized file, None for anything else."""
    aspect_ratio = AspectRatio.from_filename(entry.name)
    if aspect_ratio is None:
        return None

    extension = os.path.splitext(entry.name.lower())[1]
    if extension in IMAGE_EXTENSIONS:
        media_kind = MediaKind.IMAGE
    elif extension in VIDEO_EXTENSIONS:
        media_kind = MediaKind.VIDEO
    else:
        return None

    return CreativeAsset(
        file_id=entry.id,
        file_name=entry.name,
        mime_type=entry.mime_type or "application/octet-stream",
        variant=variant,
        aspect_ratio=aspect_ratio,
        media_kind=media_kind,
    )


def discover(ctx: SyncContext, package_id: PackageId) -> List[CreativeAsset]:
    """Creatives of one package ordered by variant, then aspect ratio.

    Raises NotFoundError when the package has no folder. An existing folder
    without recognized files yields an empty list. Results are cached per
    package for a short window.
    """
    key = CacheKeys.package_creatives(package_id)
    cached = ctx.cache.get(key)
    if cached is not None:
        logger.info(f"[SYNC] Using cached creatives for package {package_id}")
        return list(cached)

    folders = ctx.store.list_children(ctx.root_id, name=str(package_id), folders_only=True)
    if not folders:
        logger.info(f"[SYNC] No folder found for package {package_id}")
        raise NotFoundError(f"No folder found for package {package_id}")
    package_folder = folders[0]

    assets: List[CreativeAsset] = []
    for folder in ctx.store.list_children(package_folder.id, folders_only=True):
        variant = parse_variant(folder.name)
        if variant is None:
            logger.debug(f"[SYNC] Skipping folder {folder.name!r} (not a variant folder)")
            continue

        for entry in ctx.store.list_children(folder.id):
            if entry.is_folder:
                continue
            asset = classify_file(entry, variant)
            if asset is None:
                logger.debug(f"[SYNC] Skipping {folder.name}/{entry.name} (unrecognized name or type)")
                continue
            assets.append(asset)

    assets.sort(key=lambda a: (a.variant, a.aspect_ratio.value))
    ctx.cache.set(key, list(assets), PACKAGE_CREATIVES_TTL)
    logger.info(f"[SYNC] Found {len(assets)} creatives for package {package_id}")
    return assets


def has_creatives(ctx: SyncContext, package_id: PackageId) -> Dict[str, Any]:
    try:
        assets = discover(ctx, package_id)
    except NotFoundError:
        assets = []
    variants = sorted({a.variant for a in assets})
    return {"has_creatives": bool(assets), "count": len(assets), "variants": variants}


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


def _download(ctx: SyncContext, asset: CreativeAsset) -> bytes:
    try:
        return ctx.retry(ctx.download_policy).execute(
            ctx.store.download, asset.file_id, context=f"Download {asset.file_name}"
        )
    except Exception as e:
        raise TransportError(
            f"Download of {asset.file_name} failed after {ctx.download_policy.max_attempts} attempts: {e}",
            variant=asset.variant,
            aspect_ratio=asset.aspect_ratio,
        ) from e


def _push(ctx: SyncContext, asset: CreativeAsset, data: bytes) -> str:
    if asset.media_kind == MediaKind.VIDEO:
        policy, fn, what = ctx.video_upload_policy, ctx.gateway.upload_video, "video"
    else:
        policy, fn, what = ctx.image_upload_policy, ctx.gateway.upload_image, "image"
    try:
        return ctx.retry(policy).execute(fn, data, asset.file_name, context=f"Upload {what} {asset.file_name}")
    except Exception as e:
        raise TransportError(
            f"Upload of {asset.file_name} failed after {policy.max_attempts} attempts: {e}",
            variant=asset.variant,
            aspect_ratio=asset.aspect_ratio,
        ) from e


def upload(ctx: SyncContext, asset: CreativeAsset) -> UploadResult:
    """Move one creative from the store to the platform. Never raises for per-asset failures."""
    try:
        logger.info(f"[SYNC] Downloading {asset.file_name} ({asset.label})")
        data = _download(ctx, asset)
        logger.info(f"[SYNC] Downloaded {len(data)} bytes")

        validate_creative_file(
            data,
            asset.file_name,
            asset.media_kind,
            variant=asset.variant,
            aspect_ratio=asset.aspect_ratio,
        )

        reference = _push(ctx, asset, data)
    except CreativeSyncError as e:
        logger.error(f"[SYNC] {asset.file_name} failed: {e}")
        return UploadResult.failed(asset, e)

    if asset.media_kind == MediaKind.VIDEO:
        logger.info(f"[SYNC] Uploaded video, ID: {reference}")
        video_id, image_hash = reference, None
    else:
        logger.info(f"[SYNC] Uploaded image, hash: {reference}")
        video_id, image_hash = None, reference

    return UploadResult(
        success=True,
        variant=asset.variant,
        aspect_ratio=asset.aspect_ratio,
        media_kind=asset.media_kind,
        source_file_id=asset.file_id,
        image_hash=image_hash,
        video_id=video_id,
    )


def sync_package(
    ctx: SyncContext,
    package_id: PackageId,
    variant_filter: Optional[Iterable[int]] = None,
) -> List[UploadResult]:
    """Upload every (optionally filtered) creative of a package, sequentially.

    Assets are paced by ``ctx.pacing_seconds``. Once started the batch runs
    to completion; per-asset failures come back as failed results.
    """
    logger.info(f"[SYNC] Starting upload for package {package_id}")
    assets = discover(ctx, package_id)
    if not assets:
        raise NotFoundError(f"No creatives found for package {package_id}")

    if variant_filter is not None:
        wanted = set(variant_filter)
        assets = [a for a in assets if a.variant in wanted]
    logger.info(f"[SYNC] Will upload {len(assets)} creatives")

    results: List[UploadResult] = []
    for i, asset in enumerate(assets):
        if i and ctx.pacing_seconds > 0:
            ctx.sleep(ctx.pacing_seconds)
        results.append(upload(ctx, asset))

    succeeded = sum(1 for r in results if r.success)
    logger.info(f"[SYNC] Completed: {succeeded}/{len(results)} successful")
    return results


# ---------------------------------------------------------------------------
# Result helpers
# ---------------------------------------------------------------------------


def summarize(results: Iterable[UploadResult]) -> SyncSummary:
    summary = SyncSummary()
    for r in results:
        summary.total += 1
        if r.success:
            summary.succeeded += 1
        else:
            summary.failed += 1
            summary.errors.append(f"V{r.variant} {r.aspect_ratio.value}: {r.error}")
    return summary


def media_by_aspect_ratio(results: Iterable[UploadResult], variant: int) -> Dict[AspectRatio, AspectMedia]:
    """Successful uploads of one variant, keyed by aspect ratio."""
    grouped: Dict[AspectRatio, Dict[str, Optional[str]]] = {}
    for r in results:
        if not r.success or r.variant != variant:
            continue
        slot = grouped.setdefault(r.aspect_ratio, {"image_hash": None, "video_id": None})
        if r.video_id:
            slot["video_id"] = r.video_id
        if r.image_hash:
            slot["image_hash"] = r.image_hash
    return {ratio: AspectMedia(**slot) for ratio, slot in grouped.items()}


__all__ = [
    "SyncContext",
    "parse_variant",
    "classify_file",
    "discover",
    "has_creatives",
    "upload",
    "sync_package",
    "summarize",
    "media_by_aspect_ratio",
]
