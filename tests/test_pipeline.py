import pytest

from creative_sync.creative.models import AspectMedia, AspectRatio, MediaKind, UploadResult
from creative_sync.creative.pipeline import (
    classify_file,
    discover,
    has_creatives,
    media_by_aspect_ratio,
    parse_variant,
    summarize,
    sync_package,
    upload,
)
from creative_sync.infrastructure.error_handling import NotFoundError
from creative_sync.integrations.asset_store import StoreEntry

from conftest import JPEG, MP4, PNG, FakeResponse


def _package(store, package_id="1234"):
    return store.add_folder("root", package_id)


def test_discover_variant_folder(ctx, store):
    pkg = _package(store, "77")
    v2 = store.add_folder(pkg, "v2")
    store.add_file(v2, "9x16-a.mp4", MP4, "video/mp4")
    store.add_file(v2, "4x5-b.png", PNG, "image/png")
    store.add_file(v2, "banner.png", PNG, "image/png")

    assets = discover(ctx, "77")

    assert [a.file_name for a in assets] == ["4x5-b.png", "9x16-a.mp4"]
    assert {a.variant for a in assets} == {2}
    assert [a.aspect_ratio for a in assets] == [AspectRatio.NEAR_SQUARE, AspectRatio.PORTRAIT]
    assert [a.media_kind for a in assets] == [MediaKind.IMAGE, MediaKind.VIDEO]


def test_discover_orders_by_variant_then_ratio(ctx, store):
    pkg = _package(store)
    for name in ("v3", "V1", "notes", "v7"):
        folder = store.add_folder(pkg, name)
        store.add_file(folder, "9x16.jpg", JPEG)
        store.add_file(folder, "4X5.JPG", JPEG)

    assets = discover(ctx, "1234")

    assert [(a.variant, a.aspect_ratio.value) for a in assets] == [(1, "4x5"), (1, "9x16"), (3, "4x5"), (3, "9x16")]


def test_discover_skips_unknown_extensions(ctx, store):
    v1 = store.add_folder(_package(store), "v1")
    store.add_file(v1, "4x5.psd", b"8BPS")
    store.add_file(v1, "4x5", b"no extension")
    assert discover(ctx, "1234") == []


def test_discover_missing_folder_raises_not_found(ctx, store):
    with pytest.raises(NotFoundError):
        discover(ctx, "999")
    # the miss is not cached
    store.add_folder("root", "999")
    assert discover(ctx, "999") == []


def test_discover_is_cached_for_sixty_seconds(ctx, store, clock):
    v1 = store.add_folder(_package(store), "v1")
    store.add_file(v1, "4x5.jpg", JPEG)

    first = discover(ctx, "1234")
    calls = store.list_calls
    clock.advance(59)
    assert discover(ctx, "1234") == first
    assert store.list_calls == calls

    clock.advance(2)
    discover(ctx, "1234")
    assert store.list_calls > calls


def test_parse_variant_range():
    assert parse_variant("v1") == 1
    assert parse_variant("Final V5") == 5
    assert parse_variant("v0") is None
    assert parse_variant("v6") is None
    assert parse_variant("drafts") is None


def test_classify_file_falls_back_to_octet_stream():
    asset = classify_file(StoreEntry("f1", "9x16 promo.webm"), variant=4)
    assert asset.media_kind == MediaKind.VIDEO
    assert asset.mime_type == "application/octet-stream"


def test_sync_package_end_to_end(ctx, store, sleeps):
    v1 = store.add_folder(_package(store), "v1")
    store.add_file(v1, "4x5.jpg", JPEG, "image/jpeg")
    store.add_file(v1, "9x16.jpg", JPEG, "image/jpeg")

    results = sync_package(ctx, 1234)

    assert len(results) == 2
    assert all(r.success for r in results)
    assert [r.image_hash for r in results] == ["hash-4x5.jpg", "hash-9x16.jpg"]
    # pacing between assets only
    assert sleeps == [1.0]

    list_calls = store.list_calls
    assert discover(ctx, 1234) == discover(ctx, "1234")
    assert store.list_calls == list_calls


def test_sync_package_variant_filter(ctx, store):
    pkg = _package(store)
    for name in ("v1", "v2"):
        store.add_file(store.add_folder(pkg, name), "4x5.png", PNG)

    results = sync_package(ctx, "1234", variant_filter=[2])
    assert [r.variant for r in results] == [2]
    assert sync_package(ctx, "1234", variant_filter=[5]) == []


def test_sync_package_without_creatives_raises(ctx, store):
    _package(store)
    with pytest.raises(NotFoundError):
        sync_package(ctx, "1234")


def test_validation_failure_skips_network(ctx, store, make_client):
    v1 = store.add_folder(_package(store), "v1")
    store.add_file(v1, "4x5.jpg", b"")
    client, session = make_client()
    ctx.gateway = client

    [result] = sync_package(ctx, "1234")

    assert not result.success
    assert result.error_kind == "ValidationError"
    assert "Empty file" in result.error
    assert session.calls == []


def test_download_is_retried(ctx, store, sleeps):
    v1 = store.add_folder(_package(store), "v1")
    file_id = store.add_file(v1, "4x5.png", PNG)
    store.fail_downloads[file_id] = 2

    result = upload(ctx, discover(ctx, "1234")[0])

    assert result.success
    assert store.download_calls == [file_id] * 3
    assert sleeps == [2.0, 4.0]


def test_download_exhaustion_is_a_transport_failure(ctx, store):
    v1 = store.add_folder(_package(store), "v1")
    file_id = store.add_file(v1, "9x16.png", PNG)
    store.fail_downloads[file_id] = 5

    result = upload(ctx, discover(ctx, "1234")[0])

    assert not result.success
    assert result.error_kind == "TransportError"
    assert result.error.startswith("[V1 9x16]")


def test_upload_retry_budget_is_separate(ctx, store, make_client, sleeps):
    attempts = []

    def handler(method, url, kwargs):
        attempts.append(url)
        if len(attempts) < 3:
            return FakeResponse(status_code=500, payload={"error": {"message": "temporarily unavailable", "code": 2}})
        return FakeResponse(payload={"id": "vid-1"})

    v1 = store.add_folder(_package(store), "v1")
    file_id = store.add_file(v1, "9x16.mp4", MP4)
    store.fail_downloads[file_id] = 2
    ctx.gateway, _ = make_client(handler)

    result = upload(ctx, discover(ctx, "1234")[0])

    assert result.success and result.video_id == "vid-1"
    # download 2s/4s, then video upload 3s/6s
    assert sleeps == [2.0, 4.0, 3.0, 6.0]


def test_failed_asset_does_not_stop_batch(ctx, store):
    v1 = store.add_folder(_package(store), "v1")
    bad = store.add_file(v1, "4x5.png", PNG)
    store.add_file(v1, "9x16.png", PNG)
    store.fail_downloads[bad] = 10

    results = sync_package(ctx, "1234")

    assert [r.success for r in results] == [False, True]
    summary = summarize(results)
    assert (summary.total, summary.succeeded, summary.failed) == (2, 1, 1)
    assert not summary.all_succeeded
    assert summary.errors[0].startswith("V1 4x5:")


def test_has_creatives(ctx, store):
    assert has_creatives(ctx, "404") == {"has_creatives": False, "count": 0, "variants": []}

    pkg = _package(store)
    store.add_file(store.add_folder(pkg, "v3"), "4x5.png", PNG)
    store.add_file(store.add_folder(pkg, "v1"), "9x16.mp4", MP4)
    assert has_creatives(ctx, "1234") == {"has_creatives": True, "count": 2, "variants": [1, 3]}


def test_media_by_aspect_ratio_prefers_video():
    def ok(variant, ratio, kind, **ids):
        return UploadResult(True, variant, ratio, kind, "f", **ids)

    results = [
        ok(1, AspectRatio.NEAR_SQUARE, MediaKind.IMAGE, image_hash="h1"),
        ok(1, AspectRatio.NEAR_SQUARE, MediaKind.VIDEO, video_id="v1"),
        ok(1, AspectRatio.PORTRAIT, MediaKind.IMAGE, image_hash="h2"),
        ok(2, AspectRatio.PORTRAIT, MediaKind.IMAGE, image_hash="other"),
        UploadResult(False, 1, AspectRatio.PORTRAIT, MediaKind.VIDEO, "f", error="boom"),
    ]

    media = media_by_aspect_ratio(results, 1)

    assert media[AspectRatio.NEAR_SQUARE] == AspectMedia(image_hash="h1", video_id="v1")
    assert media[AspectRatio.NEAR_SQUARE].kind == MediaKind.VIDEO
    assert media[AspectRatio.PORTRAIT].reference == "h2"
