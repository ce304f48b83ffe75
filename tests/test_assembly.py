import json

import pytest

from creative_sync.creative.assembly import (
    AdCreativeSpec,
    CopyVariant,
    MessagingTemplate,
    SurfaceClass,
    VideoAdCreative,
    assemble,
)
from creative_sync.creative.models import AspectMedia, AspectRatio, MediaKind
from creative_sync.infrastructure.error_handling import ValidationError

COPIES = [
    CopyVariant("Vuelo + hotel all inclusive", "Cancun 7 noches"),
    CopyVariant("Cupos limitados", "Caribe en oferta"),
    CopyVariant("Salidas desde Buenos Aires", "Punta Cana"),
]


def _build(media, **kwargs):
    return assemble(
        COPIES,
        media,
        MessagingTemplate.for_package(1234),
        name="TC 1234 V1",
        page_id="page-1",
        label_seed=42,
        **kwargs,
    )


def test_single_aspect_ratio_still_yields_two_rules():
    spec = _build({AspectRatio.NEAR_SQUARE: AspectMedia(image_hash="h-feed")})

    assert len(spec.rules) == 2
    feed, story = spec.rules
    assert story.media_label == feed.media_label
    assert story.media_kind == feed.media_kind == MediaKind.IMAGE
    assert [m.label for m in spec.media] == ["img_feed_42_0"]


def test_all_bodies_and_titles_share_one_label():
    params = _build({AspectRatio.NEAR_SQUARE: AspectMedia(image_hash="h")}).to_params()
    feed_spec = params["asset_feed_spec"]

    assert {b["adlabels"][0]["name"] for b in feed_spec["bodies"]} == {"body_42_0"}
    assert {t["adlabels"][0]["name"] for t in feed_spec["titles"]} == {"title_42_0"}
    assert feed_spec["bodies"][0]["text"] == "Cancun 7 noches\n\nVuelo + hotel all inclusive"
    assert [t["text"] for t in feed_spec["titles"]] == ["Cancun 7 noches", "Caribe en oferta", "Punta Cana"]


def test_story_media_gets_its_own_label():
    spec = _build({
        AspectRatio.NEAR_SQUARE: AspectMedia(image_hash="h-feed"),
        AspectRatio.PORTRAIT: AspectMedia(video_id="v-story"),
    })

    assert spec.rule_for(SurfaceClass.FEED).media_label == "img_feed_42_0"
    assert spec.rule_for(SurfaceClass.STORY).media_label == "vid_stories_42_1"
    assert spec.media_type == "MIXED"

    params = spec.to_params()["asset_feed_spec"]
    assert params["images"] == [{"hash": "h-feed", "adlabels": [{"name": "img_feed_42_0"}]}]
    assert params["videos"] == [{"video_id": "v-story", "adlabels": [{"name": "vid_stories_42_1"}]}]
    rules = params["asset_customization_rules"]
    assert rules[0]["image_label"] == {"name": "img_feed_42_0"}
    assert rules[1]["video_label"] == {"name": "vid_stories_42_1"}
    assert "image_label" not in rules[1]


def test_video_wins_within_aspect_ratio():
    spec = _build({AspectRatio.NEAR_SQUARE: AspectMedia(image_hash="h", video_id="v")})

    assert [(m.kind, m.reference) for m in spec.media] == [(MediaKind.VIDEO, "v")]
    params = spec.to_params()["asset_feed_spec"]
    assert "images" not in params
    assert params["asset_customization_rules"][1]["video_label"] == {"name": "vid_feed_42_0"}


def test_rules_map_surfaces_and_priorities():
    rules = _build({AspectRatio.NEAR_SQUARE: AspectMedia(image_hash="h")}).to_params()["asset_feed_spec"]["asset_customization_rules"]

    assert [r["priority"] for r in rules] == [1, 2]
    assert rules[0]["customization_spec"]["publisher_platforms"] == ["facebook", "instagram", "messenger"]
    assert rules[1]["customization_spec"]["whatsapp_positions"] == ["status"]
    for rule in rules:
        assert rule["body_label"] == {"name": "body_42_0"}
        assert rule["title_label"] == {"name": "title_42_0"}
        assert rule["link_url_label"] == {"name": "link_42_0"}


def test_whatsapp_call_to_action_and_welcome_message():
    params = _build({AspectRatio.NEAR_SQUARE: AspectMedia(image_hash="h")}, instagram_user_id="ig-1").to_params()
    feed_spec = params["asset_feed_spec"]

    assert params["object_story_spec"] == {"page_id": "page-1", "instagram_user_id": "ig-1"}
    assert feed_spec["call_to_action_types"] == ["WHATSAPP_MESSAGE"]
    assert feed_spec["link_urls"][0]["website_url"] == "https://api.whatsapp.com/send"
    assert feed_spec["optimization_type"] == "PLACEMENT"
    assert feed_spec["descriptions"] == [{"text": ""}]

    welcome = json.loads(feed_spec["additional_data"]["page_welcome_message"])
    content = welcome["text_format"]["message"]["autofill_message"]["content"]
    assert content == "Hola! Quiero mas info de la promo SIV 1234 (no borrar)"


def test_custom_messaging_template():
    template = MessagingTemplate.for_package("55", "Info paquete {package_id}")
    assert template.message == "Info paquete 55"


def test_missing_feed_media_is_rejected():
    with pytest.raises(ValidationError, match="Feed media is required"):
        _build({AspectRatio.PORTRAIT: AspectMedia(image_hash="h")})


def test_empty_copy_is_rejected():
    with pytest.raises(ValidationError):
        assemble([], {AspectRatio.NEAR_SQUARE: AspectMedia(image_hash="h")}, MessagingTemplate("x"), name="n", page_id="p")


def test_spec_validation_catches_bad_shapes():
    spec = _build({AspectRatio.NEAR_SQUARE: AspectMedia(image_hash="h")})
    broken = AdCreativeSpec(
        name=spec.name,
        page_id=spec.page_id,
        bodies=spec.bodies,
        titles=spec.titles,
        body_label=spec.body_label,
        title_label=spec.title_label,
        link_label=spec.link_label,
        media=spec.media,
        rules=spec.rules[:1],
        messaging_template=spec.messaging_template,
    )
    with pytest.raises(ValidationError, match="exactly 2 rules"):
        broken.validate()
    spec.validate()


def test_video_ad_creative_requires_video():
    creative = VideoAdCreative(name="v", page_id="p", video_id="", message="m", headline="h", link="https://x.test")
    assert creative.kind == "video"
    with pytest.raises(ValidationError):
        creative.validate()


def test_copy_variant_from_dict():
    copy = CopyVariant.from_dict({"headline": "H", "primary_text": "P"})
    assert copy.body_text == "H\n\nP"
    assert copy.description == ""
