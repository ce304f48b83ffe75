"""
Placement-aware creative assembly

Turns rotating copy and per-aspect-ratio uploaded media into the ad
platform's label model: every asset that shares a label rotates, and two
customization rules map the feed and story surfaces onto media labels.
Nothing here performs I/O.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..config import WA_MESSAGE_TEMPLATE_DEFAULT
from ..infrastructure.error_handling import ValidationError
from .models import AspectMedia, AspectRatio, MediaKind

WHATSAPP_SEND_URL = "https://api.whatsapp.com/send"
WHATSAPP_CTA = "WHATSAPP_MESSAGE"


class SurfaceClass(str, Enum):
    FEED = "feed"
    STORY = "story"


SURFACE_PLACEMENTS: Dict[SurfaceClass, Dict[str, List[str]]] = {
    SurfaceClass.FEED: {
        "publisher_platforms": ["facebook", "instagram", "messenger"],
        "facebook_positions": ["feed", "profile_feed", "notification", "instream_video", "marketplace", "search"],
        "instagram_positions": ["stream", "explore", "explore_home", "profile_feed"],
        "messenger_positions": ["messenger_home"],
    },
    SurfaceClass.STORY: {
        "publisher_platforms": ["facebook", "instagram", "whatsapp"],
        "facebook_positions": ["facebook_reels", "story"],
        "instagram_positions": ["profile_reels", "story", "reels"],
        "whatsapp_positions": ["status"],
    },
}


@dataclass(frozen=True)
class CopyVariant:
    primary_text: str
    headline: str
    description: str = ""

    @property
    def body_text(self) -> str:
        return f"{self.headline}\n\n{self.primary_text}"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CopyVariant":
        return cls(
            primary_text=str(data.get("primary_text") or ""),
            headline=str(data.get("headline") or ""),
            description=str(data.get("description") or ""),
        )


@dataclass(frozen=True)
class MessagingTemplate:
    """Pre-filled opening message; carries the package id so chats are traceable."""

    message: str

    @classmethod
    def for_package(cls, package_id: Union[int, str], template: str = WA_MESSAGE_TEMPLATE_DEFAULT) -> "MessagingTemplate":
        return cls(template.format(package_id=package_id))

    def to_page_welcome_message(self) -> str:
        return json.dumps(
            {
                "type": "VISUAL_EDITOR",
                "version": 2,
                "landing_screen_type": "welcome_message",
                "media_type": "text",
                "text_format": {
                    "customer_action_type": "autofill_message",
                    "message": {
                        "autofill_message": {"content": self.message},
                        "text": ".",
                    },
                },
                "user_edit": True,
                "surface": "visual_editor_new",
                "welcome_message_edited": True,
                "autofill_message_edited": True,
            },
            separators=(",", ":"),
            ensure_ascii=False,
        )


@dataclass(frozen=True)
class LabeledMedia:
    label: str
    kind: MediaKind
    reference: str  # image hash or video id

    def to_params(self) -> Dict[str, Any]:
        key = "video_id" if self.kind == MediaKind.VIDEO else "hash"
        return {key: self.reference, "adlabels": [{"name": self.label}]}


@dataclass(frozen=True)
class PlacementRule:
    surface: SurfaceClass
    media_label: str
    media_kind: MediaKind
    body_label: str
    title_label: str
    link_label: str
    priority: int

    def to_params(self) -> Dict[str, Any]:
        media_key = "video_label" if self.media_kind == MediaKind.VIDEO else "image_label"
        return {
            "customization_spec": {k: list(v) for k, v in SURFACE_PLACEMENTS[self.surface].items()},
            media_key: {"name": self.media_label},
            "body_label": {"name": self.body_label},
            "title_label": {"name": self.title_label},
            "link_url_label": {"name": self.link_label},
            "priority": self.priority,
        }


# ---------------------------------------------------------------------------
# Creative bodies. One class per creative kind; the gateway accepts any of them.
# ---------------------------------------------------------------------------


def _call_to_action(cta_type: str, link: str, whatsapp_number: Optional[str]) -> Dict[str, Any]:
    value = {"whatsapp_number": whatsapp_number} if whatsapp_number else {"link": link}
    return {"type": cta_type, "value": value}


@dataclass(frozen=True)
class ImageAdCreative:
    name: str
    page_id: str
    image_hash: str
    message: str
    headline: str
    link: str
    cta_type: str = "LEARN_MORE"
    description: Optional[str] = None
    whatsapp_number: Optional[str] = None
    kind: str = field(default="image", init=False)

    def validate(self) -> None:
        if not self.image_hash:
            raise ValidationError(f"Image creative {self.name!r} has no image hash")
        if not self.link:
            raise ValidationError(f"Image creative {self.name!r} has no link")

    def to_params(self) -> Dict[str, Any]:
        link_data: Dict[str, Any] = {
            "link": self.link,
            "message": self.message,
            "name": self.headline,
            "image_hash": self.image_hash,
            "call_to_action": _call_to_action(self.cta_type, self.link, self.whatsapp_number),
        }
        if self.description:
            link_data["description"] = self.description
        return {"name": self.name, "object_story_spec": {"page_id": self.page_id, "link_data": link_data}}


@dataclass(frozen=True)
class VideoAdCreative:
    name: str
    page_id: str
    video_id: str
    message: str
    headline: str
    link: str
    cta_type: str = "LEARN_MORE"
    description: Optional[str] = None
    whatsapp_number: Optional[str] = None
    kind: str = field(default="video", init=False)

    def validate(self) -> None:
        if not self.video_id:
            raise ValidationError(f"Video creative {self.name!r} has no video id")
        if not self.link:
            raise ValidationError(f"Video creative {self.name!r} has no link")

    def to_params(self) -> Dict[str, Any]:
        link_data: Dict[str, Any] = {
            "link": self.link,
            "message": self.message,
            "name": self.headline,
            "video_id": self.video_id,
            "call_to_action": _call_to_action(self.cta_type, self.link, self.whatsapp_number),
        }
        if self.description:
            link_data["description"] = self.description
        return {"name": self.name, "object_story_spec": {"page_id": self.page_id, "link_data": link_data}}


@dataclass(frozen=True)
class AdCreativeSpec:
    """Rotation and placement creative. Built once per package and submitted as is."""

    name: str
    page_id: str
    bodies: Tuple[str, ...]
    titles: Tuple[str, ...]
    body_label: str
    title_label: str
    link_label: str
    media: Tuple[LabeledMedia, ...]
    rules: Tuple[PlacementRule, ...]
    messaging_template: MessagingTemplate
    instagram_user_id: Optional[str] = None
    link_url: str = WHATSAPP_SEND_URL
    kind: str = field(default="placement", init=False)

    @property
    def media_type(self) -> str:
        kinds = {m.kind for m in self.media}
        if len(kinds) > 1:
            return "MIXED"
        return next(iter(kinds)).value if kinds else "NONE"

    def rule_for(self, surface: SurfaceClass) -> PlacementRule:
        return next(r for r in self.rules if r.surface == surface)

    def validate(self) -> None:
        if len(self.rules) != 2:
            raise ValidationError(f"Placement creative needs exactly 2 rules, got {len(self.rules)}")
        if not self.bodies or not self.titles:
            raise ValidationError("Placement creative needs at least one body and one title")
        labels = {m.label for m in self.media}
        for rule in self.rules:
            if rule.media_label not in labels:
                raise ValidationError(f"Rule {rule.priority} references unknown media label {rule.media_label}")

    def to_params(self) -> Dict[str, Any]:
        asset_feed_spec: Dict[str, Any] = {
            "bodies": [{"text": t, "adlabels": [{"name": self.body_label}]} for t in self.bodies],
            "titles": [{"text": t, "adlabels": [{"name": self.title_label}]} for t in self.titles],
            "link_urls": [
                {"website_url": self.link_url, "display_url": "", "adlabels": [{"name": self.link_label}]}
            ],
            "call_to_action_types": [WHATSAPP_CTA],
            "call_to_actions": [{"type": WHATSAPP_CTA, "value": {"app_destination": "WHATSAPP"}}],
            "ad_formats": ["AUTOMATIC_FORMAT"],
            "asset_customization_rules": [r.to_params() for r in self.rules],
            "optimization_type": "PLACEMENT",
            "additional_data": {
                "multi_share_end_card": False,
                "page_welcome_message": self.messaging_template.to_page_welcome_message(),
                "is_click_to_message": False,
            },
        }
        images = [m.to_params() for m in self.media if m.kind == MediaKind.IMAGE]
        videos = [m.to_params() for m in self.media if m.kind == MediaKind.VIDEO]
        if images:
            asset_feed_spec["images"] = images
        if videos:
            asset_feed_spec["videos"] = videos
        asset_feed_spec["descriptions"] = [{"text": ""}]

        object_story_spec: Dict[str, Any] = {"page_id": self.page_id}
        if self.instagram_user_id:
            object_story_spec["instagram_user_id"] = self.instagram_user_id

        return {
            "name": self.name,
            "object_story_spec": object_story_spec,
            "asset_feed_spec": asset_feed_spec,
        }


AdCreativeBody = Union[ImageAdCreative, VideoAdCreative, AdCreativeSpec]


def _media_for(media: AspectMedia, label_prefix: str, seed: Union[int, str], index: int) -> LabeledMedia:
    short = "vid" if media.kind == MediaKind.VIDEO else "img"
    return LabeledMedia(
        label=f"{short}_{label_prefix}_{seed}_{index}",
        kind=media.kind,
        reference=media.reference,  # type: ignore[arg-type]
    )


def assemble(
    copy_variants: Sequence[CopyVariant],
    media_by_aspect_ratio: Mapping[AspectRatio, AspectMedia],
    messaging_template: MessagingTemplate,
    *,
    name: str,
    page_id: str,
    instagram_user_id: Optional[str] = None,
    label_seed: Optional[Union[int, str]] = None,
) -> AdCreativeSpec:
    """Build the rotation/placement creative for one package.

    All bodies share one label and all titles share another, so the
    platform rotates them. Feed surfaces get the near-square media; story
    surfaces get the portrait media when there is one and otherwise fall
    back to the feed label, keeping the two rules the platform requires.
    Within an aspect ratio a video takes precedence over an image.
    """
    if not copy_variants:
        raise ValidationError("At least one copy variant is required")

    feed_media = media_by_aspect_ratio.get(AspectRatio.NEAR_SQUARE)
    if not feed_media:
        raise ValidationError(
            "Feed media is required (image or video)", aspect_ratio=AspectRatio.NEAR_SQUARE
        )
    story_media = media_by_aspect_ratio.get(AspectRatio.PORTRAIT) or None

    seed = label_seed if label_seed is not None else int(time.time() * 1000)
    body_label = f"body_{seed}_0"
    title_label = f"title_{seed}_0"
    link_label = f"link_{seed}_0"

    feed = _media_for(feed_media, "feed", seed, 0)
    media = [feed]
    story = feed
    if story_media:
        story = _media_for(story_media, "stories", seed, 1)
        media.append(story)

    rules = (
        PlacementRule(SurfaceClass.FEED, feed.label, feed.kind, body_label, title_label, link_label, priority=1),
        PlacementRule(SurfaceClass.STORY, story.label, story.kind, body_label, title_label, link_label, priority=2),
    )

    return AdCreativeSpec(
        name=name,
        page_id=page_id,
        bodies=tuple(c.body_text for c in copy_variants),
        titles=tuple(c.headline for c in copy_variants),
        body_label=body_label,
        title_label=title_label,
        link_label=link_label,
        media=tuple(media),
        rules=rules,
        messaging_template=messaging_template,
        instagram_user_id=instagram_user_id,
    )


__all__ = [
    "SurfaceClass",
    "CopyVariant",
    "MessagingTemplate",
    "LabeledMedia",
    "PlacementRule",
    "ImageAdCreative",
    "VideoAdCreative",
    "AdCreativeSpec",
    "AdCreativeBody",
    "assemble",
]
