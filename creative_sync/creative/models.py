from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class AspectRatio(str, Enum):
    NEAR_SQUARE = "4x5"   # feed
    PORTRAIT = "9x16"     # stories / reels

    @classmethod
    def from_filename(cls, file_name: str) -> Optional["AspectRatio"]:
        lowered = (file_name or "").lower()
        for ratio in cls:
            if lowered.startswith(ratio.value):
                return ratio
        return None


class MediaKind(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


@dataclass(frozen=True)
class CreativeAsset:
    file_id: str
    file_name: str
    mime_type: str
    variant: int
    aspect_ratio: AspectRatio
    media_kind: MediaKind

    @property
    def label(self) -> str:
        return f"V{self.variant} {self.aspect_ratio.value} ({self.media_kind.value})"


@dataclass(frozen=True)
class UploadResult:
    success: bool
    variant: int
    aspect_ratio: AspectRatio
    media_kind: MediaKind
    source_file_id: str
    image_hash: Optional[str] = None
    video_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def platform_id(self) -> Optional[str]:
        return self.video_id or self.image_hash

    @classmethod
    def failed(cls, asset: CreativeAsset, error: BaseException) -> "UploadResult":
        return cls(
            success=False,
            variant=asset.variant,
            aspect_ratio=asset.aspect_ratio,
            media_kind=asset.media_kind,
            source_file_id=asset.file_id,
            error=str(error),
            error_kind=type(error).__name__,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "variant": self.variant,
            "aspect_ratio": self.aspect_ratio.value,
            "media_kind": self.media_kind.value,
            "source_file_id": self.source_file_id,
            "image_hash": self.image_hash,
            "video_id": self.video_id,
            "error": self.error,
        }


@dataclass(frozen=True)
class AspectMedia:
    """Uploaded media for one aspect ratio. A video beats an image."""

    image_hash: Optional[str] = None
    video_id: Optional[str] = None

    @property
    def kind(self) -> MediaKind:
        return MediaKind.VIDEO if self.video_id else MediaKind.IMAGE

    @property
    def reference(self) -> Optional[str]:
        return self.video_id or self.image_hash

    def __bool__(self) -> bool:
        return bool(self.video_id or self.image_hash)


@dataclass
class SyncSummary:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return self.total > 0 and self.failed == 0
