"""
Creative module for creative sync
Discovery, validation and upload of package creatives, and placement-aware assembly
"""

from .models import AspectRatio, MediaKind, CreativeAsset, UploadResult, AspectMedia, SyncSummary
from .pipeline import SyncContext, discover, upload, sync_package, has_creatives, summarize, media_by_aspect_ratio
from .assembly import (
    CopyVariant, MessagingTemplate, PlacementRule, SurfaceClass,
    ImageAdCreative, VideoAdCreative, AdCreativeSpec, assemble,
)

__all__ = [
    'AspectRatio', 'MediaKind', 'CreativeAsset', 'UploadResult', 'AspectMedia', 'SyncSummary',
    'SyncContext', 'discover', 'upload', 'sync_package', 'has_creatives', 'summarize', 'media_by_aspect_ratio',
    'CopyVariant', 'MessagingTemplate', 'PlacementRule', 'SurfaceClass',
    'ImageAdCreative', 'VideoAdCreative', 'AdCreativeSpec', 'assemble',
]
