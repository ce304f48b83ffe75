"""
CREATIVE SYNC INTEGRATIONS
External service integrations

This package contains:
- meta_client: Meta Graph API gateway
- asset_store: Google Drive and Supabase Storage creative stores
- slack: Slack notifications
"""

from .meta_client import MetaClient, ClientConfig, AccountAuth
from .asset_store import AssetStore, StoreEntry, DriveAssetStore, SupabaseAssetStore
from .slack import notify, build_basic_blocks

__all__ = [
    'MetaClient', 'ClientConfig', 'AccountAuth',
    'AssetStore', 'StoreEntry', 'DriveAssetStore', 'SupabaseAssetStore',
    'notify', 'build_basic_blocks',
]
