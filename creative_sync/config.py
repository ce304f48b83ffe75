import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Final, FrozenSet, List, Optional

import yaml
from dotenv import load_dotenv

logger: Final = logging.getLogger(__name__)

IMAGE_MAX_BYTES: Final[int] = 30 * 1024 * 1024
VIDEO_MAX_BYTES: Final[int] = 4 * 1024 * 1024 * 1024

VARIANT_MIN: Final[int] = 1
VARIANT_MAX: Final[int] = 5

IMAGE_EXTENSIONS: Final[FrozenSet[str]] = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"})
VIDEO_EXTENSIONS: Final[FrozenSet[str]] = frozenset({".mp4", ".mov", ".avi", ".webm", ".mpeg"})

META_API_VERSION_DEFAULT: Final[str] = "v21.0"
META_TIMEOUT_DEFAULT: Final[float] = 30.0
FAN_OUT_BATCH_SIZE: Final[int] = 10
SYNC_PACING_SECONDS_DEFAULT: Final[float] = 1.0

WA_MESSAGE_TEMPLATE_DEFAULT: Final[str] = "Hola! Quiero mas info de la promo SIV {package_id} (no borrar)"
TRACKING_PIXEL_ID_DEFAULT: Final[str] = "1310175447121594"

STORE_BACKENDS: Final[FrozenSet[str]] = frozenset({"drive", "supabase"})


def _env_bool(name: str, default: bool = False) -> bool:
    return (os.getenv(name, str(int(default))) or "").lower() in ("1", "true", "yes", "y")


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)) or default)


@dataclass
class Settings:
    meta_access_token: str = ""
    meta_ad_account_id: str = ""
    meta_page_id: str = ""
    meta_api_version: str = META_API_VERSION_DEFAULT
    meta_timeout: float = META_TIMEOUT_DEFAULT
    meta_instagram_user_id: Optional[str] = None
    meta_pixel_id: str = TRACKING_PIXEL_ID_DEFAULT
    dry_run: bool = False

    store_backend: str = "drive"
    store_root: str = ""
    drive_access_token: str = ""
    supabase_url: str = ""
    supabase_key: str = ""
    storage_bucket: str = "creatives"

    sync_pacing_seconds: float = SYNC_PACING_SECONDS_DEFAULT
    wa_message_template: str = WA_MESSAGE_TEMPLATE_DEFAULT
    slack_webhook_url: Optional[str] = None

    @staticmethod
    def from_env() -> "Settings":
        return Settings(
            meta_access_token=os.getenv("META_ACCESS_TOKEN", ""),
            meta_ad_account_id=os.getenv("META_AD_ACCOUNT_ID", ""),
            meta_page_id=os.getenv("META_PAGE_ID", ""),
            meta_api_version=os.getenv("META_API_VERSION") or META_API_VERSION_DEFAULT,
            meta_timeout=_env_float("META_TIMEOUT", META_TIMEOUT_DEFAULT),
            meta_instagram_user_id=os.getenv("META_INSTAGRAM_USER_ID") or None,
            meta_pixel_id=os.getenv("META_PIXEL_ID") or TRACKING_PIXEL_ID_DEFAULT,
            dry_run=_env_bool("META_DRY_RUN"),
            store_backend=(os.getenv("CREATIVE_STORE_BACKEND") or "drive").lower(),
            store_root=os.getenv("CREATIVE_STORE_ROOT") or os.getenv("GOOGLE_DRIVE_FOLDER_ID", ""),
            drive_access_token=os.getenv("GOOGLE_DRIVE_ACCESS_TOKEN", ""),
            supabase_url=os.getenv("SUPABASE_URL", ""),
            supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY") or "",
            storage_bucket=os.getenv("CREATIVE_STORAGE_BUCKET", "creatives"),
            sync_pacing_seconds=_env_float("SYNC_PACING_SECONDS", SYNC_PACING_SECONDS_DEFAULT),
            wa_message_template=os.getenv("WA_MESSAGE_TEMPLATE") or WA_MESSAGE_TEMPLATE_DEFAULT,
            slack_webhook_url=os.getenv("SLACK_WEBHOOK_URL") or None,
        )

    def merged(self, overrides: Dict[str, Any]) -> "Settings":
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            logger.warning(f"Ignoring unknown settings keys: {', '.join(unknown)}")
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({k: v for k, v in overrides.items() if k in known and v is not None})
        return Settings(**values)


def load_settings(path: Optional[str] = None, *, env_file: Optional[str] = None) -> Settings:
    """Environment (and .env) first, then an optional YAML file on top."""
    load_dotenv(env_file)
    settings = Settings.from_env()
    if not path:
        return settings

    settings_path = Path(path)
    if not settings_path.exists():
        logger.debug("Settings file %s (missing)", settings_path)
        return settings

    with settings_path.open("r", encoding="utf-8") as f:
        payload = yaml.safe_load(f) or {}
    if not isinstance(payload, dict):
        raise ValueError(f"Settings file {settings_path} must contain a mapping.")
    return settings.merged(payload)


def missing_settings(settings: Settings) -> List[str]:
    missing = []
    if not settings.meta_access_token:
        missing.append("META_ACCESS_TOKEN")
    if not settings.meta_ad_account_id:
        missing.append("META_AD_ACCOUNT_ID")
    if not settings.meta_page_id:
        missing.append("META_PAGE_ID")

    if settings.store_backend == "drive":
        if not settings.store_root:
            missing.append("GOOGLE_DRIVE_FOLDER_ID")
        if not settings.drive_access_token:
            missing.append("GOOGLE_DRIVE_ACCESS_TOKEN")
    elif settings.store_backend == "supabase":
        if not settings.supabase_url:
            missing.append("SUPABASE_URL")
        if not settings.supabase_key:
            missing.append("SUPABASE_SERVICE_ROLE_KEY")
    return missing


def validate_settings(settings: Settings) -> None:
    if settings.store_backend not in STORE_BACKENDS:
        raise ValueError(
            f"Unknown CREATIVE_STORE_BACKEND {settings.store_backend!r}. "
            f"Expected one of: {', '.join(sorted(STORE_BACKENDS))}"
        )

    missing = missing_settings(settings)
    if missing:
        raise ValueError(
            f"Missing environment variables: {', '.join(missing)}. "
            "Check your .env file or the server environment."
        )

    if settings.meta_timeout <= 0:
        raise ValueError("META_TIMEOUT must be positive.")
    if settings.sync_pacing_seconds < 0:
        raise ValueError("SYNC_PACING_SECONDS cannot be negative.")
    if "{package_id}" not in settings.wa_message_template:
        logger.warning(
            "WA message template has no {package_id} placeholder; "
            "conversations will not be traceable to a package."
        )
