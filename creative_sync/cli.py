#!/usr/bin/env python3
"""
Creative sync command line
Discover, upload and assemble package creatives from the operator's shell
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import yaml

from .config import Settings, load_settings, validate_settings
from .creative.assembly import CopyVariant, MessagingTemplate, assemble
from .creative.pipeline import SyncContext, discover, has_creatives, media_by_aspect_ratio, summarize, sync_package
from .infrastructure.error_handling import CreativeSyncError, PlatformRejectionError
from .integrations.slack import build_basic_blocks, notify

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    noise_levels = {
        "httpx": logging.WARNING,
        "urllib3": logging.WARNING,
        "httpcore": logging.WARNING,
        "supabase": logging.WARNING,
    }
    for name, level in noise_levels.items():
        logging.getLogger(name).setLevel(level)


def load_copies(path: str) -> List[CopyVariant]:
    """Copy variants from YAML: a list, or a mapping with a ``copies`` list."""
    with Path(path).open("r", encoding="utf-8") as f:
        payload = yaml.safe_load(f) or []
    if isinstance(payload, dict):
        payload = payload.get("copies") or []
    if not isinstance(payload, list):
        raise ValueError(f"Copies file {path} must contain a list of copy variants.")
    copies = [CopyVariant.from_dict(item) for item in payload if isinstance(item, dict)]
    if not copies:
        raise ValueError(f"Copies file {path} has no copy variants.")
    return copies


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def cmd_discover(ctx: SyncContext, args: argparse.Namespace) -> int:
    assets = discover(ctx, args.package_id)
    for asset in assets:
        print(f"V{asset.variant}  {asset.aspect_ratio.value:<5} {asset.media_kind.value:<6} {asset.file_name}  ({asset.file_id})")
    if not assets:
        print(f"No creatives for package {args.package_id}")
    return 0


def cmd_status(ctx: SyncContext, args: argparse.Namespace) -> int:
    _print_json(has_creatives(ctx, args.package_id))
    return 0


def cmd_sync(ctx: SyncContext, args: argparse.Namespace, settings: Settings) -> int:
    results = sync_package(ctx, args.package_id, args.variants)
    if args.json:
        _print_json([r.to_dict() for r in results])
    for r in results:
        status = "OK " if r.success else "ERR"
        detail = r.platform_id if r.success else r.error
        print(f"[{status}] V{r.variant} {r.aspect_ratio.value:<5} {r.media_kind.value:<6} {detail}")

    summary = summarize(results)
    print(f"{summary.succeeded}/{summary.total} uploaded, {summary.failed} failed")

    title = f"Creative sync for package {args.package_id}: {summary.succeeded}/{summary.total} uploaded"
    severity = "ok" if summary.all_succeeded else ("warn" if summary.succeeded else "error")
    notify(
        title,
        severity,
        blocks=build_basic_blocks(title, summary.errors, severity),
        webhook_url=settings.slack_webhook_url,
    )
    return 0 if summary.failed == 0 else 1


def cmd_assemble(ctx: SyncContext, args: argparse.Namespace, settings: Settings) -> int:
    copies = load_copies(args.copies)
    results = sync_package(ctx, args.package_id, [args.variant])
    media = media_by_aspect_ratio(results, args.variant)

    spec = assemble(
        copies,
        media,
        MessagingTemplate.for_package(args.package_id, settings.wa_message_template),
        name=args.name or f"TC {args.package_id} V{args.variant}",
        page_id=ctx.gateway.page_id,
        instagram_user_id=ctx.gateway.cfg.instagram_user_id,
    )
    if not args.submit:
        _print_json(spec.to_params())
        return 0

    creative_id = ctx.gateway.create_ad_creative(spec)
    print(f"Created {spec.media_type} creative {creative_id}")
    if args.adset:
        ad_id = ctx.gateway.create_ad(spec.name, args.adset, creative_id, status=args.status)
        print(f"Created ad {ad_id} in adset {args.adset}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="creative-sync",
        description="Sync package creatives from the asset store to Meta and assemble placement ads",
    )
    parser.add_argument("--settings", default=None, help="optional YAML settings overlay")
    parser.add_argument("--dry-run", action="store_true", help="mock every Meta write call")
    parser.add_argument("--verbose", "-v", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("discover", help="list creatives found for a package")
    p.add_argument("package_id")

    p = sub.add_parser("status", help="summarize whether a package has creatives")
    p.add_argument("package_id")

    p = sub.add_parser("sync", help="upload a package's creatives to Meta")
    p.add_argument("package_id")
    p.add_argument("--variants", type=int, nargs="+", default=None, help="only these variant numbers")
    p.add_argument("--json", action="store_true", help="also print raw results as JSON")

    p = sub.add_parser("assemble", help="sync one variant and build its placement creative")
    p.add_argument("package_id")
    p.add_argument("--copies", required=True, help="YAML file with copy variants")
    p.add_argument("--variant", type=int, default=1)
    p.add_argument("--name", default=None)
    p.add_argument("--submit", action="store_true", help="create the creative on Meta")
    p.add_argument("--adset", default=None, help="also create an ad in this adset (requires --submit)")
    p.add_argument("--status", choices=["ACTIVE", "PAUSED"], default="PAUSED")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "assemble" and args.adset and not args.submit:
        parser.error("--adset requires --submit")
    configure_logging(args.verbose)

    settings = load_settings(args.settings)
    if args.dry_run:
        settings.dry_run = True
    try:
        validate_settings(settings)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(2)

    ctx = SyncContext.from_settings(settings)
    try:
        if args.command == "discover":
            code = cmd_discover(ctx, args)
        elif args.command == "status":
            code = cmd_status(ctx, args)
        elif args.command == "sync":
            code = cmd_sync(ctx, args, settings)
        else:
            code = cmd_assemble(ctx, args, settings)
    except PlatformRejectionError as e:
        logger.error(f"{e}")
        _print_json(e.payload)
        sys.exit(1)
    except CreativeSyncError as e:
        logger.error(f"{e}")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
