"""carouselpub command-line entry-point.

Usage:
    python -m carouselpub publish --image URL [--video URL] ... [--caption TEXT] [--dry-run]
    python -m carouselpub check
    python -m carouselpub status CONTAINER_ID

Account credentials, API version, timeouts and timing profiles come from the
environment (or ``.env``); see :class:`~carouselpub.core.settings.Settings`.

Exit codes:
    0  success
    1  configuration error (missing credentials, invalid settings)
    2  publish or API failure (remediation and orphan ids on stderr)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Callable, Sequence
from typing import Final

import httpx
from pydantic import ValidationError

from carouselpub.core import configure_logging
from carouselpub.core.exceptions import ConfigError, GraphApiError, PublishError
from carouselpub.core.models import CarouselItem
from carouselpub.core.settings import Settings
from carouselpub.graph.client import GraphApiClient
from carouselpub.saga.orchestrator import PublishSaga, validate_items

logger = logging.getLogger(__name__)

EXIT_OK: Final[int] = 0
EXIT_CONFIG: Final[int] = 1
EXIT_FAILURE: Final[int] = 2


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _media_arg(is_video: bool) -> Callable[[str], CarouselItem]:
    def parse(value: str) -> CarouselItem:
        try:
            return CarouselItem(image_url=value, is_video=is_video)
        except ValidationError as exc:
            raise argparse.ArgumentTypeError(
                f"not an absolute http(s) URL: {value!r}"
            ) from exc

    parse.__name__ = "video URL" if is_video else "image URL"
    return parse


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="carouselpub",
        description="Publish multi-image carousels to Instagram.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    publish = sub.add_parser("publish", help="Publish a carousel.")
    # Both flags append to the same list so mixed image/video order is kept.
    publish.add_argument(
        "--image",
        dest="items",
        action="append",
        type=_media_arg(False),
        default=[],
        metavar="URL",
        help="Public image URL (repeatable).",
    )
    publish.add_argument(
        "--video",
        dest="items",
        action="append",
        type=_media_arg(True),
        metavar="URL",
        help="Public video URL (repeatable).",
    )
    publish.add_argument("--caption", default=None, help="Carousel caption.")
    publish.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate the items and print the plan without calling the API.",
    )

    sub.add_parser("check", help="Verify publishing permissions of the configured account.")

    status = sub.add_parser("status", help="Show the processing status of a container.")
    status.add_argument("container_id", metavar="CONTAINER_ID")

    return parser


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _build_client(settings: Settings) -> GraphApiClient:
    return GraphApiClient.from_settings(settings)


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2))  # noqa: T201


def _report_publish_error(exc: PublishError) -> None:
    print(f"carouselpub: {exc.kind}: {exc}", file=sys.stderr)  # noqa: T201
    print(f"carouselpub: {exc.remediation}", file=sys.stderr)  # noqa: T201
    if exc.item_index is not None:
        print(f"carouselpub: failed item: {exc.item_index}", file=sys.stderr)  # noqa: T201
    if exc.orphan_ids:
        print(  # noqa: T201
            "carouselpub: unpublished containers (expire after 24 h): "
            + ", ".join(exc.orphan_ids),
            file=sys.stderr,
        )


async def _cmd_publish(args: argparse.Namespace, settings: Settings) -> int:
    items: list[CarouselItem] = args.items

    if args.dry_run:
        try:
            validate_items(items)
        except PublishError as exc:
            _report_publish_error(exc)
            return EXIT_FAILURE
        config = settings.to_saga_config()
        _print_json(
            {
                "dry_run": True,
                "account_configured": settings.account_configured,
                "items": [item.model_dump() for item in items],
                "caption": args.caption,
                "processing_wait_ms": config.processing_wait.delay_ms(len(items)),
            }
        )
        return EXIT_OK

    account = settings.credentials()
    async with _build_client(settings) as api:
        saga = PublishSaga(api, settings.to_saga_config())
        try:
            result = await saga.publish(account, items, args.caption)
        except PublishError as exc:
            _report_publish_error(exc)
            return EXIT_FAILURE

    _print_json(result.to_dict())
    return EXIT_OK


async def _cmd_check(args: argparse.Namespace, settings: Settings) -> int:
    account = settings.credentials()
    async with _build_client(settings) as api:
        ok = await api.check_publishing_permissions(account.account_id, account.access_token)
    _print_json({"account_id": account.account_id, "can_publish": ok})
    return EXIT_OK if ok else EXIT_FAILURE


async def _cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    account = settings.credentials()
    async with _build_client(settings) as api:
        status = await api.get_container_status(args.container_id, account.access_token)
    _print_json({**status.model_dump(), "ready": status.is_ready})
    return EXIT_OK


_COMMANDS: Final = {
    "publish": _cmd_publish,
    "check": _cmd_check,
    "status": _cmd_status,
}


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry-point registered in ``pyproject.toml``."""
    args = build_parser().parse_args(argv)

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"carouselpub: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        return EXIT_CONFIG

    try:
        settings = Settings()
    except ValidationError as exc:
        print(f"carouselpub: invalid settings: {exc}", file=sys.stderr)  # noqa: T201
        return EXIT_CONFIG

    command = _COMMANDS[args.command]
    try:
        return asyncio.run(command(args, settings))
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        print(f"carouselpub: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        return EXIT_CONFIG
    except (GraphApiError, httpx.HTTPError) as exc:
        print(f"carouselpub: API error: {exc}", file=sys.stderr)  # noqa: T201
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.info("Interrupted — exiting.")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
