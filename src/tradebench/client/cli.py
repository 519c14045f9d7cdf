"""Operator CLI for the tradebench control API."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import (
    Any,
    Dict,
    cast,
)

import httpx

from tradebench.common import (
    AnsiColors,
    colored_print,
)
from tradebench.config import settings

logger = logging.getLogger(__name__)


class ApiError(RuntimeError):
    """The control API could not be reached or rejected the request."""


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------
def call_api(
    method: str,
    endpoint: str,
    data: Dict[str, Any] | None = None,
    base_url: str | None = None,
    max_retries: int = 5,
    transport: httpx.BaseTransport | None = None,
) -> Dict[str, Any]:
    """Send a request to the control API and return the decoded JSON, retrying refused connects."""
    api_url = f"{base_url or f'http://localhost:{settings.API_PORT}'}{endpoint}"

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=30.0, transport=transport) as client:
                response = client.request(method, api_url, json=data)
        except httpx.ConnectError as e:
            # On connection refused, retry with exponential backoff
            if attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)  # exponential backoff: 0.5s, 1s, 2s, 4s...
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_delay)
                continue
            raise ApiError(f"Error connecting to API: {e}") from e
        except httpx.HTTPError as e:
            raise ApiError(f"Error connecting to API: {e}") from e

        if response.is_error:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise ApiError(f"API error {response.status_code}: {detail}")
        return cast(Dict[str, Any], response.json())

    raise ApiError(f"Failed to connect to API after {max_retries} attempts")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
def _show(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_status(args: argparse.Namespace) -> None:
    status = call_api("GET", "/window/status", base_url=args.url)
    current = status.get("current")
    if status.get("active") and current:
        colored_print(
            f"Window {current['id']} is open until {current['end']}", AnsiColors.GREEN
        )
    else:
        colored_print("No window is open", AnsiColors.YELLOW)
    if status.get("regular_hours"):
        colored_print("Regular market hours are open", AnsiColors.GREEN)
    upcoming = status.get("next")
    if upcoming:
        print(f"Next: {upcoming['id']} at {upcoming['start']}")


def cmd_open_adhoc(args: argparse.Namespace) -> None:
    body = {"duration_minutes": args.minutes} if args.minutes else {}
    window = call_api("POST", "/window/adhoc", body, base_url=args.url)
    colored_print(f"Ad-hoc window open {window['start']} -> {window['end']}", AnsiColors.GREEN)


def cmd_close_adhoc(args: argparse.Namespace) -> None:
    result = call_api("DELETE", "/window/adhoc", base_url=args.url)
    if result.get("closed"):
        colored_print("Ad-hoc window closed", AnsiColors.GREEN)
    else:
        colored_print("No ad-hoc window was open", AnsiColors.YELLOW)


def cmd_schedule(args: argparse.Namespace) -> None:
    update: Dict[str, Any] = {}
    if args.windows is not None:
        update["windows"] = [part.strip() for part in args.windows.split(",") if part.strip()]
    if args.timezone is not None:
        update["timezone"] = args.timezone
    if args.duration is not None:
        update["duration_minutes"] = args.duration

    if update:
        _show(call_api("PUT", "/schedule", update, base_url=args.url))
    else:
        _show(call_api("GET", "/schedule", base_url=args.url))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tradebench-ctl", description=__doc__)
    parser.add_argument("--url", default=None, help="Control API base URL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show the current window status").set_defaults(func=cmd_status)

    adhoc = sub.add_parser("open-adhoc", help="Open an ad-hoc trading window now")
    adhoc.add_argument("--minutes", type=int, default=None, help="Window length in minutes")
    adhoc.set_defaults(func=cmd_open_adhoc)

    sub.add_parser("close-adhoc", help="Close the ad-hoc window").set_defaults(
        func=cmd_close_adhoc
    )

    schedule = sub.add_parser("schedule", help="Show or replace the schedule")
    schedule.add_argument("--windows", help="Comma-separated HH:mm starts")
    schedule.add_argument("--timezone", help="IANA timezone")
    schedule.add_argument("--duration", type=int, help="Window length in minutes")
    schedule.set_defaults(func=cmd_schedule)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        args.func(args)
    except ApiError as exc:
        colored_print(str(exc), AnsiColors.RED)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
