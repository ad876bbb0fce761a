"""Command line client for the academic service.

Every outcome is reported as a toast through the coalescer, so repeated or
low-value acknowledgements collapse the same way they do in the browser.
Response bodies are printed as JSON on stdout; toasts go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

import httpx
from rich.console import Console

from services.common import configure_logging

from .client import PortalAPIError, PortalClient
from .config import ClientSettings, get_client_settings
from .toasts import ToastCoalescer, ToastOptions, get_coalescer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="portal-client", description="Student performance portal client")
    parser.add_argument("--base-url", default=None, help="Academic service URL (default: PORTAL_BASE_URL)")
    parser.add_argument("--user-id", default=None, help="Caller identity (default: PORTAL_USER_ID)")
    parser.add_argument(
        "--role",
        choices=("student", "coordinator"),
        default=None,
        help="Caller role (default: PORTAL_ROLE or student)",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Turn toasts off; errors and always-show categories still render",
    )
    parser.add_argument(
        "--wait-timeout",
        type=float,
        default=10.0,
        help="Seconds to wait for pending toasts before exiting (default: %(default)s)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("profile", help="Show the caller's profile")

    save_profile = commands.add_parser("save-profile", help="Create or update the caller's profile")
    save_profile.add_argument("--email", required=True)
    save_profile.add_argument("--first-name", required=True)
    save_profile.add_argument("--last-name", required=True)
    save_profile.add_argument("--user-type", choices=("student", "coordinator"), default="student")

    submit = commands.add_parser("submit", help="Submit subject results for a term")
    submit.add_argument("--term", type=int, required=True, choices=(1, 2, 3, 4))
    submit.add_argument("--grade", required=True)
    submit.add_argument("--subjects", type=Path, required=True, help="JSON file with a list of subjects")
    submit.add_argument("--school", default=None)
    submit.add_argument("--academic-year", default=None, help="For example 2024/2025")

    results = commands.add_parser("results", help="List stored subject results")
    results.add_argument("--term", type=int, choices=(1, 2, 3, 4), default=None)
    results.add_argument("--academic-year", default=None)

    summary = commands.add_parser("summary", help="Show the performance summary for a term")
    summary.add_argument("term", type=int, choices=(1, 2, 3, 4))
    summary.add_argument("--academic-year", default=None)

    trend = commands.add_parser("trend", help="Show the term-over-term trend")
    trend.add_argument("--academic-year", default=None)

    commands.add_parser("overview", help="Coordinator dashboard totals")

    students = commands.add_parser("students", help="Coordinator student list")
    students.add_argument("--limit", type=int, default=50)
    students.add_argument("--offset", type=int, default=0)

    return parser


def resolve_settings(args: argparse.Namespace) -> ClientSettings:
    overrides = {
        key: value
        for key, value in (("base_url", args.base_url), ("user_id", args.user_id), ("role", args.role))
        if value is not None
    }
    return get_client_settings().model_copy(update=overrides)


class SubjectsFileError(ValueError):
    """Raised when the subjects file cannot be read or parsed."""


def load_subjects(path: Path) -> list[dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise SubjectsFileError(str(exc)) from exc
    if isinstance(data, dict):
        data = data.get("subjects", [])
    if not isinstance(data, list):
        raise SubjectsFileError("subjects file must hold a JSON list")
    return data


async def run_command(
    args: argparse.Namespace,
    client: PortalClient,
    coalescer: ToastCoalescer,
    console: Console,
) -> int:
    """Execute one command and report its outcome; return the exit code."""

    try:
        body = await _execute(args, client, coalescer)
    except PortalAPIError as exc:
        report_api_error(coalescer, exc)
        return 1
    except httpx.HTTPError as exc:
        logger.warning("Request to academic service failed: %s", exc)
        coalescer.error("Could not reach the academic service", category="connection error")
        return 1
    except SubjectsFileError as exc:
        coalescer.error(f"Could not read subjects file: {exc}", category="form input error")
        return 1
    if body is not None:
        console.print_json(data=body)
    return 0


async def _execute(args: argparse.Namespace, client: PortalClient, coalescer: ToastCoalescer) -> Any:
    command = args.command
    if command == "profile":
        body = await client.get_profile()
        coalescer.success("Profile loaded", category="data loading")
        return body
    if command == "save-profile":
        body = await client.save_profile(
            email=args.email,
            first_name=args.first_name,
            last_name=args.last_name,
            role=args.user_type,
        )
        coalescer.success("Profile saved", category="profile submit")
        return body
    if command == "submit":
        subjects = load_subjects(args.subjects)
        body = await client.submit_term(
            term=args.term,
            grade=args.grade,
            subjects=subjects,
            school=args.school,
            academic_year=args.academic_year,
        )
        coalescer.success(f"Term {args.term} results saved", category="data save")
        coalescer.info(f"Term {args.term} average {body['averageScore']}%: {body['performanceStatus']}")
        return body
    if command == "results":
        items = await client.list_results(term=args.term, academic_year=args.academic_year)
        coalescer.success(f"Loaded {len(items)} results", category="data loading")
        if not items:
            coalescer.info("No results recorded yet")
        return items
    if command == "summary":
        return await client.get_summary(args.term, academic_year=args.academic_year)
    if command == "trend":
        body = await client.get_trend(academic_year=args.academic_year)
        if body["trend"] == "declining":
            coalescer.warning(f"Performance declined by {abs(body['percentageChange'])}%")
        return body
    if command == "overview":
        return await client.coordinator_overview()
    if command == "students":
        return await client.list_students(limit=args.limit, offset=args.offset)
    raise ValueError(f"unknown command {command!r}")


def report_api_error(coalescer: ToastCoalescer, exc: PortalAPIError) -> None:
    if exc.is_auth_failure:
        coalescer.force_show("error", exc.message, ToastOptions(category="authentication"))
    elif exc.errors:
        coalescer.group(exc.errors, "error", ToastOptions(category="validation error", priority="high"))
    else:
        coalescer.error(exc.message, category="request error")


async def _run(args: argparse.Namespace) -> int:
    settings = resolve_settings(args)
    configure_logging(settings)
    coalescer = get_coalescer()
    if args.quiet:
        coalescer.set_enabled(False)
    async with PortalClient(settings) as client:
        exit_code = await run_command(args, client, coalescer, Console())
    try:
        await coalescer.wait_idle(timeout=args.wait_timeout)
    except asyncio.TimeoutError:
        logger.warning("Exited with %d toasts still pending", coalescer.pending_count)
    return exit_code


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
