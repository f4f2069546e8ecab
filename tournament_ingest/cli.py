from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import asdict
from typing import Any, Sequence

import httpx

from tournament_ingest.core.config import get_settings
from tournament_ingest.core.errors import PipelineError
from tournament_ingest.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from tournament_ingest.jobs.paste_url import create_tournament_from_url
from tournament_ingest.jobs.runner import JOB_KINDS, execute_job
from tournament_ingest.jobs.source_discovery import discover_sources
from tournament_ingest.services.records import SOURCE_TYPES
from tournament_ingest.services.repository import RepositoryError, get_repository
from tournament_ingest.services.resolver import link_series
from tournament_ingest.services.search import build_search_provider
from tournament_ingest.services.sources import register_source

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tournament-ingest")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="run one scheduled job to completion")
    run.add_argument("job", choices=JOB_KINDS)
    run.add_argument("--limit", type=int, default=None)
    run.add_argument("--sport", default=None)
    run.add_argument("--state", default=None)
    run.add_argument("--entity-kind", dest="entity_kind", default=None)

    register = commands.add_parser("register-source", help="register or update a source page")
    register.add_argument("url")
    register.add_argument("--type", dest="source_type", choices=SOURCE_TYPES, required=True)
    register.add_argument("--sport", required=True)
    register.add_argument("--state", default=None)
    register.add_argument("--city", default=None)
    register.add_argument("--notes", default=None)
    register.add_argument("--inactive", action="store_true")

    paste = commands.add_parser("paste-url", help="create or refresh a tournament from its own event page")
    paste.add_argument("url")
    paste.add_argument("--sport", required=True)
    paste.add_argument("--status", default=None)

    discover = commands.add_parser("discover-sources", help="search for listing pages and register new ones inactive")
    discover.add_argument("queries", nargs="+")
    discover.add_argument("--type", dest="source_type", choices=SOURCE_TYPES, required=True)
    discover.add_argument("--sport", required=True)
    discover.add_argument("--state", default=None)
    discover.add_argument("--per-query", dest="per_query_limit", type=int, default=None)
    discover.add_argument("--max-total", dest="max_total", type=int, default=None)

    link = commands.add_parser("link-series", help="mark a tournament as an edition of a canonical series")
    link.add_argument("tournament_id")
    link.add_argument("canonical_id")
    return parser


async def _run(args: argparse.Namespace) -> dict[str, Any]:
    settings = get_settings()
    repository = get_repository()
    try:
        if args.command == "run":
            options = {
                key: value
                for key, value in {
                    "limit": args.limit,
                    "sport": args.sport,
                    "state": args.state,
                    "entity_kind": args.entity_kind,
                }.items()
                if value is not None
            }
            return await execute_job(args.job, repository, settings, options=options)
        if args.command == "register-source":
            record = await register_source(
                repository,
                url=args.url,
                source_type=args.source_type,
                sport=args.sport,
                state=args.state,
                city=args.city,
                notes=args.notes,
                is_active=not args.inactive,
            )
            return asdict(record)
        if args.command == "paste-url":
            async with httpx.AsyncClient(timeout=settings.fetch_timeout_seconds, follow_redirects=False) as client:
                result = await create_tournament_from_url(
                    repository, args.url, sport=args.sport, client=client, settings=settings, status=args.status
                )
            return {**asdict(result.outcome), "metadata": asdict(result.metadata)}
        if args.command == "discover-sources":
            async with httpx.AsyncClient(timeout=settings.search_timeout_seconds) as client:
                return await discover_sources(
                    repository,
                    build_search_provider(settings, client=client),
                    queries=args.queries,
                    sport=args.sport,
                    source_type=args.source_type,
                    state=args.state,
                    per_query_limit=args.per_query_limit,
                    max_total=args.max_total,
                )
        record = await link_series(repository, tournament_id=args.tournament_id, canonical_id=args.canonical_id)
        return asdict(record)
    finally:
        await repository.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()
    runtime = setup_telemetry(get_settings(), service_suffix="cli")
    try:
        result = asyncio.run(_run(args))
    except (PipelineError, RepositoryError, ValueError) as exc:
        logger.error("command failed command=%s error=%s", args.command, exc)
        return 1
    finally:
        shutdown_telemetry(runtime)
    print(json.dumps(result, default=str, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
