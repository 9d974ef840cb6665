"""CLI entrypoint: look up the water system and safety tier for one location."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from tapwater.common.config_loader import ServiceConfig, load_service_config
from tapwater.common.constants import EXIT_HARD_FAIL, EXIT_LOOKUP_FAILED, EXIT_SUCCESS
from tapwater.common.errors import ResolutionError, StoreUnavailable
from tapwater.common.fs import dump_json
from tapwater.common.logging import build_logger, log_event
from tapwater.common.models import AddressQuery, CoordinateQuery, Coordinates, LocationQuery, Success
from tapwater.common.time_utils import parse_as_of
from tapwater.compliance.classifier import triggering_records
from tapwater.pipeline.builder import LookupServices, build_services


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    location = parser.add_mutually_exclusive_group(required=True)
    location.add_argument("--address")
    location.add_argument("--lat", type=float)
    parser.add_argument("--lon", type=float)
    parser.add_argument("--db", required=True, help="path to the SDWA violations SQLite file")
    parser.add_argument("--as-of", default=None)
    parser.add_argument("--config-dir", default=None)
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--stage-timeout", type=float, default=None)
    parser.add_argument("--violations", action="store_true", help="include the violation listing")
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-file", default=None)
    args = parser.parse_args(argv)
    if args.lat is not None and args.lon is None:
        parser.error("--lat requires --lon")
    if args.lon is not None and args.lat is None:
        parser.error("--lon requires --lat")
    return args


def build_query(args: argparse.Namespace) -> LocationQuery:
    if args.address is not None:
        return AddressQuery(args.address)
    return CoordinateQuery(Coordinates(latitude=args.lat, longitude=args.lon))


def _load_config(args: argparse.Namespace) -> ServiceConfig:
    if args.config_dir is None:
        return ServiceConfig()
    overlay = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    return load_service_config(Path(args.config_dir), overlay_config_dir=overlay)


async def _lookup(services: LookupServices, query: LocationQuery, args: argparse.Namespace) -> dict:
    as_of = parse_as_of(args.as_of)
    result = await services.pipeline.resolve(query, as_of=as_of)
    payload = result.to_dict()
    if isinstance(result, Success) and args.violations:
        records = await services.pipeline.violations(result.utility.system_id)
        payload["violations"] = [record.to_dict() for record in records]
        lookback = services.pipeline.classifier.lookback_years
        # The listing is paged; records that set the tier may fall outside it.
        payload["triggering_violations"] = [
            record.to_dict() for record in triggering_records(records, result.tier, as_of, lookback)
        ]
    return payload


def run_command(args: argparse.Namespace) -> int:
    logger = build_logger(level=args.log_level, log_path=Path(args.log_file) if args.log_file else None)
    config = _load_config(args)
    query = build_query(args)

    with build_services(config, args.db, stage_timeout=args.stage_timeout, logger=logger) as services:
        services.store.validate()
        payload = asyncio.run(_lookup(services, query, args))

    print(dump_json(payload))
    if payload["status"] == "failure":
        log_event(logger, "lookup failed", event="LOOKUP_FAIL", status="error", error_code=payload["kind"])
        return EXIT_LOOKUP_FAILED
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except StoreUnavailable as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_HARD_FAIL
    except ResolutionError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        # Invalid coordinates are rejected before any lookup starts.
        return EXIT_LOOKUP_FAILED if exc.error_code == "INVALID_INPUT" else EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
