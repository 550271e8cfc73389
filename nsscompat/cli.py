"""Command-line interface for the NSS strategy probes."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import List

from playwright.sync_api import sync_playwright

from .compat_probe import CompatibilityProbe
from .config import ProbeConfig
from .errors import ConfigError, ProbeError
from .generator_probe import StrategyGeneratorProbe
from .models import Deployment
from .observability import RunObservability, new_run_id
from .progress import ConsoleProgress, NoOpProgress, ProgressObserver
from .session import DriverSession
from .verifier import StrategyVerifier, build_verifier


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check NSS strategy generation and backward compatibility")
    parser.add_argument(
        "--storage-root",
        type=Path,
        default=None,
        help="Directory where run logs and reports are written (default: NSS_STORAGE_ROOT or artifacts/runs)",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--no-progress", action="store_true", help="Do not draw the progress bar")
    subcommands = parser.add_subparsers(dest="command", required=True)

    generate = subcommands.add_parser("generate", help="Generate random strategies on the current build")
    generate.add_argument("--count", type=int, default=None, help="Number of strategies (default: NSS_GENERATION_COUNT)")

    compat = subcommands.add_parser("compat", help="Restore strategies from legacy builds on the current app")
    compat.add_argument(
        "--legacy",
        action="append",
        metavar="TAG",
        help="Legacy deployment tag to check; repeat for several (default: all configured)",
    )
    compat.add_argument("--iterations", type=int, default=None, help="Strategies per deployment")
    compat.add_argument("--fail-fast", action="store_true", help="Stop at the first failing deployment")
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> ProbeConfig:
    for name in ("count", "iterations"):
        value = getattr(args, name, None)
        if value is not None and value <= 0:
            raise ConfigError({name: "must be > 0"})
    config = ProbeConfig.from_env()
    if args.headed:
        config.session.headless = False
    if args.storage_root is not None:
        config.storage_root = args.storage_root
    return config


def select_legacy(config: ProbeConfig, tags: List[str] | None) -> List[Deployment]:
    if not tags:
        return list(config.legacy.values())
    unknown = [tag for tag in tags if tag not in config.legacy]
    if unknown:
        raise ConfigError({"legacy": f"unknown legacy deployment(s): {', '.join(unknown)}"})
    return [config.legacy[tag] for tag in tags]


def run_generation(
    args: argparse.Namespace,
    config: ProbeConfig,
    verifier: StrategyVerifier,
    progress: ProgressObserver,
) -> int:
    run_id = new_run_id("generate")
    telemetry = RunObservability(config.storage_root)
    with DriverSession.launch(config.session) as session:
        probe = StrategyGeneratorProbe(
            session, verifier, config, progress=progress, telemetry=telemetry, run_id=run_id
        )
        try:
            report = probe.run(iterations=args.count)
        except ProbeError as exc:
            print(f"Strategy generation check failed ({run_id}): {exc}", file=sys.stderr)
            return 1
    telemetry.write_report(run_id, "generation", report.to_dict())
    print(json.dumps({"run_id": run_id, **report.to_dict()}, indent=2, ensure_ascii=False))
    return 0


def run_compatibility(
    args: argparse.Namespace,
    config: ProbeConfig,
    verifier: StrategyVerifier,
    progress: ProgressObserver,
    legacy: List[Deployment],
) -> int:
    run_id = new_run_id("compat")
    telemetry = RunObservability(config.storage_root)
    with ExitStack() as stack:
        playwright = stack.enter_context(sync_playwright())
        legacy_session = stack.enter_context(DriverSession.launch(config.session, playwright=playwright))
        current_session = stack.enter_context(
            DriverSession.launch(config.session.for_application(), playwright=playwright)
        )
        probe = CompatibilityProbe(
            legacy_session,
            current_session,
            verifier,
            config,
            progress=progress,
            telemetry=telemetry,
            run_id=run_id,
        )
        try:
            reports = probe.run_all(legacy, args.iterations, fail_fast=args.fail_fast)
        except ProbeError as exc:
            print(f"Compatibility check failed ({run_id}): {exc}", file=sys.stderr)
            return 1
    summary = {tag: report.to_dict() for tag, report in reports.items()}
    telemetry.write_report(run_id, "compatibility", summary)
    print(json.dumps({"run_id": run_id, "deployments": summary}, indent=2, ensure_ascii=False))
    return 0 if all(report.passed for report in reports.values()) else 1


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_config(args)
        verifier = build_verifier(config.verifier)
        legacy = select_legacy(config, getattr(args, "legacy", None))
    except ConfigError as exc:
        print("Invalid configuration. See errors below:", file=sys.stderr)
        for field, message in exc.errors.items():
            print(f" - {field}: {message}", file=sys.stderr)
        raise SystemExit(2)

    progress: ProgressObserver = NoOpProgress() if args.no_progress else ConsoleProgress()
    if args.command == "generate":
        code = run_generation(args, config, verifier, progress)
    else:
        code = run_compatibility(args, config, verifier, progress, legacy)
    raise SystemExit(code)


if __name__ == "__main__":  # pragma: no cover
    main()
