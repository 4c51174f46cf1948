from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterable, List, Optional, TextIO, Tuple

from ..app.conversation import ConversationMachine, Step
from ..app.error_messages import catalog_rows_rejected_message
from ..app.geometry import RoomGeometry, validate_dimensions
from ..app.models import UNIT_LABELS
from ..app.pricing import PricingConfig
from ..app.services.estimate_service import EstimateResult, generate_estimate
from ..shared.normalize import load_transcription_fixes
from ..store import Catalog, CatalogFileError, read_catalog_file

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "data" / "meps_catalog.yaml"

logger = logging.getLogger("rostkalkyl.cli")


class CLIError(Exception):
    """Raised when user input is invalid."""


def _load_catalog(path: Path, fmt: Optional[str] = None) -> Tuple[Catalog, List[dict]]:
    try:
        source = read_catalog_file(path, fmt)
    except CatalogFileError as exc:
        raise CLIError(str(exc)) from exc
    catalog, row_errors = Catalog.load(source["rows"])
    return catalog, list(source["errors"]) + row_errors


def _pricing_config() -> PricingConfig:
    try:
        return PricingConfig.from_env()
    except ValueError as exc:
        raise CLIError(str(exc)) from exc


def _geometry(args: argparse.Namespace) -> RoomGeometry:
    problems = validate_dimensions(args.width, args.length, args.height, args.doors, args.windows)
    if problems:
        raise CLIError("Invalid room measurements: " + "; ".join(problems))
    return RoomGeometry(args.width, args.length, args.height, args.doors, args.windows)


def _format_estimate(result: EstimateResult) -> str:
    lines: List[str] = []
    for section in result.sections:
        lines.append(f"{section.title}:")
        for item in section.items:
            label = UNIT_LABELS[item.unit]
            lines.append(
                f"  {item.task_name:<28} {item.quantity:>9.2f} {label:<3} x {item.unit_price:>8.2f}"
                f" = {item.subtotal:>10.2f}"
            )
    totals = result.totals
    lines.append(f"Subtotal: {totals.subtotal:.2f} {totals.currency}")
    lines.append(f"Markup ({totals.markup_pct:g}%): {totals.markup:.2f} {totals.currency}")
    lines.append(f"Total: {totals.grand_total:.2f} {totals.currency}")
    for error in result.errors:
        lines.append(f"! {error.message}")
    return "\n".join(lines)


def cmd_validate_catalog(args: argparse.Namespace) -> int:
    path = Path(args.path)
    catalog, errors = _load_catalog(path, args.format)
    if errors:
        print(catalog_rows_rejected_message(errors))
        print(f"Accepted {len(catalog)} tasks, rejected {len(errors)} problem(s) in {path}.")
        return 1
    print(f"Catalog {path} is valid: {len(catalog)} tasks.")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    path = Path(args.path)
    catalog, errors = _load_catalog(path, args.format)
    by_unit = ", ".join(f"{unit}={count}" for unit, count in sorted(catalog.stats_by_unit().items()))
    by_surface = ", ".join(f"{surface}={count}" for surface, count in sorted(catalog.stats_by_surface().items()))
    print(
        f"Catalog {path} stats:\n"
        f"- tasks: {len(catalog)} (rejected rows: {len(errors)})\n"
        f"- units: {by_unit or '-'}\n"
        f"- surfaces: {by_surface or '-'}"
    )
    return 0


def cmd_estimate(args: argparse.Namespace) -> int:
    if not args.utterances:
        raise CLIError("Give at least one task, e.g. \"måla väggar två lager\".")
    catalog, errors = _load_catalog(Path(args.catalog), args.format)
    if errors:
        logger.warning("%s", catalog_rows_rejected_message(errors))
    result = generate_estimate(
        args.utterances, _geometry(args), catalog, _pricing_config(), load_transcription_fixes()
    )
    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    else:
        print(_format_estimate(result))
    return 0


def _replies(stream: TextIO) -> Iterable[str]:
    for line in stream:
        yield line.rstrip("\n")


def cmd_converse(args: argparse.Namespace) -> int:
    catalog, errors = _load_catalog(Path(args.catalog), args.format)
    if errors:
        logger.warning("%s", catalog_rows_rejected_message(errors))
    machine = ConversationMachine(catalog, config=_pricing_config(), fixes=load_transcription_fixes())
    if args.script:
        script = Path(args.script)
        if not script.exists():
            raise CLIError(f"File not found: {script}")
        stream: TextIO = script.open("r", encoding="utf-8")
    else:
        stream = sys.stdin
    print(machine.prompt)
    try:
        for reply in _replies(stream):
            if args.script:
                print(f"> {reply}")
            result = machine.process_input(reply)
            print(result.prompt)
            if result.step is Step.DONE:
                break
    finally:
        if stream is not sys.stdin:
            stream.close()
    if machine.step is not Step.DONE:
        print("Conversation ended before the estimate was confirmed.")
        return 1
    print(_format_estimate(machine.estimate()))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Voice-intent painting estimates against a MEPS catalog.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate-catalog", help="Validate a catalog file (CSV/JSON/YAML).")
    validate.add_argument("--path", required=True)
    validate.add_argument("--format", choices=("csv", "json", "yaml"), default=None)
    validate.set_defaults(func=cmd_validate_catalog)

    stats = subparsers.add_parser("stats", help="Show task counts per unit and surface.")
    stats.add_argument("--path", default=str(DEFAULT_CATALOG_PATH))
    stats.add_argument("--format", choices=("csv", "json", "yaml"), default=None)
    stats.set_defaults(func=cmd_stats)

    estimate = subparsers.add_parser("estimate", help="Price spoken task descriptions for one room.")
    estimate.add_argument("utterances", nargs="*", help="Task utterances, e.g. \"grundmåla tak\".")
    estimate.add_argument("--catalog", default=str(DEFAULT_CATALOG_PATH))
    estimate.add_argument("--format", choices=("csv", "json", "yaml"), default=None)
    estimate.add_argument("--width", type=float, required=True)
    estimate.add_argument("--length", type=float, required=True)
    estimate.add_argument("--height", type=float, required=True)
    estimate.add_argument("--doors", type=int, default=1)
    estimate.add_argument("--windows", type=int, default=1)
    estimate.add_argument("--json", action="store_true", help="Print the estimate as JSON.")
    estimate.set_defaults(func=cmd_estimate)

    converse = subparsers.add_parser("converse", help="Run the step-by-step conversation on stdin.")
    converse.add_argument("--catalog", default=str(DEFAULT_CATALOG_PATH))
    converse.add_argument("--format", choices=("csv", "json", "yaml"), default=None)
    converse.add_argument("--script", default=None, help="Read replies from a file, one per line.")
    converse.set_defaults(func=cmd_converse)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    try:
        return args.func(args)
    except CLIError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
