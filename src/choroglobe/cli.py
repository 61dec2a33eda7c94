"""CLI entrypoint for the choroglobe renderer."""

from __future__ import annotations

import argparse
import logging
from typing import Sequence

from .config import AppConfig, load_config
from .pipeline import RenderOptions, format_render_lines, run_inspect, run_render
from .util import ensure_directories, setup_logging

LOGGER = logging.getLogger("choroglobe.cli")


def _parse_value(raw: str) -> tuple[str, int]:
    code, sep, value = raw.partition("=")
    if not sep or not code.strip():
        raise argparse.ArgumentTypeError(f"Expected CODE=VALUE, got '{raw}'")
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Value for {code} must be an integer: '{value}'") from exc
    if number < 0 or number > 100:
        raise argparse.ArgumentTypeError(f"Value for {code} must be between 0 and 100")
    return (code.strip().upper(), number)


def _parse_size(raw: str) -> tuple[int, int]:
    width, sep, height = raw.lower().partition("x")
    try:
        if not sep:
            raise ValueError(raw)
        return (int(width), int(height))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected WIDTHxHEIGHT, got '{raw}'") from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="choroglobe",
        description="Render a choropleth onto a globe texture and a flat map.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    render_p = subparsers.add_parser("render", help="Render sphere texture and flat map.")
    add_common(render_p)
    render_p.add_argument(
        "--value",
        action="append",
        default=[],
        type=_parse_value,
        metavar="CODE=N",
        help="Set a country value (0-100). Can be repeated.",
    )
    render_p.add_argument("--randomize", action="store_true", help="Randomize all tracked values.")
    render_p.add_argument("--seed", type=int, default=None, help="Seed for --randomize.")
    render_p.add_argument("--clear", action="store_true", help="Reset every value to 0 first.")
    render_p.add_argument(
        "--no-sample",
        action="store_true",
        help="Start from an empty store instead of the sample values.",
    )
    render_p.add_argument(
        "--flat-size",
        type=_parse_size,
        default=None,
        metavar="WxH",
        help="Flat map container size; margins from config are subtracted.",
    )

    inspect_p = subparsers.add_parser(
        "inspect",
        help="Report which tracked codes resolve to a geographic feature.",
    )
    add_common(inspect_p)
    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    setup_logging(cfg.paths.logs_dir / "render.log", verbose=args.verbose)
    ensure_directories(cfg.paths.build_directories)
    return cfg


def _run_render(cfg: AppConfig, args: argparse.Namespace) -> int:
    options = RenderOptions(
        values=dict(args.value),
        use_sample=not bool(args.no_sample),
        randomize=bool(args.randomize),
        seed=args.seed,
        clear=bool(args.clear),
        flat_container=args.flat_size,
    )
    report = run_render(cfg, options)
    for line in format_render_lines(report):
        LOGGER.info(line)
    if not report.ok:
        LOGGER.error("Render aborted.")
        return 1
    return 0


def _run_inspect(cfg: AppConfig) -> int:
    report = run_inspect(cfg)
    for line in format_render_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _dispatch(args: argparse.Namespace) -> int:
    cfg = _load_and_setup(args)
    command = str(args.command)
    if command == "render":
        return _run_render(cfg, args)
    if command == "inspect":
        return _run_inspect(cfg)
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
