"""
Command-line interface for connect-diff.

Usage (examples):
  - Plain diff into a fresh helper directory:
      connect-diff ./snapshots/prod ./snapshots/test ./artifacts/helper

  - With lambda and Lex bot name prefixes remapped A -> B, replacing a previous bundle:
      connect-diff -f ./src/prod ./artifacts/test ./artifacts/helper prod-fn- test-fn- ProdBot TestBot

Exit codes: 0 success, 1 runtime error, 2 usage error.
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, Iterable

from . import __version__
from .core.bundle import run_diff
from .core.config import load_config
from .core.errors import ConfigError, ConnectDiffError
from .core.logging_setup import build_logger
from .core.naming import check_host_encoding
from .core.reconciler import DuplicatePolicy

EXIT_OK = 0
EXIT_RUNTIME_ERROR = 1


def _summarize_counts(counts: Dict[str, int]) -> str:
    keys = ["NEW", "EXISTING", "RULES"]
    return " | ".join(f"{k}={counts.get(k, 0)}" for k in keys)


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="connect-diff",
        description=(
            "Compare two contact-center snapshots (A = source, B = target) and write a helper "
            "bundle listing new and existing resources plus id substitution rules."
        ),
    )
    p.add_argument("snapshot_a", help="Source snapshot directory")
    p.add_argument("snapshot_b", help="Target snapshot directory")
    p.add_argument("helper_dir", help="Output helper bundle directory (must not exist unless --force)")
    p.add_argument(
        "prefixes",
        nargs="*",
        metavar="PREFIX",
        help="Optional remap pairs: LAMBDA_PREFIX_A LAMBDA_PREFIX_B [LEX_BOT_PREFIX_A LEX_BOT_PREFIX_B]",
    )

    p.add_argument("-f", "--force", action="store_true", help="Replace an existing helper directory")
    p.add_argument(
        "-e",
        "--extended-ok",
        action="store_true",
        help="Continue even if the host cannot encode extended characters as UTF-8",
    )
    p.add_argument("-c", "--config", default="", help="YAML configuration file")
    p.add_argument(
        "--duplicates",
        choices=[d.value for d in DuplicatePolicy],
        default=None,
        help="Duplicate names within a category: fail (error) or keep the first occurrence (first)",
    )

    # Logging
    p.add_argument("--logs-dir", default=None, help="Logs base directory")
    p.add_argument("--console-level", default=None, help="Console log level (INFO..CRITICAL)")
    p.add_argument("--file-level", default=None, help="File log level (DEBUG..CRITICAL)")
    p.add_argument("--no-log-files", action="store_true", help="Log to the console only")

    p.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    return p


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Only flags/values actually given on the command line override file and env."""
    overrides: Dict[str, Any] = {"app": {}, "prefixes": {}, "logging": {}}
    if args.force:
        overrides["app"]["force"] = True
    if args.extended_ok:
        overrides["app"]["allow_extended_chars"] = True
    if args.duplicates:
        overrides["app"]["duplicates"] = args.duplicates

    keys = ["lambda_a", "lambda_b", "lex_bot_a", "lex_bot_b"]
    for key, value in zip(keys, args.prefixes):
        overrides["prefixes"][key] = value

    if args.logs_dir:
        overrides["logging"]["base_dir"] = args.logs_dir
    if args.console_level:
        overrides["logging"]["console_level"] = args.console_level
    if args.file_level:
        overrides["logging"]["file_level"] = args.file_level
    if args.no_log_files:
        overrides["logging"]["enabled"] = False
    return overrides


def _diff_cmd(args: argparse.Namespace) -> int:
    # 1) Config
    try:
        if args.config:
            cfg = load_config(_cli_overrides(args), files=(args.config,), require_file=True)
        else:
            cfg = load_config(_cli_overrides(args))
    except (ConfigError, OSError) as exc:
        print(f"connect-diff: error: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    # 2) Logger
    logger = build_logger(
        run_id=cfg.run_id,
        action="diff",
        base_dir=cfg.logging.base_dir,
        console_level=cfg.logging.console_level,
        file_level=cfg.logging.file_level,
        file_logging=cfg.logging.enabled,
        extra={"source": args.snapshot_a, "target": args.snapshot_b},
    )
    logger.info("Starting connect-diff %s (force=%s)", __version__, cfg.app.force)

    # 3) Run
    try:
        check_host_encoding(cfg.app.allow_extended_chars, logger=logger)
        bundle = run_diff(
            args.snapshot_a,
            args.snapshot_b,
            args.helper_dir,
            force=cfg.app.force,
            lambda_prefix_a=cfg.prefixes.lambda_a,
            lambda_prefix_b=cfg.prefixes.lambda_b,
            lex_bot_prefix_a=cfg.prefixes.lex_bot_a,
            lex_bot_prefix_b=cfg.prefixes.lex_bot_b,
            duplicates=cfg.duplicate_policy,
            separators=cfg.output.separators,
            logger=logger,
        )
    except ConnectDiffError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return exc.exit_code
    except OSError as exc:
        # no rollback: whatever was staged has been discarded, nothing is usable
        logger.error("Filesystem error: %s", exc)
        return EXIT_RUNTIME_ERROR

    summary = _summarize_counts(bundle.counts)
    logger.info("Diff summary: %s", summary)
    print(summary)
    return EXIT_OK


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    if len(args.prefixes) not in (0, 2, 4):
        parser.error("prefix remaps come in pairs: LAMBDA_A LAMBDA_B [LEX_BOT_A LEX_BOT_B]")
    return _diff_cmd(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
