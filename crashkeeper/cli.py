from __future__ import annotations

import argparse
import runpy
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from crashkeeper.core.logger import SessionLogger
from crashkeeper.core.options import LoggerOptions, load_options
from crashkeeper.utils.io_utils import save_yaml


def main(argv: Optional[list[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        _cmd_run(args)
        return
    if args.command == "init_config":
        _cmd_init_config(args)
        return

    parser.print_help()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="crashkeeper", description="Session logging and crash capture CLI")
    sub = parser.add_subparsers(dest="command")

    p_run = sub.add_parser("run", help="Run a Python script with session logging and crash capture")
    p_run.add_argument("--config", default=None, help="Path to options YAML")
    p_run.add_argument("--session_dir", default=None, help="Session log directory override")
    p_run.add_argument("--crash_dir", default=None, help="Crash log directory override")
    p_run.add_argument("--quiet", action="store_true", help="Disable console log output")
    p_run.add_argument("script", help="Script to execute as __main__")
    p_run.add_argument("script_args", nargs=argparse.REMAINDER, help="Arguments passed to the script")

    p_init = sub.add_parser("init_config", help="Write default options YAML")
    p_init.add_argument("--out", required=True, help="Output YAML path")

    return parser


def _resolve_options(args: argparse.Namespace) -> LoggerOptions:
    options = load_options(args.config) if args.config else LoggerOptions()
    overrides = {}
    if args.session_dir:
        overrides["session_logs_directory"] = Path(args.session_dir)
    if args.crash_dir:
        overrides["crash_logs_directory"] = Path(args.crash_dir)
    if args.quiet:
        overrides["console_enabled"] = False
    return replace(options, **overrides) if overrides else options


def _cmd_run(args: argparse.Namespace) -> None:
    script = Path(args.script)
    if not script.is_file():
        raise SystemExit(f"Script not found: {script}")

    options = _resolve_options(args)
    logger = SessionLogger(options)
    logger.log_info(f"Running {script}", origin="crashkeeper.run")

    saved_argv = sys.argv
    sys.argv = [str(script), *args.script_args]
    try:
        runpy.run_path(str(script), run_name="__main__")
    except (KeyboardInterrupt, SystemExit):
        logger.close()
        raise
    except Exception as exc:
        path = logger.capture_crash(exc, f"Unhandled exception in {script}")
        logger.close()
        if path is not None:
            print(f"Crash log written: {path}", file=sys.stderr)
        raise SystemExit(1) from exc
    finally:
        sys.argv = saved_argv

    logger.log_info(f"Finished {script}", origin="crashkeeper.run")
    logger.close()


def _cmd_init_config(args: argparse.Namespace) -> None:
    out = Path(args.out)
    save_yaml(LoggerOptions().to_mapping(), out)
    print(out)


if __name__ == "__main__":
    main(sys.argv[1:])
