"""
Launch the interactive Streamlit app.

Usage:
    sexdeg app [--config analysis.yaml] [--port 8501] [-- extra streamlit args]

The config file, when given, is passed to the app through the
SEXDEG_CONFIG environment variable and supplies its initial thresholds and
workflow parameters.
"""

from __future__ import annotations

import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path

from sexdeg.cli.config import CONFIG_ENV_VAR, config_from_dict, load_config, validate_config

logger = logging.getLogger(__name__)

APP_PATH = Path(__file__).resolve().parent.parent / "app.py"


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the app subcommand."""
    parser = subparsers.add_parser(
        "app",
        help="Launch the interactive Streamlit app",
        description="Start the Streamlit UI for uploading data and exploring results",
    )
    parser.add_argument("--config", "-c", type=Path, default=None,
                        help="YAML/JSON config with initial parameters")
    parser.add_argument("--port", type=int, default=None, help="Server port (default: Streamlit's 8501)")
    parser.add_argument("streamlit_args", nargs=argparse.REMAINDER,
                        help="Extra arguments passed to `streamlit run` (after --)")
    parser.set_defaults(func=run_app)


def build_command(args: argparse.Namespace) -> list[str]:
    """The `streamlit run` command line for the app."""
    command = [sys.executable, "-m", "streamlit", "run", str(APP_PATH)]
    if args.port is not None:
        command += ["--server.port", str(args.port)]
    extra = [a for a in (args.streamlit_args or []) if a != "--"]
    return command + extra


def run_app(args: argparse.Namespace) -> int:
    """Execute the app command."""
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    env = os.environ.copy()
    if args.config:
        try:
            validate_config(config_from_dict(load_config(args.config)))
        except (FileNotFoundError, ValueError) as e:
            logger.error(f"Config error: {e}")
            return 1
        env[CONFIG_ENV_VAR] = str(Path(args.config).resolve())

    command = build_command(args)
    logger.info(f"Starting: {' '.join(command)}")
    return subprocess.call(command, env=env)
