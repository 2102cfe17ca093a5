"""Command line entry point for the whisper to InfluxDB migration."""

from __future__ import annotations

import argparse
import logging
import os
import time
from pathlib import Path
from typing import Optional, Sequence

import yaml

from .admin import Administrator
from .config import default_config, load_config, load_env_file, save_config
from .errors import MigrationError
from .pipeline import migrate

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_WITH_ERRORS = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="whisper-migrate",
        description="Read graphite whisper files and write their points to InfluxDB over HTTP.",
    )
    parser.add_argument("-c", "--config", type=Path, required=True, help="Path to the YAML configuration file")
    parser.add_argument("-w", "--whisper-dir", type=Path, help="Root of the whisper database")
    parser.add_argument("--env-file", type=Path, help="Optional .env file with WSP_MIGRATE_* overrides")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a template configuration to --config and exit",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.DEBUG if args.debug else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    if args.init_config:
        if args.config.exists():
            logger.error("%s already exists; refusing to overwrite it.", args.config)
            return EXIT_FATAL
        save_config(default_config(), args.config)
        logger.info("Template configuration written to %s", args.config)
        return EXIT_OK

    if args.whisper_dir is None:
        logger.error("Please provide the path to the whisper database (--whisper-dir).")
        return EXIT_FATAL

    env = dict(os.environ)
    try:
        if args.env_file is not None:
            env.update(load_env_file(args.env_file))
        config = load_config(args.config, env=env)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return EXIT_FATAL

    whisper_dir = str(args.whisper_dir)
    started = time.monotonic()
    admin = Administrator(config.migration, timeout_s=config.influx.timeout_s)
    try:
        policies = admin.prepare(whisper_dir)
        summary = migrate(config, whisper_dir, retention_policies=policies)
    except (MigrationError, OSError) as exc:
        logger.error("Migration aborted: %s", exc)
        return EXIT_FATAL
    except KeyboardInterrupt:
        logger.info("Migration interrupted by user.")
        return EXIT_FATAL
    finally:
        admin.close()

    print(f"Migration duration {time.monotonic() - started:.3f}s")
    print(
        f"Files: {summary.files_discovered} discovered, {summary.files_skipped} skipped, "
        f"{summary.files_failed} failed. Points: {summary.points_extracted} extracted, "
        f"{summary.points_written} written. Errors: {len(summary.errors)}"
    )
    return EXIT_WITH_ERRORS if summary.errors else EXIT_OK
