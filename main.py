"""
Entry point for the WordPress to Storyblok migration tool.
"""

import argparse
import logging
import os
import sys

from wp2storyblok.migration_tool import StoryblokMigrationTool
from wp2storyblok.utils.errors import MigrationError

CONFIG_FILE = "config/migration_config.json"
INPUT_DIR = "exported-data"
OUTPUT_DIR = "mapped-data"
LOG_FILE = "reports/migration/migration.log"


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Transform a WordPress REST export into Storyblok stories and datasources."
    )
    parser.add_argument("--config", default=CONFIG_FILE, help="Path to the migration config JSON")
    parser.add_argument("--input", default=INPUT_DIR, help="Directory holding the WordPress export")
    parser.add_argument("--output", default=None, help="Output directory (overrides output.dir)")
    parser.add_argument("--log-file", default=LOG_FILE, help="Where to write the run log")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    return parser.parse_args(argv)


def setup_logging(log_file=LOG_FILE, level=logging.INFO):
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    formatter = logging.Formatter("[%(levelname)s] %(message)s")
    root = logging.getLogger()
    root.setLevel(level)
    for handler in (logging.StreamHandler(), logging.FileHandler(log_file, encoding="utf-8")):
        handler.setFormatter(formatter)
        root.addHandler(handler)


def main(argv=None):
    """
    Main function to run the WordPress to Storyblok migration tool.
    """
    args = parse_args(argv)
    setup_logging(args.log_file, logging.DEBUG if args.verbose else logging.INFO)
    tool = StoryblokMigrationTool(config_file=args.config, output_dir=args.output)
    tool.log_message("Starting WordPress to Storyblok migration.")

    if not os.path.isdir(args.input):
        tool.log_message(f"No WordPress export found in '{args.input}' directory.", level="ERROR")
        return 1

    try:
        summary = tool.run(args.input)
    except MigrationError as e:
        tool.log_message(f"Migration failed: {e}", level="ERROR")
        return 1

    tool.log_message(f"Migration process finished. {summary.stories} stories written to '{tool.output_dir}'.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
