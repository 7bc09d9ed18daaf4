import logging
import os

from ..models.config import MigrationConfig
from .errors import PreFlightCheckError

logger = logging.getLogger(__name__)


def run_pre_flight_checks(config: MigrationConfig, input_dir: str = None, output_dir: str = None):
    """
    Verifies that the environment is ready for a migration run.

    Args:
        config: The validated migration configuration.
        input_dir: Export directory, checked when the run loads from disk.
        output_dir: Output directory, created if missing and checked for
            write access.

    Raises:
        PreFlightCheckError: If any check fails.
    """
    logger.info("Running pre-flight checks...")

    # Check 1: content types to migrate
    if not config.content_types:
        raise PreFlightCheckError("No content types configured; nothing to migrate.")

    # Check 2: locales referenced by the i18n section
    locales = config.i18n.locales
    if config.i18n.default_language not in locales:
        raise PreFlightCheckError(
            f"Default language '{config.i18n.default_language}' is not one of the configured languages."
        )
    if config.i18n.strategy == "folder_level":
        prefixes = [config.i18n.path_prefix(locale) for locale in locales]
        duplicates = sorted({p for p in prefixes if p and prefixes.count(p) > 1})
        if duplicates:
            raise PreFlightCheckError(f"Languages share the same path prefix: {', '.join(duplicates)}")

    # Check 3: input directory
    if input_dir is not None:
        if not os.path.isdir(input_dir):
            raise PreFlightCheckError(f"Input directory not found: {input_dir}")
        if config.input.structure == "language_folders":
            present = [locale for locale in locales if os.path.isdir(os.path.join(input_dir, locale))]
            if not present:
                raise PreFlightCheckError(
                    f"None of the language folders ({', '.join(locales)}) exist under {input_dir}."
                )

    # Check 4: output directory is writable
    if output_dir is not None:
        try:
            os.makedirs(output_dir, exist_ok=True)
        except OSError as e:
            raise PreFlightCheckError(f"Cannot create output directory {output_dir}: {e}")
        if not os.access(output_dir, os.W_OK):
            raise PreFlightCheckError(f"Output directory is not writable: {output_dir}")

    logger.info("Pre-flight checks passed successfully.")
