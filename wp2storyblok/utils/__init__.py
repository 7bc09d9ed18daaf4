"""
Utility helpers used by the migration tool.

This subpackage exposes the error hierarchy, the run event report and
redirect map generation.
"""

from .errors import EVENTS, ConfigurationError, InputError, MigrationError, PreFlightCheckError, RunReport
from .redirects import generate_redirects_csv

__all__ = [
    "EVENTS",
    "ConfigurationError",
    "InputError",
    "MigrationError",
    "PreFlightCheckError",
    "RunReport",
    "generate_redirects_csv",
]
