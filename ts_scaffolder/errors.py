"""Error taxonomy for the build driver.

Every fatal condition maps to its own stable process exit code so that
scripts wrapping ``ts-scaffolder-scripts`` can tell failures apart.
"""

from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_OK = 0
EXIT_ENV_FILE = 1
EXIT_SETTINGS_MISSING = 2
EXIT_UNCAUGHT = 3
EXIT_WATCH_FATAL = 4
EXIT_SETTINGS_MALFORMED = 5
EXIT_CONFIG_INVALID = 6
EXIT_BUILD_FAILED = 7
EXIT_CLEANUP_FAILED = 8
EXIT_INTERRUPTED = 130


class BuildDriverError(Exception):
    """Base class for fatal build driver errors."""

    exit_code: int = EXIT_UNCAUGHT


class ConfigLoadError(BuildDriverError):
    """The local ``.env`` override file exists but could not be read."""

    exit_code = EXIT_ENV_FILE


class ConfigMissingError(BuildDriverError):
    """The project settings file does not exist."""

    exit_code = EXIT_SETTINGS_MISSING


class SettingsParseError(BuildDriverError):
    """The project settings file exists but is not a JSON object."""

    exit_code = EXIT_SETTINGS_MALFORMED


class ConfigValidationError(BuildDriverError):
    """A merged configuration value has the wrong type."""

    exit_code = EXIT_CONFIG_INVALID

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")


class BuildStageError(BuildDriverError):
    """A batch build failed inside the bundling engine."""

    exit_code = EXIT_BUILD_FAILED

    def __init__(self, message: str, stage: str | None = None) -> None:
        self.stage = stage
        prefix = f"[{stage}] " if stage else ""
        super().__init__(f"{prefix}{message}")


class WatchFatalError(BuildDriverError):
    """The watch session itself failed and cannot continue."""

    exit_code = EXIT_WATCH_FATAL


class CleanupError(BuildDriverError):
    """The output folder could not be cleared before a build."""

    exit_code = EXIT_CLEANUP_FAILED


class WatchCycleError(Exception):
    """A single watch-mode rebuild failed.

    Recoverable: the executor reports it and the session keeps running. It
    never reaches the exit-code mapping.
    """

    def __init__(self, message: str, detail: Any = None) -> None:
        self.detail = detail
        super().__init__(message)
