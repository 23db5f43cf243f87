"""
Helper functions shared by the command modules.

- AppContext: global options collected by the top-level group
- handle_errors: turn HueStatusError into a coloured message and exit code
- load_configuration: load the persisted state with CLI overrides applied
"""

import functools
from dataclasses import dataclass, replace
from pathlib import Path

import click

from core.config import config_path, env_flag, ENV_QUIET, ENV_VERBOSE, load_state
from core.errors import HueStatusError, format_error
from models.types import PersistedState, Settings


@dataclass
class AppContext:
    """Global options passed to every command through ctx.obj."""
    config_file: Path | None = None
    timeout: float | None = None
    retry_attempts: int | None = None
    retry_delay: float | None = None
    verbose: bool = False
    quiet: bool = False

    def __post_init__(self):
        self.verbose = self.verbose or env_flag(ENV_VERBOSE)
        self.quiet = self.quiet or env_flag(ENV_QUIET)
        if self.verbose and self.quiet:
            self.quiet = False

    @property
    def path(self) -> Path:
        return config_path(self.config_file)

    def apply_overrides(self, settings: Settings) -> Settings:
        """Command line options take precedence over file and environment values."""
        overrides = {
            'timeout': self.timeout,
            'retry_attempts': self.retry_attempts,
            'retry_delay': self.retry_delay,
        }
        overrides = {key: value for key, value in overrides.items() if value is not None}
        return replace(settings, **overrides) if overrides else settings

    def echo(self, message: str = '', **styles):
        """Print unless --quiet was given."""
        if not self.quiet:
            click.secho(message, **styles)


def show_error(error: HueStatusError):
    """Print an error and its remediation hint to stderr."""
    click.secho(f"✗ {format_error(error)}", fg='red', bold=True, err=True)
    if error.hint:
        click.secho(f"💡 {error.hint}", fg='yellow', err=True)


def handle_errors(func):
    """Exit with the error's exit code instead of a traceback."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except HueStatusError as e:
            show_error(e)
            click.get_current_context().exit(e.exit_code)
    return wrapper


def load_configuration(app: AppContext) -> PersistedState:
    """Load the persisted state and apply command line overrides."""
    state = load_state(app.path)
    state.settings = app.apply_overrides(state.settings)
    return state
