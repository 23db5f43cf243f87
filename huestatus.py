#!/usr/bin/env python3
"""
huestatus CLI
Show build and test results on Philips Hue lights: green for success, red for failure.
"""

import click

from commands.helpers import AppContext
from commands.setup import ColouredGroup, setup_command
from commands.status import doctor_command, failure_command, success_command, validate_command

__version__ = '1.0.0'


@click.group(
    cls=ColouredGroup,
    context_settings={
        'help_option_names': ['-h', '--help'],
        'max_content_width': 120,
    }
)
@click.version_option(version=__version__, prog_name='huestatus')
@click.option('--config', '-c', 'config_file', type=click.Path(dir_okay=False),
              help='Use a custom configuration file')
@click.option('--timeout', '-t', type=click.FloatRange(1, 300), help='API timeout in seconds [default: 10]')
@click.option('--retry-attempts', type=click.IntRange(1, 10), help='Number of attempts per request [default: 3]')
@click.option('--retry-delay', type=click.FloatRange(0, 60), help='Seconds between attempts [default: 1]')
@click.option('--verbose', '-v', is_flag=True, help='Show progress details on stderr')
@click.option('--quiet', '-q', is_flag=True, help='Suppress all output except errors')
@click.pass_context
def cli(ctx, config_file, timeout, retry_attempts, retry_delay, verbose, quiet):
    """huestatus - show success or failure on your Hue lights.

Run 'setup' once to discover your bridge, pair with it and create the
status scenes, then run 'success' or 'failure' after every build.

Use 'COMMAND -h' or 'COMMAND --help' for detailed help on a specific command."""
    if verbose and quiet:
        raise click.UsageError("--verbose and --quiet cannot be used together")
    ctx.obj = AppContext(
        config_file=config_file,
        timeout=timeout,
        retry_attempts=retry_attempts,
        retry_delay=retry_delay,
        verbose=verbose,
        quiet=quiet,
    )


cli.add_command(success_command, name='success')
cli.add_command(failure_command, name='failure')
cli.add_command(setup_command, name='setup')
cli.add_command(validate_command, name='validate')
cli.add_command(doctor_command, name='doctor')


if __name__ == '__main__':
    cli()
