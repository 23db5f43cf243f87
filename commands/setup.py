"""
Setup command for huestatus.

Contains the custom Click group class for coloured help output and typo
suggestions, and the interactive setup flow that discovers the bridge,
pairs with it and creates the status scenes.
"""

import click

from commands.helpers import AppContext, handle_errors
from core.auth import LINK_BUTTON_WINDOW
from core.config import apply_env_overrides, backup_config, save_state, load_state
from core.errors import ConfigError, HueStatusError
from core.orchestrator import apply_status, build_transport, run_setup, same_bridge
from core.bridge import BridgeClient
from core.scenes import SceneEngine
from models.types import PATTERN_NAMES, LightRef, PersistedState, Settings
from models.utils import find_similar_strings, parse_light_selection, truncate_for_display


class ColouredGroup(click.Group):
    """Custom Group class that adds colour to help output and suggests similar commands."""

    def resolve_command(self, ctx, args):
        """Resolve command with suggestions for typos."""
        try:
            return super().resolve_command(ctx, args)
        except click.UsageError as e:
            if 'No such command' in str(e):
                cmd_name = args[0] if args else ''
                suggestions = self._get_suggestions(ctx, cmd_name)

                if suggestions:
                    error_msg = f"No such command '{cmd_name}'.\n\n"
                    error_msg += click.style("Did you mean one of these?\n", fg='yellow')
                    for suggestion in suggestions:
                        error_msg += click.style(f"  • {suggestion}\n", fg='green')
                    raise click.UsageError(error_msg, ctx) from e
            raise

    def _get_suggestions(self, ctx, cmd_name, max_suggestions=3):
        """Get command suggestions based on similarity."""
        if not cmd_name:
            return []

        visible = []
        for command in self.list_commands(ctx):
            cmd_obj = self.get_command(ctx, command)
            if cmd_obj and not cmd_obj.hidden:
                visible.append(command)

        return find_similar_strings(cmd_name, visible, limit=max_suggestions)

    def format_help(self, ctx, formatter):
        """Format help with colours."""
        self.format_usage(ctx, formatter)
        self.format_help_text(ctx, formatter)
        self.format_options(ctx, formatter)
        self.format_commands(ctx, formatter)

    def format_usage(self, ctx, formatter):
        """Format the usage line with colour."""
        formatter.write_paragraph()
        formatter.write_text(
            click.style('Usage: ', fg='cyan', bold=True) +
            click.style(f'{ctx.command_path} [OPTIONS] COMMAND [ARGS]...', fg='white')
        )

    def format_help_text(self, ctx, formatter):
        """Format the help text with colour."""
        if self.help:
            formatter.write_paragraph()
            for line in self.help.split('\n'):
                if line.strip():
                    formatter.write_text(click.style(line, fg='white'))
                else:
                    formatter.write_paragraph()

    def format_options(self, ctx, formatter):
        """Format options with colour."""
        opts = []
        for param in self.get_params(ctx):
            rv = param.get_help_record(ctx)
            if rv is not None:
                opts.append(rv)

        if opts:
            formatter.write_paragraph()
            formatter.write_text(click.style('Options:', fg='yellow', bold=True))
            max_len = max(len(opt_name) for opt_name, _ in opts)
            with formatter.indentation():
                for opt_name, opt_help in opts:
                    formatter.write_text(
                        click.style(opt_name.ljust(max_len), fg='green') + '  ' +
                        click.style(opt_help, fg='white')
                    )

    def format_commands(self, ctx, formatter):
        """Format commands with colour."""
        commands = []
        for subcommand in self.list_commands(ctx):
            cmd = self.get_command(ctx, subcommand)
            if cmd is None or cmd.hidden:
                continue
            commands.append((subcommand, cmd.get_short_help_str(limit=500)))

        if commands:
            formatter.write_paragraph()
            formatter.write_text(click.style('Commands:', fg='yellow', bold=True))
            max_len = max(max(len(cmd[0]) for cmd in commands), 10)
            with formatter.indentation():
                for subcommand, help_text in commands:
                    formatter.write_text(
                        click.style(subcommand.ljust(max_len), fg='green') + '  ' +
                        click.style(help_text, fg='white', dim=True)
                    )


class ClickInputProvider:
    """Collects the human input setup needs through click prompts."""

    def __init__(self, app: AppContext, interactive: bool = True):
        self.app = app
        self.interactive = interactive

    def wait_for_button(self):
        click.echo()
        click.secho("╔═══════════════════════════════════════════════════════╗", fg='yellow', bold=True)
        click.secho("║  Press the LINK BUTTON on your Hue Bridge             ║", fg='yellow', bold=True)
        click.secho(f"║  You have {LINK_BUTTON_WINDOW:.0f} seconds after pressing the button        ║",
                    fg='yellow', bold=True)
        click.secho("╚═══════════════════════════════════════════════════════╝", fg='yellow', bold=True)
        click.echo()
        if self.interactive:
            click.pause("Press Enter once you have pressed the button...")
        click.echo("Waiting for the bridge to confirm...")

    def manual_address(self) -> str | None:
        if not self.interactive:
            return None
        click.echo()
        click.echo("You can find your bridge IP by:")
        click.echo("  • Checking your router's DHCP client list")
        click.echo("  • Looking for a device named 'Philips hue'")
        click.echo("  • Using the Hue app: Settings → Hue Bridges → (i) icon")
        click.echo()
        if not click.confirm("Enter bridge IP manually?", default=True):
            return None
        return click.prompt("Bridge IP address", type=str)

    def select_lights(self, lights: list[LightRef]) -> list[LightRef]:
        if not self.interactive:
            return lights

        click.echo()
        click.secho(f"Found {len(lights)} colour light{'s' if len(lights) != 1 else ''}:", fg='cyan', bold=True)
        for light in lights:
            click.echo(f"  {click.style(light.id.rjust(3), fg='green', bold=True)}. {light.name}")
        click.echo()

        by_id = {light.id: light for light in lights}
        while True:
            choice = click.prompt("Lights to use for status (comma separated ids, or 'all')",
                                  type=str, default='all')
            try:
                return [by_id[light_id] for light_id in parse_light_selection(choice, list(by_id))]
            except ValueError as e:
                click.secho(f"✗ {e}", fg='red', err=True)

    def report(self, message: str):
        self.app.echo(message)


def _load_previous(path) -> PersistedState | None:
    try:
        return load_state(path)
    except ConfigError as e:
        click.secho(f"⚠ Ignoring existing configuration: {e.message}", fg='yellow', err=True)
        return None


def _remove_replaced_scenes(previous: PersistedState, state: PersistedState, app: AppContext):
    """Delete scenes from the old configuration that setup replaced.

    Scene ids are only meaningful on the bridge that issued them, so nothing
    is deleted when setup paired with a different bridge.
    """
    if not same_bridge(previous, state.address, state.bridge_id):
        app.echo(f"Old scenes left in place on bridge {previous.address}")
        return

    current_ids = {handle.id for handle in state.patterns.values()}
    with build_transport(state.settings, app.verbose) as transport:
        engine = SceneEngine(BridgeClient(state.address, transport, state.credential), app.verbose)
        for handle in previous.patterns.values():
            if handle.id in current_ids or not handle.auto_created:
                continue
            try:
                if engine.delete_pattern(handle):
                    app.echo(f"Removed old scene '{handle.name}' ({handle.id})")
            except HueStatusError as e:
                click.secho(f"⚠ Could not remove old scene '{handle.name}': {e.message}", fg='yellow', err=True)


@click.command()
@click.option('--force', '-f', is_flag=True, help='Overwrite the existing configuration and recreate scenes')
@click.option('--non-interactive', is_flag=True, help='Run without prompts (uses every colour light)')
@click.option('--test', 'test_scenes', is_flag=True, help='Show both scenes once setup has finished')
@click.option('--bridge-ip', '-i', help='Bridge IP address (skips automatic discovery)')
@click.pass_obj
@handle_errors
def setup_command(app: AppContext, force: bool, non_interactive: bool, test_scenes: bool, bridge_ip: str | None):
    """Discover the bridge, pair with it and create the status scenes.

    \b
    Examples:
      huestatus setup
      huestatus setup --force
      huestatus setup --bridge-ip 192.168.1.50 --non-interactive
    """
    path = app.path

    app.echo()
    app.echo("╔══════════════════════════════════════════════════════════╗", fg='cyan', bold=True)
    app.echo("║              huestatus - Bridge Setup                    ║", fg='cyan', bold=True)
    app.echo("╚══════════════════════════════════════════════════════════╝", fg='cyan', bold=True)
    app.echo()

    previous = _load_previous(path) if path.exists() else None
    if previous is not None:
        if force:
            backup = backup_config(path)
            app.echo(f"Existing configuration backed up to {truncate_for_display(backup)}")
        else:
            app.echo(f"✓ Existing configuration found for bridge {previous.address}")
            app.echo("Scenes that still exist will be reused. Use --force to recreate them.")
        app.echo()

    settings = app.apply_overrides(previous.settings if previous else apply_env_overrides(Settings()))
    provider = ClickInputProvider(app, interactive=not non_interactive)

    state = run_setup(
        provider,
        settings=settings,
        existing=None if force else previous,
        bridge_ip=bridge_ip,
        verbose=app.verbose,
    )
    saved_to = save_state(state, path)

    if force and previous is not None:
        _remove_replaced_scenes(previous, state, app)

    app.echo()
    app.echo("✓ Setup complete!", fg='green', bold=True)
    app.echo(f"  Bridge:  {state.address}")
    for pattern, handle in state.patterns.items():
        app.echo(f"  {pattern.capitalize() + ':':8} {handle.name} ({handle.id})")
    app.echo(f"  Config:  {truncate_for_display(saved_to)}")
    app.echo()

    if test_scenes:
        for pattern in PATTERN_NAMES:
            apply_status(pattern, state, verbose=app.verbose)
            app.echo(f"✓ {pattern.capitalize()} scene displayed", fg='green')
            if pattern == 'success' and not non_interactive:
                click.pause("Press Enter to show the failure scene...")

    app.echo("Try it:  huestatus success  /  huestatus failure")

