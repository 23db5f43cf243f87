"""
Status and diagnostic commands.

Includes success/failure (the hot path run after every build), validate
and doctor.
"""

import click

from commands.helpers import AppContext, handle_errors, load_configuration
from core.bridge import BridgeClient
from core.capabilities import CapabilityResolver
from core.config import load_state, save_state
from core.errors import HueStatusError, SceneNotFound, format_error
from core.orchestrator import apply_status, build_transport
from core.scenes import SceneEngine
from models.utils import truncate_for_display


def show_status(app: AppContext, pattern: str):
    """Recall the scene for a pattern, persisting refreshed validation times."""
    state = load_configuration(app)
    apply_status(pattern, state, verbose=app.verbose)
    if state.dirty:
        save_state(state, app.path)
    if app.verbose:
        click.secho(f"✓ {pattern.capitalize()} status displayed", fg='green', err=True)


@click.command()
@click.pass_obj
@handle_errors
def success_command(app: AppContext):
    """Show success status (green lights).

    \b
    Example:
      make test && huestatus success || huestatus failure
    """
    show_status(app, 'success')


@click.command()
@click.pass_obj
@handle_errors
def failure_command(app: AppContext):
    """Show failure status (red lights)."""
    show_status(app, 'failure')


@click.command()
@click.pass_obj
@handle_errors
def validate_command(app: AppContext):
    """Check the configuration, bridge connection and scenes."""
    state = load_configuration(app)
    app.echo("✓ Configuration is valid", fg='green')

    with build_transport(state.settings, app.verbose) as transport:
        client = BridgeClient(state.address, transport, state.credential)
        bridge_id = client.probe()
        app.echo(f"✓ Bridge {bridge_id} reachable at {state.address}", fg='green')

        capabilities = CapabilityResolver(client, app.verbose).resolve()
        app.echo(f"✓ Credential accepted ({len(capabilities.colour_lights)} colour light(s), "
                 f"{capabilities.limits.available_scenes} free scene slot(s))", fg='green')

        engine = SceneEngine(client, app.verbose)
        missing = []
        for pattern, handle in state.patterns.items():
            if engine.validate_pattern(handle):
                app.echo(f"✓ Scene '{handle.name}' ({pattern}) exists", fg='green')
            else:
                click.secho(f"✗ Scene '{handle.name}' ({pattern}) is missing", fg='red', err=True)
                missing.append(handle.name)
    state.dirty = True
    save_state(state, app.path)

    if missing:
        raise SceneNotFound(f"{len(missing)} scene(s) missing from the bridge: {', '.join(missing)}")
    app.echo("✓ All validations passed", fg='green', bold=True)


def _check(label: str, func):
    """Run one diagnostic step, printing ✓ or ✗; returns the result or None."""
    try:
        result = func()
    except HueStatusError as e:
        click.secho(f"✗ {label}: {format_error(e)}", fg='red')
        if e.hint:
            click.echo(f"    {e.hint}")
        return None
    click.secho(f"✓ {label}", fg='green')
    return result if result is not None else True


@click.command()
@click.pass_obj
def doctor_command(app: AppContext):
    """Run diagnostic checks and suggest fixes."""
    click.secho("Running diagnostics...", fg='cyan', bold=True)
    click.echo()

    path = _check("Configuration path", lambda: app.path)
    if path is None:
        return
    if not path.exists():
        click.secho(f"✗ No configuration at {truncate_for_display(path)}", fg='red')
        click.echo("    Run 'huestatus setup' to configure.")
        return
    click.secho(f"✓ Configuration file found ({truncate_for_display(path)})", fg='green')

    state = _check("Configuration loads and validates", lambda: load_state(path))
    if state is None:
        return
    state.settings = app.apply_overrides(state.settings)

    with build_transport(state.settings, app.verbose) as transport:
        if _check_bridge(BridgeClient(state.address, transport, state.credential), state):
            click.echo()
            click.secho("Diagnostics finished.", fg='cyan')


def _check_bridge(client: BridgeClient, state) -> bool:
    """Check reachability, the credential and each scene; False stops the checklist."""
    if _check(f"Bridge reachable at {state.address}", client.probe) is None:
        return False
    capabilities = _check("Credential accepted", CapabilityResolver(client).resolve)
    if capabilities is None:
        return False
    if not capabilities.colour_lights:
        click.secho("✗ No reachable colour lights", fg='red')

    engine = SceneEngine(client)

    def lookup(handle):
        if not engine.validate_pattern(handle):
            raise SceneNotFound(f"Scene '{handle.name}' ({handle.id}) no longer exists")

    for pattern, handle in state.patterns.items():
        _check(f"Scene '{handle.name}' ({pattern}) exists", lambda: lookup(handle))
    return True
