"""
cag Management Commands

Reserved words handled by the wrapper itself instead of a backend:
- cag backends: availability, path, version and credential state
- cag config show: the resolved configuration
- cag config path: the configuration file in use
- cag config set-credential BACKEND: store a credential in the keyring
- cag config delete-credential BACKEND: remove a keyring credential
"""

import json
import os

import keyring.errors
import typer
from rich.prompt import Prompt

from ..backends.detector import AgentDetector, AgentInfo
from ..backends.factory import AdapterFactory
from ..core.router import ALL_SELECTOR
from ..errors import CagError, UnknownBackendError
from ..settings.models import BackendId, ResolvedConfig
from ..settings.resolver import resolve
from ..settings.storage import SettingsStorage, resolve_config_path
from .output import get_output

MANAGEMENT_COMMANDS = ("backends", "config")

manage_app = typer.Typer(
    name="cag",
    help="cag management commands",
    add_completion=False,
    no_args_is_help=True,
)

config_app = typer.Typer(
    name="config",
    help="Inspect configuration and manage credentials",
    no_args_is_help=True,
)
manage_app.add_typer(config_app, name="config")


def _config_path(ctx: typer.Context) -> str | None:
    return (ctx.obj or {}).get("config_path")


def _parse_backend(name: str) -> BackendId:
    backend_id = BackendId.parse(name)
    if backend_id is None:
        raise UnknownBackendError(name, BackendId.names())
    return backend_id


def _credential_state(backend_id: BackendId, config: ResolvedConfig) -> str:
    """Describe where a backend's credential would come from, without reading it."""
    settings = config.settings_for(backend_id)
    if settings.credential:
        return settings.credential
    variable = AdapterFactory.get_adapter_class(backend_id).credential_env
    env = config.env or os.environ
    if env.get(variable):
        return f"{variable} set"
    if settings.require_credential:
        return f"{variable} missing"
    return "-"


@manage_app.command()
def backends(
    ctx: typer.Context,
    versions: bool = typer.Option(True, "--versions/--no-versions", help="Probe backend versions"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Show which backends are available.

    Examples:
        cag backends
        cag backends --no-versions --json
    """
    config = resolve(config_path=_config_path(ctx))
    storage = SettingsStorage(resolve_config_path(_config_path(ctx), config.env))
    detector = AgentDetector(check_versions=versions)

    infos: list[AgentInfo] = []
    for backend_id in AdapterFactory.list_backends():
        try:
            adapter = AdapterFactory.create(backend_id, config, storage=storage)
        except CagError as e:
            infos.append(AgentInfo(name=backend_id.value, available=False, error=e.message))
            continue
        infos.append(detector.detect(adapter))

    credentials = {b.value: _credential_state(b, config) for b in AdapterFactory.list_backends()}
    output = get_output()

    if as_json:
        data = [dict(info.to_dict(), credential=credentials.get(info.name)) for info in infos]
        output.console.out(json.dumps(data, indent=2), highlight=False)
    else:
        output.backends_table(infos, credentials)
        default = config.default_backend.value if config.default_backend else "(none)"
        output.print(f"Default backend: [cyan]{default}[/cyan]  |  fan-out: cag {ALL_SELECTOR} ...")

    if not any(info.available for info in infos):
        raise typer.Exit(1)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show the resolved configuration (credential values are never shown)."""
    config = resolve(config_path=_config_path(ctx))
    output = get_output()

    if as_json:
        output.console.out(json.dumps(config.to_dict(), indent=2), highlight=False)
        return

    source = str(config.config_path) if config.config_path else "built-in defaults"
    output.config_display(config.to_dict(), source=source)


@config_app.command("path")
def config_path(ctx: typer.Context):
    """Print the configuration file path in use."""
    path = resolve_config_path(_config_path(ctx), os.environ)
    output = get_output()
    output.console.out(str(path), highlight=False)
    if not path.is_file():
        output.print_warning(f"{path} does not exist; built-in defaults apply")


@config_app.command("set-credential")
def set_credential(
    ctx: typer.Context,
    backend: str = typer.Argument(..., help="Backend name"),
    name: str | None = typer.Option(None, "--name", help="Keyring entry name (defaults to the backend)"),
):
    """
    Store a backend credential in the system keyring.

    Reference it from the configuration with `credential: keyring`.
    """
    backend_id = _parse_backend(backend)
    key_name = name or backend_id.value
    output = get_output()

    secret = Prompt.ask(f"Credential for {backend_id.value}", password=True)
    if not secret:
        output.print_error("No credential entered")
        raise typer.Exit(1)

    storage = SettingsStorage(resolve_config_path(_config_path(ctx), os.environ))
    try:
        storage.set_credential(key_name, secret)
    except keyring.errors.KeyringError as e:
        output.print_error(f"Keyring unavailable: {e}")
        raise typer.Exit(1)

    output.print_success(f"Credential stored in keyring as {SettingsStorage.KEYRING_SERVICE}/{key_name}")
    reference = "keyring" if key_name == backend_id.value else f"keyring:{key_name}"
    output.print_info(f"Use it with: backends.{backend_id.value}.credential: {reference}")


@config_app.command("delete-credential")
def delete_credential(
    ctx: typer.Context,
    backend: str = typer.Argument(..., help="Backend name"),
    name: str | None = typer.Option(None, "--name", help="Keyring entry name (defaults to the backend)"),
):
    """Remove a backend credential from the system keyring."""
    backend_id = _parse_backend(backend)
    key_name = name or backend_id.value
    output = get_output()

    storage = SettingsStorage(resolve_config_path(_config_path(ctx), os.environ))
    if storage.delete_credential(key_name):
        output.print_success(f"Credential {SettingsStorage.KEYRING_SERVICE}/{key_name} deleted")
    else:
        output.print_warning(f"No credential stored as {SettingsStorage.KEYRING_SERVICE}/{key_name}")
        raise typer.Exit(1)
