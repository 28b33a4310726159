"""Trellis CLI - Main Entry Point.

Commands:
    serve   - Bootstrap an application and serve it with uvicorn
    routes  - Print the route table of an application
"""

import importlib
import sys
from typing import Any, Optional

import click

from . import __version__
from .application import Application, TrellisFactory
from .config import ConfigError, ConfigLoader, AppConfig
from .modules.errors import BootstrapError


def _load_target(target: str) -> Any:
    """Import ``package.module:Attr``."""
    if ":" not in target:
        raise click.BadParameter(f"expected 'module:attribute', got '{target}'", param_hint="TARGET")
    module_name, attr = target.split(":", 1)
    sys.path.insert(0, ".")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"cannot import '{module_name}': {e}", param_hint="TARGET")
    try:
        return getattr(module, attr)
    except AttributeError:
        raise click.BadParameter(f"'{module_name}' has no attribute '{attr}'", param_hint="TARGET")


def _build_app(target: str, config_path: Optional[str]) -> Application:
    """Accept either a bootstrapped ``Application`` or a root module."""
    loaded = _load_target(target)
    if isinstance(loaded, Application):
        return loaded

    try:
        paths = [config_path] if config_path else None
        config = ConfigLoader.load(paths=paths, env_file=".env").build(AppConfig)
    except ConfigError as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    try:
        return TrellisFactory.create(loaded, config)
    except BootstrapError as e:
        raise click.ClickException(e.format_error())


@click.group()
@click.version_option(version=__version__, prog_name="trellis")
def main():
    """Trellis application tooling."""


@main.command("serve")
@click.argument("target")
@click.option("--host", type=str, default=None, help="Bind host (default: config server.host)")
@click.option("--port", type=int, default=None, help="Bind port (default: config server.port)")
@click.option("--config", "config_path", type=click.Path(), default=None, help="YAML/JSON config file")
def serve(target: str, host: Optional[str], port: Optional[int], config_path: Optional[str]):
    """
    Serve TARGET (``module:AppModule`` or ``module:app``).

    Examples:
      trellis serve app.main:AppModule --port 8080
    """
    app = _build_app(target, config_path)
    app.listen(port=port, host=host)


@main.command("routes")
@click.argument("target")
@click.option("--config", "config_path", type=click.Path(), default=None, help="YAML/JSON config file")
def routes(target: str, config_path: Optional[str]):
    """Print the route table of TARGET."""
    app = _build_app(target, config_path)
    table = app.routes()
    if not table:
        click.echo("No routes registered")
        return

    width = max(len(r["method"]) for r in table)
    path_width = max(len(r["path"]) for r in table)
    for r in table:
        click.echo(f"{r['method'].ljust(width)}  {r['path'].ljust(path_width)}  {r['handler']}")


if __name__ == "__main__":
    main()
