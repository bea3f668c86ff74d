"""Bridge CLI (serve, devices)"""

import asyncio
import json
import signal
from typing import Optional

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from ..config import BridgeConfig, load_config
from ..logging import setup_logging

console = Console()
app = typer.Typer(help="Animatronics device-presence and command bridge", no_args_is_help=True)


def _load(config_path: Optional[str]) -> BridgeConfig:
    load_dotenv()
    try:
        return load_config(config_path) if config_path else load_config()
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red]\n{e}")
        raise typer.Exit(2)


async def _run_gateway(config: BridgeConfig) -> None:
    from ..gateway.server import GatewayServer

    gateway = GatewayServer(config)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(gateway.stop()))
        except NotImplementedError:
            # Windows event loops
            pass
    await gateway.serve_forever()


@app.command("serve")
def serve(
    port: Optional[int] = typer.Option(None, "--port", "-p", help="HTTP/WebSocket port (overrides PORT)"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a JSON5 config file"),
    log_level: str = typer.Option("INFO", "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    plain_logs: bool = typer.Option(False, "--plain-logs", help="Plain timestamped log lines"),
):
    """Run the gateway: MQTT bridge, REST API and live channel"""
    config = _load(config_path)
    if port is not None:
        config.http.port = port

    try:
        setup_logging(level=log_level, format_type="plain" if plain_logs else "colored")
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)

    console.print(
        f"[cyan]Starting bridge[/cyan] on port {config.http.port}, "
        f"broker {config.mqtt.url}, {len(config.devices)} devices"
    )
    try:
        asyncio.run(_run_gateway(config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Bridge stopped[/yellow]")
    except OSError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@app.command("devices")
def devices(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a JSON5 config file"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
):
    """Show the configured device catalog"""
    config = _load(config_path)

    if json_output:
        console.print(json.dumps([device.model_dump() for device in config.devices], indent=2, ensure_ascii=False))
        return

    table = Table(title="Device Catalog")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Icon")
    table.add_column("Name", style="green")
    table.add_column("Command topic", style="blue")

    for device in config.devices:
        table.add_row(device.id, device.icon, device.name, f"animatronics/{device.id}/<action>")

    console.print(table)
    console.print(f"\n[dim]Broker: {config.mqtt.url}[/dim]")


def main():
    app()


if __name__ == "__main__":
    main()
