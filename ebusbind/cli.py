"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from ebusbind.core.addressing import hex_dump
from ebusbind.core.config import MASTER_ADDRESS, SLAVE_ADDRESS
from ebusbind.core.errors import EBusBindError
from ebusbind.core.service import EBusService

app = typer.Typer(help="eBUS command catalogs, capability types, routing and polling")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    catalog: list[Path] = typer.Option([], "--catalog", help="Additional command collection file"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"catalog": tuple(catalog)}


def _build_service(ctx: typer.Context) -> EBusService:
    extra_paths = ctx.obj["catalog"] if ctx.obj else ()
    service = EBusService(extra_paths=extra_paths)
    for warning in service.load_warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _parse_device(value: str) -> tuple[str, str, dict[str, str]]:
    parts = value.split(":")
    if len(parts) not in (3, 4) or not all(parts):
        raise typer.BadParameter(f"'{value}' is not ID:COLLECTION:SLAVE[:MASTER]", param_hint="--device")
    config = {SLAVE_ADDRESS: parts[2]}
    if len(parts) == 4:
        config[MASTER_ADDRESS] = parts[3]
    return parts[0], parts[1], config


@app.command("collections")
def list_collections(ctx: typer.Context) -> None:
    """List loaded command collections and their commands."""
    try:
        service = _build_service(ctx)
        collections = service.list_collections()
        if not collections:
            typer.echo("No command collections loaded")
            raise typer.Exit(code=1)

        for collection in collections:
            typer.echo(f"{collection.id}: {collection.label or collection.id}")
            for command in collection.commands:
                methods = ", ".join(method.value for method in command.methods)
                typer.echo(f"  {command.id}: {methods}")
    except EBusBindError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("types")
def list_types(
    ctx: typer.Context,
    collection: str | None = typer.Option(None, "--collection", help="Collection ID"),
) -> None:
    """List projected device types with their capability groups and nodes."""
    try:
        service = _build_service(ctx)
        device_types = [
            t for t in service.list_device_types() if collection is None or t.collection_id == collection
        ]
        if not device_types:
            typer.echo("No device types found")
            raise typer.Exit(code=1)

        for device_type in device_types:
            typer.echo(f"{device_type.id}: {device_type.label} [{device_type.collection_hash}]")
            for group in device_type.groups:
                typer.echo(f"  {group.id}: {group.label}")
                for node in group.nodes:
                    flags = [node.category.value]
                    if node.read_only:
                        flags.append("read-only")
                    if node.advanced:
                        flags.append("advanced")
                    if node.polling:
                        flags.append("polling")
                    typer.echo(f"    {node.channel_id} ({', '.join(flags)})")
    except EBusBindError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("poll-telegram")
def poll_telegram(
    ctx: typer.Context,
    collection: str,
    command: str,
    slave: str = typer.Argument(..., help="Slave address in hex, e.g. 15"),
) -> None:
    """Print the raw poll telegram for COMMAND of COLLECTION sent to SLAVE."""
    try:
        service = _build_service(ctx)
        telegram = service.poll_telegram(collection, command, slave)
        if telegram is None:
            typer.echo(f"Error: '{collection}.{command}' cannot be polled", err=True)
            raise typer.Exit(code=1)
        typer.echo(hex_dump(telegram))
    except EBusBindError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("route")
def route_telegram(
    ctx: typer.Context,
    telegram: str = typer.Argument(..., help="Received telegram in hex"),
    device: list[str] = typer.Option([], "--device", help="ID:COLLECTION:SLAVE[:MASTER], repeatable"),
) -> None:
    """Decode TELEGRAM and show which configured devices accept it."""
    try:
        service = _build_service(ctx)
        for value in device:
            device_id, collection_id, config = _parse_device(value)
            handler = service.add_device(device_id, collection_id, config)
            if handler.status_message:
                typer.echo(f"Warning: {device_id}: {handler.status_message}", err=True)

        try:
            raw = bytes.fromhex(telegram.replace(" ", ""))
        except ValueError:
            typer.echo(f"Error: '{telegram}' is not a hex telegram", err=True)
            raise typer.Exit(code=1) from None

        frame = service.bridge.decode(raw)
        typer.echo(f"Command: {frame.collection_id}.{frame.command_id} ({frame.method.value})")
        accepted = service.dispatcher.dispatch(frame)
        if not accepted:
            typer.echo("No device accepted the telegram")
            return
        for device_id in accepted:
            typer.echo(f"Accepted by: {device_id}")
    except EBusBindError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
