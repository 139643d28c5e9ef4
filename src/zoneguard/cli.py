from __future__ import annotations

import asyncio
import logging

import typer

from zoneguard.config import Settings
from zoneguard.db import OptimizerDB
from zoneguard.executor import ApplyError, Optimizer, ZonePause, apply_zone_pauses, probe_blacklist, revert_entries
from zoneguard.util import json_dumps
from zoneguard.web.app import run_web

app = typer.Typer(no_args_is_help=True)


def _setup(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _optimizer() -> Optimizer:
    settings = Settings.load()
    _setup(settings)
    return Optimizer.build(settings)


@app.command("db")
def db_cmd(
    action: str = typer.Argument(..., help="init"),
) -> None:
    settings = Settings.load()
    _setup(settings)
    db = OptimizerDB(settings.db_path)
    if action == "init":
        db.init()
        typer.echo(f"OK db init: {settings.db_path} (schema v{db.schema_version()})")
        return
    raise typer.BadParameter("action must be: init")


@app.command("web")
def web_cmd() -> None:
    settings = Settings.load()
    _setup(settings)
    run_web(settings)


@app.command("mappings")
def mappings_cmd(
    action: str = typer.Argument("list", help="list|set|delete"),
    internal_id: str | None = typer.Argument(None, help="Internal campaign id or label"),
    provider_id: str | None = typer.Argument(None, help="Provider (numeric) campaign id, for `set`"),
    name: str | None = typer.Option(None, help="Display name to map as well"),
) -> None:
    opt = _optimizer()
    if action == "list":
        typer.echo(json_dumps(opt.resolver.list_mappings()))
        return
    if not internal_id:
        typer.echo("ERROR: internal_id is required")
        raise typer.Exit(code=2)
    try:
        if action == "set":
            res = opt.resolver.set_mapping(internal_id, provider_id or "", name)
        elif action == "delete":
            res = opt.resolver.delete_mapping(internal_id)
        else:
            raise typer.BadParameter("action must be one of: list, set, delete")
    except ValueError as e:
        typer.echo(f"ERROR: {e}")
        raise typer.Exit(code=2)
    typer.echo(json_dumps(res))


@app.command("resolve")
def resolve_cmd(
    internal_id: str = typer.Argument(..., help="Internal campaign id"),
    name: str | None = typer.Option(None, help="Campaign display name"),
) -> None:
    opt = _optimizer()
    res = asyncio.run(opt.resolver.resolve(internal_id, name))
    typer.echo(json_dumps(res.to_dict()))


@app.command("blacklist")
def blacklist_cmd(
    campaign_id: str = typer.Option(..., help="Internal or provider campaign id"),
    zone_id: list[str] = typer.Option(..., "--zone", help="Zone id (repeatable)"),
    name: str | None = typer.Option(None, help="Campaign display name (helps resolution)"),
    reason: str | None = typer.Option(None, help="Reason recorded in the ledger"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report what would be sent, send nothing"),
) -> None:
    opt = _optimizer()
    suggestions = [
        ZonePause(campaign_id=campaign_id, zone_id=z, campaign_name=name, reason=reason) for z in zone_id if z.strip()
    ]
    try:
        res = asyncio.run(apply_zone_pauses(opt, suggestions, dry_run=dry_run, actor="cli"))
    except ApplyError as e:
        typer.echo(f"ERROR: {e}")
        raise typer.Exit(code=2)
    typer.echo(json_dumps(res))
    if res["failedCount"]:
        raise typer.Exit(code=1)


@app.command("ledger")
def ledger_cmd(
    action: str = typer.Argument("list", help="list|clear"),
    active: bool = typer.Option(False, help="Only entries that are not reverted"),
    yes: bool = typer.Option(False, "--yes", help="Confirm `clear`"),
) -> None:
    opt = _optimizer()
    if action == "list":
        entries = opt.ledger.list_active() if active else opt.ledger.list_all()
        typer.echo(json_dumps([e.to_dict() for e in entries]))
        return
    if action == "clear":
        if not yes:
            typer.echo("Refusing to clear the ledger without --yes")
            raise typer.Exit(code=2)
        typer.echo(json_dumps({"ok": True, "removed": opt.ledger.clear_all()}))
        return
    raise typer.BadParameter("action must be one of: list, clear")


@app.command("revert")
def revert_cmd(
    entry_ids: list[str] = typer.Argument(..., help="Ledger entry id(s)"),
) -> None:
    opt = _optimizer()
    try:
        res = asyncio.run(revert_entries(opt, entry_ids))
    except ApplyError as e:
        typer.echo(f"ERROR: {e}")
        raise typer.Exit(code=2)
    typer.echo(json_dumps(res))


@app.command("verify")
def verify_cmd() -> None:
    opt = _optimizer()
    if not opt.network.has_token():
        typer.echo("ERROR: PROPELLER_API_TOKEN is not set")
        raise typer.Exit(code=2)
    report = asyncio.run(opt.reconciler.reconcile())
    typer.echo(json_dumps(report.to_dict()))


@app.command("drift")
def drift_cmd(
    campaign_id: list[str] | None = typer.Option(None, "--campaign", help="Campaign id (repeatable)"),
) -> None:
    opt = _optimizer()
    res = asyncio.run(opt.reconciler.untracked_zones(campaign_id or None))
    typer.echo(json_dumps(res))


@app.command("probe")
def probe_cmd(
    provider_campaign_id: str = typer.Argument(..., help="Provider campaign id"),
) -> None:
    opt = _optimizer()
    res = asyncio.run(probe_blacklist(opt, provider_campaign_id))
    typer.echo(json_dumps(res))
    if not res.get("ok"):
        raise typer.Exit(code=2)
