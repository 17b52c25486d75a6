from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
import threading
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from gofi.codec import encode_json, encode_relational
from gofi.config import default_config_path, load_config, write_default_config
from gofi.errors import DecodeError, MergeError
from gofi.scan import local_identity, scan_tree
from gofi.server.http import CatalogHTTPServer
from gofi.server.tcp import TransferServer
from gofi.server.udp import RecordServer
from gofi.service import GofiService
from gofi.transfer import send_snapshot
from gofi.util.logging import setup_logging, use_color

app = typer.Typer(help="gofi: merge file inventories from many machines into one catalog")


@dataclass(slots=True)
class AppState:
    service: GofiService
    console: Console
    config_path: Path


def _state(ctx: typer.Context) -> AppState:
    st = ctx.obj
    if not isinstance(st, AppState):
        raise RuntimeError("app state not initialized")
    return st


def _emit_obj(console: Console, obj: dict, json_out: bool) -> None:
    if json_out:
        typer.echo(json.dumps(obj, indent=2))
        return
    for k, v in obj.items():
        console.print(f"[bold]{k}[/bold]: {v}")


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[Path | None, typer.Option("--config", help="Config YAML path")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose logging")] = False,
) -> None:
    setup_logging(verbose)
    cfg_path = config.expanduser() if config else default_config_path()
    if not cfg_path.exists():
        write_default_config(cfg_path)
    cfg = load_config(cfg_path)
    color_on = use_color()
    console = Console(color_system="auto" if color_on else None, force_terminal=color_on)
    ctx.obj = AppState(
        service=GofiService(cfg),
        console=console,
        config_path=cfg_path,
    )


@app.command("init-config")
def init_config(
    ctx: typer.Context,
    path: Annotated[Path | None, typer.Option("--path", help="Write config to this path")] = None,
) -> None:
    st = _state(ctx)
    written = write_default_config(path.expanduser() if path else None)
    st.console.print(f"[green]config:[/green] {written}")


@app.command("serve")
def serve_cmd(
    ctx: typer.Context,
    no_datagram: Annotated[bool, typer.Option("--no-datagram", help="Do not listen for single-record datagrams")] = False,
    no_http: Annotated[bool, typer.Option("--no-http", help="Do not serve the catalog over HTTP")] = False,
) -> None:
    st = _state(ctx)
    cfg = st.service.config
    servers: list[Any] = [TransferServer(st.service, cfg.transfer.host, cfg.transfer.port)]
    st.console.print(f"[green]snapshots:[/green] tcp://{cfg.transfer.host}:{cfg.transfer.port}")
    if cfg.datagram.enabled and not no_datagram:
        servers.append(RecordServer(st.service, cfg.datagram.host, cfg.datagram.port, max_size=cfg.datagram.max_size))
        st.console.print(f"[green]records:[/green] udp://{cfg.datagram.host}:{cfg.datagram.port}")
    if not no_http:
        servers.append(CatalogHTTPServer(st.service, cfg.http.host, cfg.http.port))
        st.console.print(f"[green]catalog:[/green] http://{cfg.http.host}:{cfg.http.port}/")

    threads = [threading.Thread(target=srv.serve_forever, daemon=True) for srv in servers]
    for t in threads:
        t.start()
    try:
        for t in threads:
            t.join()
    except KeyboardInterrupt:
        st.console.print("[dim]shutting down[/dim]")
    finally:
        for srv in servers:
            srv.shutdown()
            srv.server_close()


@app.command("ingest")
def ingest_cmd(
    ctx: typer.Context,
    snapshot: Annotated[Path, typer.Argument(help="Snapshot file (SQLite or JSON)")],
    delete: Annotated[bool, typer.Option("--delete", help="Remove the file after a successful merge")] = False,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    try:
        stats = st.service.ingest(snapshot.expanduser(), delete=delete)
    except (DecodeError, MergeError) as exc:
        st.console.print(f"[red]ingest failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    _emit_obj(st.console, stats, json_out)


@app.command("snapshot")
def snapshot_cmd(
    ctx: typer.Context,
    root: Annotated[Path, typer.Argument(help="Directory to inventory")],
    output: Annotated[Path, typer.Argument(help="Snapshot file to write")],
    fmt: Annotated[str, typer.Option("--format", help="sqlite|json")] = "sqlite",
    machine: Annotated[str | None, typer.Option("--machine")] = None,
    ip: Annotated[str | None, typer.Option("--ip")] = None,
    external: Annotated[str | None, typer.Option("--external", help="Name of the removable device being scanned")] = None,
    hashes: Annotated[bool, typer.Option("--hash", help="Record SHA-256 content hashes")] = False,
) -> None:
    st = _state(ctx)
    if fmt not in {"sqlite", "json"}:
        raise typer.BadParameter("--format must be sqlite or json")
    default_machine, default_ip = local_identity()
    records = list(
        scan_tree(
            root,
            machine=machine or default_machine,
            ip=ip or default_ip,
            compute_hash=hashes,
            external_name=external,
        )
    )
    target = output.expanduser()
    if fmt == "json":
        encode_json(records, target)
    else:
        encode_relational(records, target)
    st.console.print(f"[green]wrote[/green] {len(records)} records to {target}")


@app.command("push")
def push_cmd(
    ctx: typer.Context,
    snapshot: Annotated[Path, typer.Argument(help="Snapshot file to send")],
    host: Annotated[str, typer.Option("--host")] = "127.0.0.1",
    port: Annotated[int | None, typer.Option("--port")] = None,
) -> None:
    st = _state(ctx)
    cfg = st.service.config.transfer
    try:
        sent = send_snapshot(
            snapshot.expanduser(),
            host,
            port or cfg.port,
            chunk_size=cfg.chunk_size,
            timeout=cfg.read_timeout,
        )
    except OSError as exc:
        st.console.print(f"[red]push failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    st.console.print(f"[green]sent[/green] {sent} bytes to {host}:{port or cfg.port}")


@app.command("query")
def query_cmd(
    ctx: typer.Context,
    limit: Annotated[str, typer.Option("-n", "--limit")] = "",
    order_by: Annotated[str, typer.Option("--order-by")] = "",
    order: Annotated[str, typer.Option("--order")] = "",
    filetype: Annotated[str, typer.Option("--filetype")] = "",
    machine: Annotated[str, typer.Option("--machine")] = "",
    filemime: Annotated[str, typer.Option("--filemime")] = "",
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    result = st.service.query(
        {
            "limit": limit,
            "order_by": order_by,
            "order": order,
            "filetype": filetype,
            "machine": machine,
            "filemime": filemime,
        }
    )
    if json_out:
        typer.echo(json.dumps(result, indent=2))
        return

    table = Table(title=f"{result['filters']} ({len(result['rows'])} of {result['total']})")
    table.add_column("name")
    table.add_column("size", justify="right")
    table.add_column("type")
    table.add_column("machine")
    table.add_column("path")
    for row in result["rows"]:
        table.add_row(
            str(row["name"]) + ("/" if row["is_dir"] else ""),
            str(row["size_human"]),
            str(row["filetype"]),
            str(row["machine"]),
            str(row["path"]),
        )
    st.console.print(table)
    facets = result["facets"]
    st.console.print(f"[dim]types: {', '.join(facets['filetypes']) or '-'}[/dim]")
    st.console.print(f"[dim]machines: {', '.join(facets['machines']) or '-'}[/dim]")
    st.console.print(f"[dim]mimes: {', '.join(facets['mimes']) or '-'}[/dim]")


@app.command("status")
def status_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    status = st.service.status()
    if json_out:
        typer.echo(json.dumps(status, indent=2))
        return
    snapshots = status.pop("snapshots")
    _emit_obj(st.console, status, json_out=False)
    if not snapshots:
        return
    table = Table(title="recent snapshots")
    table.add_column("name")
    table.add_column("received_at")
    table.add_column("records", justify="right")
    table.add_column("new", justify="right")
    table.add_column("known", justify="right")
    for snap in snapshots:
        table.add_row(
            str(snap["name"]),
            str(snap["received_at"]),
            str(snap["record_count"]),
            str(snap["inserted"]),
            str(snap["skipped"]),
        )
    st.console.print(table)


if __name__ == "__main__":
    app()
