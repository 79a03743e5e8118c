from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from qmedia.config import default_config_path, load_config, write_default_config
from qmedia.errors import NotFoundError, QmediaError
from qmedia.models import ScanMode
from qmedia.queries.filters import FilterParams
from qmedia.service import QmediaService
from qmedia.util.logging import setup_logging, use_color

app = typer.Typer(help="qmedia: index and browse a personal media library")


@dataclass(slots=True)
class AppState:
    service: QmediaService
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


def _emit_items(console: Console, title: str, items: list[dict[str, Any]]) -> None:
    if not items:
        console.print("[dim]no results[/dim]")
        return
    table = Table(title=title)
    table.add_column("hash")
    table.add_column("date")
    table.add_column("type")
    table.add_column("size")
    table.add_column("path")
    for item in items:
        table.add_row(
            str(item.get("hash", "")),
            str(item.get("date", "")),
            str(item.get("media_type", "")),
            f"{item.get('width', 0)}x{item.get('height', 0)}",
            str(item.get("path", "")),
        )
    console.print(table)


def _fail(console: Console, exc: Exception) -> typer.Exit:
    console.print(f"[red]error:[/red] {exc}")
    return typer.Exit(1)


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[Path | None, typer.Option("--config", help="Config YAML path")] = None,
    root: Annotated[Path | None, typer.Option("--root", help="Override media root")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose logging")] = False,
) -> None:
    setup_logging(verbose)
    cfg_path = config.expanduser() if config else default_config_path()
    if not cfg_path.exists():
        write_default_config(cfg_path)
    overrides = {"media_root": str(root.expanduser())} if root else None
    cfg = load_config(cfg_path, overrides)
    svc = QmediaService(cfg)
    color_on = use_color()
    console = Console(color_system="auto" if color_on else None, force_terminal=color_on)
    ctx.obj = AppState(
        service=svc,
        console=console,
        config_path=cfg_path,
    )


@app.command("init-config")
def init_config(
    ctx: typer.Context,
    path: Annotated[Path | None, typer.Option("--path", help="Write config to this path")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    written = write_default_config(path.expanduser() if path else None)
    if json_out:
        typer.echo(json.dumps({"config_path": str(written)}, indent=2))
        return
    st.console.print(f"[green]config:[/green] {written}")


@app.command("scan")
def scan_cmd(
    ctx: typer.Context,
    mode: Annotated[ScanMode, typer.Option("--mode", help="default, deep or metadata")] = ScanMode.default,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    result = st.service.scan(mode)
    if json_out:
        typer.echo(json.dumps(result, indent=2))
        return
    st.console.print(result["message"])
    table = Table(title="scan")
    table.add_column("counter")
    table.add_column("value", justify="right")
    for k, v in result["stats"].items():
        table.add_row(k, str(v))
    st.console.print(table)
    if result["status"] == "failed":
        raise typer.Exit(1)


@app.command("thumbs")
def thumbs_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    result = st.service.thumbnail_sweep()
    if json_out:
        typer.echo(json.dumps(result, indent=2))
        return
    st.console.print(result["message"])


@app.command("status")
def status_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    _emit_obj(st.console, st.service.status(), json_out)


@app.command("timeline")
def timeline_cmd(
    ctx: typer.Context,
    rating: Annotated[float, typer.Option("--rating", help="Minimum rating")] = 0.0,
    date_from: Annotated[str, typer.Option("--from", help="Earliest capture date (UTC)")] = "",
    date_to: Annotated[str, typer.Option("--to", help="Latest capture date (UTC)")] = "",
    camera: Annotated[str, typer.Option("--camera")] = "",
    lens: Annotated[str, typer.Option("--lens")] = "",
    media_type: Annotated[str, typer.Option("--type", help="image or video")] = "",
    term: Annotated[str, typer.Option("--term", help="Full-text search term")] = "",
    folder: Annotated[str, typer.Option("--folder")] = "",
    subject: Annotated[str, typer.Option("--tag", help="Tag key")] = "",
    software: Annotated[str, typer.Option("--software")] = "",
    focal_length_35: Annotated[float, typer.Option("--focal-length-35")] = 0.0,
    order_by: Annotated[str, typer.Option("--order-by", help="date or modified")] = "date",
    direction: Annotated[str, typer.Option("--direction", help="ASC or DESC")] = "DESC",
    page_size: Annotated[int | None, typer.Option("--page-size")] = None,
    cursor: Annotated[int, typer.Option("--cursor")] = 0,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    params = FilterParams(
        rating=rating,
        date_from=date_from,
        date_to=date_to,
        camera=camera,
        lens=lens,
        media_type=media_type,
        term=term,
        folder=folder,
        subject=subject,
        software=software,
        focal_length_35=focal_length_35,
        order_by=order_by,
        direction=direction,
        page_size=page_size or st.service.config.page_size,
        cursor=cursor,
    )
    result = st.service.timeline(params)
    if json_out:
        typer.echo(json.dumps(result, indent=2))
        return
    table = Table(title=f"timeline ({result['total']} items)")
    table.add_column("id")
    table.add_column("date")
    table.add_column("type")
    table.add_column("size")
    table.add_column("color")
    for item in result["items"]:
        table.add_row(str(item["id"]), item["d"], item["t"] or "image", f"{item['w']}x{item['h']}", item["c"])
    st.console.print(table)
    if result.get("next_cursor"):
        st.console.print(f"[dim]next cursor: {result['next_cursor']}[/dim]")


@app.command("get")
def get_cmd(
    ctx: typer.Context,
    identifier: str,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    try:
        detail = st.service.get(identifier)
    except (NotFoundError, ValueError) as exc:
        raise _fail(st.console, exc) from exc
    if json_out:
        typer.echo(json.dumps(detail, indent=2))
        return
    media = dict(detail["media"])
    media["tags"] = ", ".join(t["value"] for t in media.get("tags") or [])
    media.pop("srcset", None)
    _emit_obj(st.console, media, json_out=False)
    if detail["previous"]:
        _emit_items(st.console, "previous", detail["previous"])
    if detail["next"]:
        _emit_items(st.console, "next", detail["next"])


@app.command("folders")
def folders_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    nodes = st.service.folders()
    if json_out:
        typer.echo(json.dumps(nodes, indent=2))
        return
    table = Table(title="folders")
    table.add_column("folder")
    table.add_column("items", justify="right")

    def walk(items: list[dict[str, Any]], depth: int) -> None:
        for node in items:
            table.add_row(f"{'  ' * depth}{node['name']}", str(node["image_count"]))
            walk(node.get("children") or [], depth + 1)

    walk(nodes, 0)
    st.console.print(table)


@app.command("folder")
def folder_cmd(
    ctx: typer.Context,
    key: str,
    offset: Annotated[int, typer.Option("--offset")] = 0,
    page_size: Annotated[int, typer.Option("--page-size")] = 100,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    result = st.service.folder(key, offset=offset, page_size=page_size)
    if json_out:
        typer.echo(json.dumps(result, indent=2))
        return
    _emit_items(st.console, f"{key} ({result['total']} items)", result["items"])


@app.command("gear")
def gear_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    result = st.service.gear()
    if json_out:
        typer.echo(json.dumps(result, indent=2))
        return
    for section, items in result.items():
        table = Table(title=section)
        table.add_column("name")
        table.add_column("total", justify="right")
        for item in items:
            table.add_row(str(item["name"]), str(item["total"]))
        st.console.print(table)


@app.command("tags")
def tags_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    rows = st.service.tags()
    if json_out:
        typer.echo(json.dumps(rows, indent=2))
        return
    table = Table(title="tags")
    table.add_column("key")
    table.add_column("value")
    for row in rows:
        table.add_row(str(row["key"]), str(row["value"]))
    st.console.print(table)


@app.command("tag")
def tag_cmd(
    ctx: typer.Context,
    key: str,
    offset: Annotated[int, typer.Option("--offset")] = 0,
    page_size: Annotated[int, typer.Option("--page-size")] = 100,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    try:
        result = st.service.tag(key, offset=offset, page_size=page_size)
    except NotFoundError as exc:
        raise _fail(st.console, exc) from exc
    if json_out:
        typer.echo(json.dumps(result, indent=2))
        return
    _emit_items(st.console, f"{result['title']} ({result['total']} items)", result["items"])


@app.command("map")
def map_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    rows = st.service.map_items()
    if json_out:
        typer.echo(json.dumps(rows, indent=2))
        return
    table = Table(title="geotagged media")
    table.add_column("latitude", justify="right")
    table.add_column("longitude", justify="right")
    table.add_column("hash")
    for lat, lon, media_hash in rows:
        table.add_row(f"{lat:.5f}", f"{lon:.5f}", str(media_hash))
    st.console.print(table)


@app.command("memories")
def memories_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    rows = st.service.memories()
    if json_out:
        typer.echo(json.dumps(rows, indent=2))
        return
    if not rows:
        st.console.print("[dim]no memories today[/dim]")
        return
    for row in rows:
        _emit_items(st.console, f"{row['years_ago']} years ago ({row['total']} items)", row["media"])


@app.command("thumb")
def thumb_cmd(
    ctx: typer.Context,
    identifier: str,
    size: Annotated[int, typer.Argument(help="Thumbnail width")],
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    try:
        thumb = st.service.thumbnail(identifier, size)
    except (QmediaError, ValueError) as exc:
        raise _fail(st.console, exc) from exc
    _emit_obj(
        st.console,
        {"path": str(thumb.path), "bytes": len(thumb.data), "generated": thumb.generated},
        json_out,
    )


@app.command("transcode")
def transcode_cmd(
    ctx: typer.Context,
    identifier: str,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    try:
        index = st.service.transcode(identifier)
    except (QmediaError, ValueError) as exc:
        raise _fail(st.console, exc) from exc
    _emit_obj(st.console, {"index": str(index)}, json_out)


if __name__ == "__main__":
    app()
