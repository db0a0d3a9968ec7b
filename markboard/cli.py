from __future__ import annotations

import argparse
import json
import time
from pathlib import Path
from typing import Any, List

from rich.console import Console
from rich.table import Table

from . import __version__
from .config import Settings, load_settings
from .dispatch import Dispatcher
from .errors import MarkboardError, ValidationError
from .export import export_bundle
from .listener import CacheService
from .log import LogConfig, get_logger, setup_logging
from .model import CacheSnapshot
from .parse_netscape import bundle_from_netscape_html
from .reconcile import reconcile_bundle
from .state_sqlite import init_state
from .store_sqlite import SqliteBookmarkStore, init_store

log = get_logger(__name__)


def main(argv: List[str] | None = None) -> int:
    p = argparse.ArgumentParser(
        prog="markboard",
        description="Bookmark cache builder and bundle import reconciler for a two-root bookmark store.",
    )
    p.add_argument("-V", "--version", action="version", version=f"markboard {__version__}")
    p.add_argument("--config", default=None, help="YAML config file (optional). Env vars override defaults.")
    p.add_argument("--store", default=None, help="Bookmark store sqlite path (overrides env/config).")
    p.add_argument("--log-level", default=None, help="DEBUG/INFO/WARN/ERROR (overrides env/config).")
    p.add_argument("--no-color", action="store_true", help="Disable colored logging.")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("init", help="Create the bookmark store with its two root folders.")

    snap = sub.add_parser("snapshot", help="Rebuild the bookmarks cache and print a summary.")
    snap.add_argument("--json", action="store_true", help="Print the full snapshot as JSON.")
    snap.add_argument("--top", type=int, default=20, help="Folders to list in the summary table.")

    imp = sub.add_parser("import", help="Replace both roots with the contents of a bundle (destructive).")
    src = imp.add_mutually_exclusive_group(required=True)
    src.add_argument("--bundle", help="JSON bundle with folderTree/allLinks.")
    src.add_argument("--html", help="Netscape bookmarks HTML export.")
    imp.add_argument("--yes", action="store_true", help="Confirm wiping the current bookmarks.")

    exp = sub.add_parser("export", help="Write the current bookmarks as a JSON bundle.")
    exp.add_argument("--out", required=True, help="Output JSON path.")

    call = sub.add_parser("call", help="Send one request to the dispatch surface and print the response.")
    call.add_argument("action", help="Action name, e.g. getBookmarksCache, deleteBookmark.")
    call.add_argument("--payload", default="{}", help="JSON object merged into the request.")

    args = p.parse_args(argv)
    cfg = load_settings(args.config)
    if args.store:
        cfg.store_path = args.store
    if args.log_level:
        cfg.log_level = args.log_level
    if args.no_color:
        cfg.no_color = True
    setup_logging(LogConfig(level=cfg.log_level, no_color=cfg.no_color, log_file=cfg.log_file))

    commands = {
        "init": _cmd_init,
        "snapshot": _cmd_snapshot,
        "import": _cmd_import,
        "export": _cmd_export,
        "call": _cmd_call,
    }
    try:
        return commands[args.cmd](args, cfg)
    except MarkboardError as e:
        log.error("%s failed: %s", args.cmd, e)
        return 2


def _cmd_init(args, cfg: Settings) -> int:
    roots = ((cfg.primary_root_id, cfg.primary_root_title), (cfg.secondary_root_id, cfg.secondary_root_title))
    init_store(cfg.store_path, roots=roots)
    init_state(Path(cfg.state_path))
    log.info("Initialized bookmark store %s (roots %s, %s)", cfg.store_path, cfg.primary_root_id, cfg.secondary_root_id)
    return 0


def _cmd_snapshot(args, cfg: Settings) -> int:
    with SqliteBookmarkStore(cfg.store_path, readonly=True) as store:
        service = _service(store, cfg)
        snapshot = service.refresh()
    if args.json:
        print(json.dumps(snapshot.to_dict(), ensure_ascii=False, indent=2))
    else:
        _print_summary(snapshot, top=args.top)
    return 0


def _cmd_import(args, cfg: Settings) -> int:
    if not args.yes:
        log.error("Import wipes both root folders before rebuilding them. Re-run with --yes to proceed.")
        return 2
    t0 = time.time()
    bundle: Any
    if args.html:
        bundle = bundle_from_netscape_html(
            Path(args.html),
            default_root=_sentinel_for(cfg, cfg.secondary_root_id, "2"),
            toolbar_root=_sentinel_for(cfg, cfg.primary_root_id, "1"),
        )
    else:
        bundle = _read_json(Path(args.bundle))

    with SqliteBookmarkStore(cfg.store_path) as store:
        service = _service(store, cfg)
        result = reconcile_bundle(
            store,
            bundle,
            root_map=cfg.root_map(),
            fallback_root_id=cfg.secondary_root_id,
            refresh=service.refresh,
        )

    console = Console()
    console.print(f"Created [bold]{result.created_count}[/bold], deleted [bold]{result.deleted_count}[/bold].")
    if result.errors:
        console.print(f"Completed with [red]{len(result.errors)}[/red] error(s):")
        for err in result.errors:
            console.print(f"  - {err}", markup=False)
    log.info("Done in %d ms.", int((time.time() - t0) * 1000))
    return 1 if result.errors else 0


def _cmd_export(args, cfg: Settings) -> int:
    with SqliteBookmarkStore(cfg.store_path, readonly=True) as store:
        bundle = export_bundle(store, cfg.root_map())
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(bundle.to_wire(), ensure_ascii=False, indent=2), encoding="utf-8")
    log.info("Wrote bundle: %s", out)
    return 0


def _cmd_call(args, cfg: Settings) -> int:
    try:
        payload = json.loads(args.payload)
    except json.JSONDecodeError as e:
        log.error("--payload is not valid JSON: %s", e)
        return 2
    if not isinstance(payload, dict):
        log.error("--payload must be a JSON object")
        return 2

    with SqliteBookmarkStore(cfg.store_path) as store:
        service = _service(store, cfg)
        service.start()
        try:
            dispatcher = Dispatcher(store, service, root_map=cfg.root_map(), fallback_root_id=cfg.secondary_root_id)
            response = dispatcher.handle({**payload, "action": args.action})
        finally:
            service.stop()
    print(json.dumps(response, ensure_ascii=False, indent=2, default=_json_default))
    return 0 if response.get("success") else 1


def _service(store, cfg: Settings) -> CacheService:
    state_path = Path(cfg.state_path) if cfg.persist_snapshot else None
    return CacheService(store, state_path=state_path, with_tags=cfg.auto_tags)


def _sentinel_for(cfg: Settings, root_id: str, default: str) -> str:
    for sentinel, rid in cfg.root_map().items():
        if rid == root_id:
            return sentinel
    return default


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"cannot read bundle {path}: {e}") from e


def _print_summary(snapshot: CacheSnapshot, *, top: int) -> None:
    console = Console()
    console.print(
        f"[bold]{snapshot.total_bookmarks}[/bold] bookmarks in [bold]{snapshot.total_folders}[/bold] folders"
    )
    folders = sorted(snapshot.folder_index.values(), key=lambda f: (-f.bookmark_count, f.path))
    table = Table("Folder", "Bookmarks", "Id")
    for f in folders[: max(0, top)]:
        table.add_row(f.path, str(f.bookmark_count), f.id)
    console.print(table)


def _json_default(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return str(value)


if __name__ == "__main__":
    raise SystemExit(main())
