#!/usr/bin/env python3

import argparse
import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from courierbill.domain.capture import AI_MODES
from courierbill.domain.reconcile import RESOLUTIONS
from courierbill.runtime import set_data_root, set_log_level


def _coerce_exit_code(code: object) -> int:
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    return 1


def _run_legacy_command(command: Callable[[argparse.Namespace], None], args: argparse.Namespace) -> int:
    """
    Normalize command handlers that call sys.exit().

    This keeps process termination centralized in this module's entrypoint.
    """
    try:
        command(args)
    except SystemExit as exc:
        return _coerce_exit_code(exc.code)
    return 0


def _add_conflict_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--on-conflict",
        choices=("ask", *RESOLUTIONS),
        default="ask",
        help="What to do when the manifest number already exists (default: ask)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="courierbill",
        description="Courier billing manifests CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  import <file.json>         Import one manifest file
  bulk-import <files...>     Import up to 30 manifest files, or one folder .zip
  parse <pages...>           Extract a manifest from scanned pages
  save <file.json>           Save an edited manifest (--replace ID to overwrite)
  capture <action>           Monthly capture session (start/add/finish/process/...)
  serve [--port]             Start the page upload server
  list | show | move         Browse and file manifests
  delete | restore | purge   Recycle bin
  folders <action>           Manage folders
  export-folder <id>         Write a folder archive
  config [set ...]           Global rates and preferences

Notes:
  Data lives in $COURIERBILL_HOME (default ~/.local/share/courierbill).
""",
    )
    parser.add_argument("--data-dir", help="Data directory (overrides COURIERBILL_HOME)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # import
    import_parser = subparsers.add_parser("import", help="Import one manifest JSON file")
    import_parser.add_argument("file", help="Manifest JSON file")
    import_parser.add_argument("--folder", help="Folder id to file the manifest under")
    _add_conflict_option(import_parser)

    # bulk-import
    bulk_parser = subparsers.add_parser("bulk-import", help="Import many manifest files or a folder archive")
    bulk_parser.add_argument("files", nargs="+", help="Manifest JSON files, or a single .zip archive")
    target = bulk_parser.add_mutually_exclusive_group()
    target.add_argument("--folder", help="Existing folder id")
    target.add_argument("--new-folder", help="Create a folder with this name for the batch")

    # parse
    parse_parser = subparsers.add_parser("parse", help="Extract a manifest from scanned pages")
    parse_parser.add_argument("pages", nargs="+", help="Page images (max 5, each under 5MB)")
    parse_parser.add_argument("--hybrid", action="store_true", help="Use the hybrid extraction strategy")
    parse_parser.add_argument("--folder", help="Folder id to file the manifest under")
    parse_parser.add_argument("--service-url", help="Document service URL (overrides settings)")
    _add_conflict_option(parse_parser)

    # save
    save_parser = subparsers.add_parser("save", help="Save an edited manifest file")
    save_parser.add_argument("file", help="Manifest JSON file")
    save_parser.add_argument("--replace", metavar="MANIFEST_ID", help="Overwrite this saved manifest")
    save_parser.add_argument("--folder", help="Folder id to file the manifest under")

    # capture
    capture_parser = subparsers.add_parser("capture", help="Monthly capture session")
    capture_parser.add_argument("--service-url", help="Document service URL (overrides settings)")
    capture_subparsers = capture_parser.add_subparsers(dest="capture_action", help="Capture action")
    start_parser = capture_subparsers.add_parser("start", help="Start a new session and folder")
    start_parser.add_argument("--mode", choices=AI_MODES, default="default", help="Extraction mode (default: default)")
    add_parser = capture_subparsers.add_parser("add", help="Add pages to the current manifest")
    add_parser.add_argument("images", nargs="*", help="Page images")
    add_parser.add_argument("--finish", action="store_true", help="Close the manifest after adding pages")
    capture_subparsers.add_parser("finish", help="Close the current manifest and queue it")
    capture_subparsers.add_parser("process", help="Process queued manifests")
    capture_subparsers.add_parser("pause", help="Pause after the current manifest")
    capture_subparsers.add_parser("status", help="Show session status")
    capture_subparsers.add_parser("close", help="Close the session (warns about unprocessed work)")
    capture_subparsers.add_parser("clear", help="Discard the session")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the page upload server")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    serve_parser.add_argument("--service-url", help="Document service URL (overrides settings)")

    # list / show / move
    list_parser = subparsers.add_parser("list", help="List manifests")
    scope = list_parser.add_mutually_exclusive_group()
    scope.add_argument("--folder", help="Only this folder")
    scope.add_argument("--root", action="store_true", help="Only manifests outside any folder")
    scope.add_argument("--recycle-bin", action="store_true", help="List the recycle bin")

    show_parser = subparsers.add_parser("show", help="Show a manifest")
    show_parser.add_argument("manifest_id")

    move_parser = subparsers.add_parser("move", help="Move a manifest to a folder")
    move_parser.add_argument("manifest_id")
    move_target = move_parser.add_mutually_exclusive_group(required=True)
    move_target.add_argument("--folder", help="Target folder id")
    move_target.add_argument("--root", action="store_true", help="Move out of any folder")

    # recycle bin
    for name, help_text in (
        ("delete", "Move a manifest to the recycle bin"),
        ("restore", "Restore a manifest from the recycle bin"),
        ("purge", "Permanently delete a manifest from the recycle bin"),
    ):
        subparsers.add_parser(name, help=help_text).add_argument("manifest_id")
    subparsers.add_parser("empty-recycle", help="Permanently delete everything in the recycle bin")

    # folders
    folders_parser = subparsers.add_parser("folders", help="Manage folders")
    folder_subparsers = folders_parser.add_subparsers(dest="folder_action", help="Folder action")
    folder_subparsers.add_parser("list", help="List folders")
    folder_subparsers.add_parser("create", help="Create a folder").add_argument("name")
    rename_parser = folder_subparsers.add_parser("rename", help="Rename a folder")
    rename_parser.add_argument("folder_id")
    rename_parser.add_argument("name")
    folder_subparsers.add_parser("delete", help="Delete a folder (manifests move to the root)").add_argument(
        "folder_id"
    )

    # export-folder
    export_parser = subparsers.add_parser("export-folder", help="Write a folder archive")
    export_parser.add_argument("folder_id")
    export_parser.add_argument("--output", help="Output directory (default: <data dir>/exports)")

    # config
    config_parser = subparsers.add_parser("config", help="Show or change global rates and preferences")
    config_subparsers = config_parser.add_subparsers(dest="config_action", help="Config action")
    config_subparsers.add_parser("show", help="Show rates and preferences")
    set_parser = config_subparsers.add_parser("set", help="Change rates or preferences")
    set_parser.add_argument("--slab1", help="Rate per kg for the first 10 kg")
    set_parser.add_argument("--slab2", help="Rate per kg from 11 to 100 kg")
    set_parser.add_argument("--slab3", help="Rate per kg above 100 kg")
    set_parser.add_argument("--document", help="Flat rate per document")
    set_parser.add_argument("--theme", choices=("light", "dark", "reading"))
    set_parser.add_argument("--scale", type=int, help="Display scale in percent")
    set_parser.add_argument(
        "--apply-to",
        nargs="+",
        metavar="MANIFEST_ID",
        help="Also reprice these saved manifests with the new rates",
    )

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.data_dir:
        set_data_root(Path(args.data_dir))
    if args.verbose:
        set_log_level(logging.DEBUG)

    if args.command in {"capture", "serve"}:
        from courierbill.cli.capture import cmd_capture, cmd_serve

        return _run_legacy_command(cmd_capture if args.command == "capture" else cmd_serve, args)

    from courierbill.cli import records

    handlers: dict[str, Callable[[argparse.Namespace], None]] = {
        "import": records.cmd_import,
        "bulk-import": records.cmd_bulk_import,
        "parse": records.cmd_parse,
        "save": records.cmd_save,
        "list": records.cmd_list,
        "show": records.cmd_show,
        "move": records.cmd_move,
        "delete": records.cmd_delete,
        "restore": records.cmd_restore,
        "purge": records.cmd_purge,
        "empty-recycle": records.cmd_empty_recycle,
        "folders": records.cmd_folders,
        "export-folder": records.cmd_export_folder,
        "config": records.cmd_config,
    }
    handler = handlers.get(args.command)
    if handler is None:
        print(f"Unsupported command: {args.command}")
        return 1
    return _run_legacy_command(handler, args)


if __name__ == "__main__":
    raise SystemExit(main())
