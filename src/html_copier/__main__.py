"""CLI entry point for the HTML copier."""

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import CopierConfig
from .errors import CopierError
from .pipeline import copy_page, delete_copy, get_metadata, list_copies, update_links
from .storage import DuckDBMetadataStore, FileBlobStore, FileMetadataStore, MetadataStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Copy a web page, inventory its links, and rewrite them"
    )
    parser.add_argument(
        "--storage-dir",
        default="html_copies",
        help="Directory for copied HTML and JSON sidecars (default: html_copies)",
    )
    parser.add_argument(
        "--metadata-backend",
        choices=["files", "duckdb"],
        default="files",
        help="Where link metadata is kept (default: files)",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="DuckDB database path for the duckdb backend (default: <storage-dir>/library.duckdb)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Request timeout in seconds (default: 10)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    copy_cmd = sub.add_parser("copy", help="Fetch a URL and store it with its link inventory")
    copy_cmd.add_argument("url")

    show_cmd = sub.add_parser("show", help="Print the stored metadata of a copy")
    show_cmd.add_argument("key")

    update_cmd = sub.add_parser("update", help="Replace the links of a copy from a JSON file")
    update_cmd.add_argument("key")
    update_cmd.add_argument("links_file", help="JSON file holding a list of {url, ...} objects")

    delete_cmd = sub.add_parser("delete", help="Delete a copy and its metadata")
    delete_cmd.add_argument("key")

    sub.add_parser("list", help="List stored copies, newest first")
    return parser


def _metadata_store(args: argparse.Namespace, config: CopierConfig) -> MetadataStore:
    if args.metadata_backend == "duckdb":
        return DuckDBMetadataStore(config.duckdb_path)
    return FileMetadataStore(config.storage_dir)


def main() -> None:
    """Run one command from the command line."""
    args = _build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    config = CopierConfig(
        timeout_seconds=args.timeout,
        storage_dir=args.storage_dir,
        db_path=args.db,
    )
    blobs = FileBlobStore(config.storage_dir)
    metadata = _metadata_store(args, config)

    if args.command == "copy":
        report = copy_page(args.url, blobs, metadata, config)
        if not report.success:
            print(f"Error: {report.error}", file=sys.stderr)
            sys.exit(1)
        print("\n" + "=" * 60)
        print("COPY COMPLETE")
        print("=" * 60)
        print(f"  File:              {report.key}")
        print(f"  Original URL:      {report.original_url}")
        print(f"  Size:              {report.size} bytes")
        print(f"  Total links:       {report.total_links}")
        print(f"  Duration:          {report.duration_seconds:.2f}s")
        if report.links:
            print()
            print(f"  First {len(report.links)} links:")
            for link in report.links:
                marker = "ext" if link.is_external else "int"
                print(f"    [{marker}] {link.url}  ({link.text})")
        print("=" * 60)
        sys.exit(0)

    if args.command == "show":
        try:
            meta = get_metadata(args.key, metadata)
        except CopierError as e:
            print(f"Error: {e.user_message}", file=sys.stderr)
            sys.exit(1)
        print(json.dumps(meta.to_json_dict(), indent=2, ensure_ascii=False))
        sys.exit(0)

    if args.command == "update":
        try:
            links = json.loads(Path(args.links_file).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            print(f"Error: cannot read links file: {e}", file=sys.stderr)
            sys.exit(1)
        if isinstance(links, dict):
            links = links.get("links")
        report = update_links(args.key, links, blobs, metadata)
        if not report.success:
            print(f"Error: {report.error}", file=sys.stderr)
            sys.exit(1)
        print(f"Links updated: {report.total_links} (HTML rewritten: {report.html_updated})")
        sys.exit(0)

    if args.command == "delete":
        if not delete_copy(args.key, blobs, metadata):
            print("Error: Copy not found", file=sys.stderr)
            sys.exit(1)
        print(f"Deleted {args.key}")
        sys.exit(0)

    listing = list_copies(blobs, metadata)
    print("\n" + "=" * 60)
    print(f"  Files: {listing.total_files}    Links: {listing.total_links}")
    print("=" * 60)
    for copy in listing.copies:
        print(f"  {copy.key}  {copy.size:>9} bytes  {copy.total_links:>5} links ({copy.external_links} external)  {copy.original_url or '-'}")
    sys.exit(0)


if __name__ == "__main__":
    main()
