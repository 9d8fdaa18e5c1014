"""
tablekv CLI - Command-line interface for common operations.

Usage:
    tablekv serve [--host H] [--port P] [--reload]   # Run the HTTP server
    tablekv health                                   # Check system health
    tablekv set <table> <key> <value>                # Insert or replace
    tablekv get <table> <key>                        # Read a value
    tablekv update <table> <key> <value>             # Update existing key
    tablekv delete <table> <key>                     # Delete a key
    tablekv ensure-table <table>                     # Provision a table
    tablekv drop-table <table>                       # Drop a table (DESTRUCTIVE!)
"""
import argparse
import sys
from typing import Optional

from tablekv.config import get_settings
from tablekv.db.errors import StoreError
from tablekv.db.identifiers import sanitize
from tablekv.db.store import TableStore
from tablekv.logging_setup import setup_logging


def print_header(text: str):
    """Print formatted header."""
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def print_status(key: str, value: object, indent: int = 0):
    """Print formatted status line."""
    spaces = "  " * indent
    print(f"{spaces}{key:30s}: {value}")


def cmd_serve(host: Optional[str], port: Optional[int], reload: bool) -> int:
    """Run the HTTP server with uvicorn."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "tablekv.main:app",
        host=host or settings.HOST,
        port=port or settings.PORT,
        reload=reload,
        log_level=settings.LOG_LEVEL.lower(),
    )
    return 0


def cmd_health(store: TableStore) -> int:
    """Check system health."""
    print_header("System Health Check")

    settings = get_settings()

    print("Configuration:")
    print_status("Database URL", settings.DATABASE_URL, 1)
    print_status("Serialize Requests", "✓ Yes" if settings.SERIALIZE_REQUESTS else "✗ No", 1)
    print_status("Max Value Length", settings.MAX_VALUE_LENGTH, 1)

    print("\nDatabase:")
    db_health = store.health()
    if db_health.get("status") == "healthy":
        print_status("Status", "✓ Healthy", 1)
        print_status("Backend", db_health.get("backend"), 1)
        print()
        return 0

    print_status("Status", f"✗ Unhealthy: {db_health.get('error')}", 1)
    print()
    return 1


def cmd_get(store: TableStore, table: str, key: str) -> int:
    value = store.get_data(table, key)
    if value is None:
        print(f"✗ No value for key {key!r} in table {sanitize(table)!r}")
        return 1
    print(value)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tablekv",
        description="Schema-less key-value tables over HTTP",
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", default=None, help="Bind address (default: HOST setting)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: PORT setting)")
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload for development")

    sub.add_parser("health", help="Check system health")

    for name, help_text, with_value in (
        ("set", "Insert or replace a value", True),
        ("update", "Update an existing key (no-op if absent)", True),
        ("get", "Read a value", False),
        ("delete", "Delete a key", False),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("table")
        cmd.add_argument("key")
        if with_value:
            cmd.add_argument("value")

    for name, help_text in (
        ("ensure-table", "Provision a table"),
        ("drop-table", "Drop a table (DESTRUCTIVE!)"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("table")

    sub.add_parser("help", help="Show this help message")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command in (None, "help"):
        parser.print_help()
        return 0
    if args.command == "serve":
        return cmd_serve(args.host, args.port, args.reload)

    store = TableStore.from_settings(get_settings())
    try:
        if args.command == "health":
            return cmd_health(store)
        if args.command == "get":
            return cmd_get(store, args.table, args.key)
        if args.command == "set":
            store.set_data(args.table, args.key, args.value)
            print("✓ Data set successfully")
        elif args.command == "update":
            store.update_data(args.table, args.key, args.value)
            print("✓ Data updated successfully")
        elif args.command == "delete":
            store.delete_data(args.table, args.key)
            print("✓ Data deleted successfully")
        elif args.command == "ensure-table":
            store.ensure_table(args.table)
            print(f"✓ Table {sanitize(args.table)!r} ready")
        elif args.command == "drop-table":
            store.delete_table(args.table)
            print(f"✓ Table {sanitize(args.table)!r} dropped")
        return 0
    except StoreError as e:
        print(f"\n✗ Error: {e}")
        return 1
    finally:
        store.close()


def run():
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    run()
