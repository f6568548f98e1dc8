#!/usr/bin/env python3
"""
receiptflow CLI - Command line interface for receiptflow.

Usage:
    receiptflow serve              # Run the API (and the inbox watcher)
    receiptflow watch              # Run only the inbox watcher
    receiptflow scan               # Scan the inbox once and print the report
    receiptflow engines            # Show configured OCR engines
    receiptflow process-pending    # OCR documents left in CREATED
"""

import argparse
import asyncio
import json
import signal
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from receiptflow.core.config import configure_logging, get_settings, reload_config
from receiptflow.core.exceptions import ConfigurationError
from receiptflow.db import close_database, init_database
from receiptflow.ocr.registry import build_engines, first_available
from receiptflow.services.runtime import Runtime, build_runtime


@asynccontextmanager
async def _runtime() -> AsyncIterator[Runtime]:
    db = await init_database()
    try:
        yield build_runtime(db, get_settings())
    finally:
        await close_database()


def serve_command(args):
    """Handle the serve command."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "receiptflow.api.app:app",
        host=args.host or settings.server.host,
        port=args.port or settings.server.port,
        reload=settings.server.debug,
    )


def watch_command(args):
    """Handle the watch command."""
    asyncio.run(_watch_async())


async def _watch_async():
    async with _runtime() as runtime:
        if runtime.settings.watcher.process_pending_on_start:
            await runtime.orchestrator.process_pending()

        loop = asyncio.get_running_loop()
        stop = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                pass

        runtime.watcher.start()
        print(f"Watching {runtime.watcher.inbox_path} (Ctrl+C to stop)")
        await stop.wait()
        await runtime.watcher.stop()


def scan_command(args):
    """Handle the scan command."""
    report = asyncio.run(_scan_async())
    print(json.dumps(report, indent=2))
    if report["errors"]:
        sys.exit(1)


async def _scan_async() -> dict:
    async with _runtime() as runtime:
        report = await runtime.watcher.scan_once()
        return report.to_dict()


def engines_command(args):
    """Handle the engines command."""
    settings = get_settings()
    engines = build_engines(settings.ocr)

    print(f"Fallback: {'enabled' if settings.ocr.fallback_enabled else 'disabled'}")
    for engine in engines:
        mark = "✓" if engine.is_available() else "✗"
        print(f"  {mark} {engine.display_name}")

    active = first_available(engines)
    if active is None:
        print("No OCR engine available; documents will fail with 'no OCR engine configured'")
        sys.exit(1)
    print(f"Active engine: {active.name}")


def process_pending_command(args):
    """Handle the process-pending command."""
    processed = asyncio.run(_process_pending_async())
    for doc in processed:
        print(f"  {doc.id} {doc.filename}: {doc.status.name}")
    print(f"Processed {len(processed)} pending document(s)")


async def _process_pending_async():
    async with _runtime() as runtime:
        return await runtime.orchestrator.process_pending()


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="receiptflow CLI - Inbox OCR for bills and receipts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=None,
        help="Directory containing settings.yaml (default: $RECEIPTFLOW_CONFIG_DIR)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", type=str, default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port")
    serve_parser.set_defaults(func=serve_command)

    watch_parser = subparsers.add_parser("watch", help="Run the inbox watcher without the API")
    watch_parser.set_defaults(func=watch_command)

    scan_parser = subparsers.add_parser("scan", help="Scan the inbox once")
    scan_parser.set_defaults(func=scan_command)

    engines_parser = subparsers.add_parser("engines", help="List OCR engines and availability")
    engines_parser.set_defaults(func=engines_command)

    pending_parser = subparsers.add_parser(
        "process-pending",
        help="Run OCR for documents left in CREATED",
    )
    pending_parser.set_defaults(func=process_pending_command)

    # Parse and execute
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        settings = reload_config(args.config_dir)
    except ConfigurationError as e:
        print(e.message, file=sys.stderr)
        sys.exit(2)
    configure_logging(settings)

    args.func(args)


if __name__ == "__main__":
    main()
