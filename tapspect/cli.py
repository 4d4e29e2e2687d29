"""Command-line interface for Tapspect."""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Optional

from .config import InspectorConfig
from .core.chrome_instance import ChromeInstanceError, ChromeInstanceManager
from .core.connector import ChromeConnector, ChromeConnectionError
from .data.exporter import export_store
from .formatting import format_console_entry, format_network_entry, is_valid_web_url
from .instrument.installer import InstrumentationError
from .monitors.navigation import NAVIGATION_KIND
from .session import InspectorSession
from .store.event_store import ConsoleEntry, EventStore, NetworkEntry


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s"
    )


logger = logging.getLogger(__name__)


async def test_connection(host: str, port: int) -> int:
    """Connect to Chrome and print its version."""
    connector = ChromeConnector(host=host, port=port)

    try:
        print(f"Connecting to Chrome at {host}:{port}...")
        await connector.connect()
        print("✓ Connected successfully")

        version_info = await connector.get_browser_version()
        print("\nChrome Browser Information:")
        print(f"  Browser: {version_info.get('product', 'Unknown')}")
        print(f"  Protocol Version: {version_info.get('protocolVersion', 'Unknown')}")
        print(f"  User Agent: {version_info.get('userAgent', 'Unknown')}")
        return 0

    except ChromeConnectionError as e:
        print(f"✗ Connection failed: {e}")
        print("\nTroubleshooting:")
        print(f"1. Start Chrome with: chrome --remote-debugging-port={port}")
        print("2. Or let tapspect start one: tapspect --inspect URL --launch")
        return 1

    finally:
        if connector.websocket:
            await connector.disconnect()


async def list_tabs(host: str, port: int) -> int:
    """List page targets in JSON format."""
    connector = ChromeConnector(host=host, port=port)

    try:
        await connector.connect()
        targets_response = await connector.get_targets()
        tabs_info = [
            {
                "targetId": target.get("targetId"),
                "title": target.get("title", ""),
                "url": target.get("url", ""),
            }
            for target in connector.filter_page_targets(targets_response)
        ]
        print(json.dumps(tabs_info, indent=2))
        return 0

    except ChromeConnectionError as e:
        print(f"Connection failed: {e}", file=sys.stderr)
        return 1

    finally:
        if connector.websocket:
            await connector.disconnect()


def make_entry_printer(config: InspectorConfig):
    """Store change callback that prints new entries the config asks for."""
    def print_entry(kind: str, entry) -> None:
        if isinstance(entry, ConsoleEntry):
            # Host-synthesized navigation lines use the navigation filter
            data_type = "navigation" if kind == NAVIGATION_KIND else "console"
            if config.should_report(data_type, entry.level):
                print(format_console_entry(entry))
        elif isinstance(entry, NetworkEntry):
            level = "failed" if entry.failed else "complete"
            if config.should_report("network", level):
                print(format_network_entry(entry))
    return print_entry


async def inspect_page(host: str, port: int, url: str, config: InspectorConfig,
                       duration: Optional[int] = None, launch: bool = False,
                       headless: bool = False, target_id: Optional[str] = None,
                       export: bool = False,
                       exit_event: Optional[asyncio.Event] = None) -> int:
    """Open ``url`` in an instrumented page and print what it logs and fetches."""
    if not is_valid_web_url(url):
        print(f"Not a valid http(s) URL: {url}", file=sys.stderr)
        return 1

    chrome_manager: Optional[ChromeInstanceManager] = None
    connector: Optional[ChromeConnector] = None
    session: Optional[InspectorSession] = None
    exit_event = exit_event or asyncio.Event()

    try:
        if launch:
            chrome_manager = ChromeInstanceManager(headless=headless)
            host_port = await chrome_manager.launch_isolated_chrome()
            host, port_str = host_port.split(":")
            port = int(port_str)

        connector = ChromeConnector(host=host, port=port)
        connector.set_connection_lost_callback(exit_event.set)
        await connector.connect()
        print(f"✓ Connected to Chrome at {host}:{port}")

        if not target_id:
            target_id = await connector.create_page()

        def on_status(event_type: str, payload: dict) -> None:
            if event_type == "load_error":
                logger.debug(f"Load error: {payload.get('description')}")

        store = EventStore(change_callback=make_entry_printer(config))
        session = InspectorSession(connector, target_id, store=store, status_callback=on_status)
        await session.attach()
        await session.navigate(url)
        print(f"✓ Inspecting {url} ({target_id[:8]})")

        if duration:
            try:
                await asyncio.wait_for(exit_event.wait(), timeout=duration)
            except asyncio.TimeoutError:
                print(f"\nInspection duration ({duration}s) completed.")
        else:
            print("Inspecting... (Press Ctrl+C to stop)")
            await exit_event.wait()

        return 0

    except (ChromeConnectionError, ChromeInstanceError, InstrumentationError) as e:
        print(f"Inspection failed: {e}", file=sys.stderr)
        return 1

    except (KeyboardInterrupt, asyncio.CancelledError):
        print("\nInspection stopped by user.")
        return 0

    finally:
        if session:
            summary = (f"{len(session.store.console_entries)} console entries "
                       f"({session.store.error_count} errors), "
                       f"{len(session.store.network_entries)} requests")
            print(f"Captured {summary}")
            if session.load_error:
                print(f"Last load error: {session.load_error}")
            if export:
                try:
                    print(f"✓ Exported to {export_store(session.store, config.data_dir, url)}")
                except Exception as e:
                    print(f"Export failed: {e}", file=sys.stderr)
            try:
                await session.close()
            except Exception as e:
                logger.debug(f"Error closing session: {e}")
        if connector and connector.websocket:
            await connector.disconnect()
        if chrome_manager:
            await chrome_manager.cleanup()


def get_default_host() -> str:
    """Get default host from environment or use 127.0.0.1."""
    return os.environ.get("CHROME_DEBUG_HOST", "127.0.0.1")


def get_default_port() -> int:
    """Get default port from environment or use 9222."""
    try:
        return int(os.environ.get("CHROME_DEBUG_PORT", "9222"))
    except ValueError:
        return 9222


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Tapspect - capture console output and network traffic of any web page"
    )
    parser.add_argument("--test-connection", action="store_true",
                        help="Test connection to Chrome and display version information")
    parser.add_argument("--list-tabs", action="store_true",
                        help="List open Chrome tabs in JSON format")
    parser.add_argument("--inspect", type=str, metavar="URL",
                        help="Open URL in an instrumented tab and print captured events")
    parser.add_argument("--target", type=str,
                        help="Instrument an existing tab (targetId) instead of opening a new one")
    parser.add_argument("--launch", action="store_true",
                        help="Launch an isolated Chrome instance instead of connecting to one")
    parser.add_argument("--headless", action="store_true",
                        help="Run the launched Chrome headless")
    parser.add_argument("--output", type=str, default='all',
                        help="Events to print: all, errors-only, console, network, minimal, "
                             "or a comma-separated list (e.g. console:error,network)")
    parser.add_argument("--export", action="store_true",
                        help="Export captured events as JSONL when inspection ends")
    parser.add_argument("--data-dir", type=str,
                        help="Export directory (default: ~/TapspectData or TAPSPECT_DATA_DIR)")
    parser.add_argument("--duration", type=int,
                        help="Inspect for this many seconds (default: until Ctrl+C)")
    parser.add_argument("--host", default=get_default_host(),
                        help="Chrome debug host (default: 127.0.0.1 or CHROME_DEBUG_HOST env)")
    parser.add_argument("--port", type=int, default=get_default_port(),
                        help="Chrome debug port (default: 9222 or CHROME_DEBUG_PORT env)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose logging")
    return parser


async def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.test_connection:
        return await test_connection(args.host, args.port)
    if args.list_tabs:
        return await list_tabs(args.host, args.port)
    if args.inspect:
        config = InspectorConfig(data_dir=args.data_dir, output=args.output)
        return await inspect_page(
            args.host, args.port, args.inspect, config,
            duration=args.duration,
            launch=args.launch,
            headless=args.headless,
            target_id=args.target,
            export=args.export
        )

    parser.print_help()
    return 0


def cli_entry_point():
    """Entry point for pip-installed command."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    cli_entry_point()
