"""``ck`` command-line entry point."""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import Any, TextIO

from .client import ConceptKernelClient
from .config import DEFAULT_GATEWAY_URL, ConnectionOptions
from .errors import CKClientError
from .events import EventCategory
from .logging import configure_logging
from .messages import KernelEvent


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ck",
        description="ConceptKernel client - discover services and talk to kernels",
    )
    parser.add_argument(
        "--gateway",
        default=os.environ.get("CK_GATEWAY_URL", DEFAULT_GATEWAY_URL),
        help=f"Gateway URL (default: $CK_GATEWAY_URL or {DEFAULT_GATEWAY_URL})",
    )
    parser.add_argument(
        "--log-level",
        default="warning",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Log level (default: warning)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Force JSON log output (default: auto-detect)",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("services", help="List discovered services")
    commands.add_parser("kernels", help="List kernels known to the gateway")

    kernel = commands.add_parser("kernel", help="Describe one kernel")
    kernel.add_argument("name", help="Kernel name or partial URN")

    emit = commands.add_parser("emit", help="Send a JSON payload to a kernel")
    emit.add_argument("kernel", help="Target kernel (e.g. UI.Bakery)")
    emit.add_argument("payload", help="JSON payload")
    emit.add_argument("--tx-id", default=None, help="Transaction id")

    listen = commands.add_parser("listen", help="Print kernel events as JSON lines")
    listen.add_argument(
        "--count",
        type=int,
        default=None,
        help="Exit after this many events (default: run until interrupted)",
    )
    return parser


def _dump(data: Any, out: TextIO) -> None:
    out.write(json.dumps(data, indent=2, default=str) + "\n")


def _event_record(event: KernelEvent) -> dict[str, Any]:
    return {
        "type": event.type,
        "kernel": event.kernel,
        "txId": event.tx_id,
        "timestamp": event.timestamp,
        "data": event.data,
        "processUrn": event.process_urn,
    }


async def run(
    args: argparse.Namespace,
    out: TextIO = sys.stdout,
    **client_kwargs: Any,
) -> int:
    """Execute one parsed command; returns the process exit code."""
    options = ConnectionOptions.from_env()
    options.auto_connect = args.command == "listen"

    client = await ConceptKernelClient.connect(args.gateway, options, **client_kwargs)
    try:
        if args.command == "services":
            services = await client.discover()
            _dump({name: entry.model_dump() for name, entry in services.items()}, out)
        elif args.command == "kernels":
            _dump([kernel.model_dump() for kernel in client.kernels()], out)
        elif args.command == "kernel":
            found = client.find_kernel(args.name)
            if found is None:
                sys.stderr.write(f"Kernel not found: {args.name}\n")
                return 1
            _dump(found.model_dump(), out)
        elif args.command == "emit":
            try:
                payload = json.loads(args.payload)
            except ValueError as e:
                sys.stderr.write(f"Invalid JSON payload: {e}\n")
                return 2
            result = await client.emit(args.kernel, payload, tx_id=args.tx_id)
            _dump(result.model_dump(by_alias=True, exclude_none=True), out)
        elif args.command == "listen":
            if not client.transport_connected:
                sys.stderr.write("Gateway does not advertise a websocket service\n")
                return 1
            await _listen(client, args.count, out)
        return 0
    finally:
        await client.close()


async def _listen(client: ConceptKernelClient, count: int | None, out: TextIO) -> None:
    done = asyncio.Event()
    seen = 0

    def on_event(event: KernelEvent) -> None:
        nonlocal seen
        out.write(json.dumps(_event_record(event), default=str) + "\n")
        out.flush()
        seen += 1
        if count is not None and seen >= count:
            done.set()

    def on_disconnected(_event: Any) -> None:
        if not client.options.reconnect:
            done.set()

    client.on(EventCategory.EVENT, on_event)
    client.on(EventCategory.DISCONNECTED, on_disconnected)
    await done.wait()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the ``ck`` command."""
    args = build_parser().parse_args(argv)

    # Configure structured logging before anything else
    configure_logging(
        level=args.log_level.upper(),
        json_output=args.json_logs if args.json_logs else None,
    )

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130
    except CKClientError as e:
        sys.stderr.write(f"Error: {e}\n")
        return 1


if __name__ == "__main__":
    sys.exit(main())
