"""
Command-line launcher for the calculator server and client.

Sub-commands:
- ``server``: bind the listening socket and serve connections until interrupted
- ``client``: load the server address from a config file and start a session,
  either interactive or replaying a script file / archive
"""

import argparse
from pathlib import Path
import sys
from typing import List, Optional

from pydantic import BaseModel, Field, FilePath, ValidationError

from line_calculator.client.client import CalculatorClient, ClientConnectionError
from line_calculator.common.config import DEFAULT_CONFIG_FILE, load_endpoint
from line_calculator.common.logger import logger
from line_calculator.server.server import CalculatorServer


class ServerArgs(BaseModel):
    """Validated arguments of the ``server`` sub-command."""

    host: str = Field(min_length=1)
    port: int = Field(ge=0, le=65535)
    workers: int = Field(ge=1)
    idle_timeout: Optional[float] = Field(default=None, gt=0)


class ClientArgs(BaseModel):
    """
    Validated arguments of the ``client`` sub-command.

    Attributes
    ----------
    config : Path
        Config file holding ``<host> <port>``; missing or invalid files fall back to localhost:9999.
    script : FilePath, optional
        Text file or archive with requests to send instead of reading the console.
    """

    config: Path
    script: Optional[FilePath] = None


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with its ``server`` and ``client`` sub-commands."""
    parser = argparse.ArgumentParser(prog="line-calculator", description="Line-based calculator server and client")
    subparsers = parser.add_subparsers(dest="command", required=True)

    server_parser = subparsers.add_parser("server", help="Run the calculator server")
    server_parser.add_argument("--host", default="0.0.0.0", help="Host name or address to listen on")
    server_parser.add_argument("--port", type=int, default=9999, help="TCP port to listen on")
    server_parser.add_argument("--workers", type=int, default=20, help="Maximum number of concurrent connections")
    server_parser.add_argument(
        "--idle-timeout", type=float, default=None, help="Close connections silent for this many seconds"
    )

    client_parser = subparsers.add_parser("client", help="Run the calculator client")
    client_parser.add_argument("--config", default=str(DEFAULT_CONFIG_FILE), help="Server address file")
    client_parser.add_argument("--script", default=None, help="Text file or archive with requests to send")

    return parser


def run_server(args: ServerArgs) -> int:
    """
    Serve until interrupted.

    :return: Process exit status
    :rtype: int
    """
    server = CalculatorServer(
        host=args.host, port=args.port, max_workers=args.workers, idle_timeout=args.idle_timeout
    )
    try:
        server.start()
    except OSError:
        # Already logged by the server
        return 1
    except KeyboardInterrupt:
        # serve_forever has already closed the listener and the open connections
        logger.info("🖥️ Interrupted")
    return 0


def run_client(args: ClientArgs) -> int:
    """
    Run one client session.

    :return: Process exit status
    :rtype: int
    """
    client = CalculatorClient.from_endpoint(load_endpoint(args.config))
    try:
        if args.script is not None:
            client.send_file(args.script)
        else:
            client.interactive()
    except ClientConnectionError as exc:
        print(exc, file=sys.stderr)
        return 1
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1
    except OSError as exc:
        logger.error(f"🔌❌ Connection to server lost: {exc}")
        print(f"Error: connection to server lost: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print(file=sys.stderr)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Parse arguments and dispatch to the chosen sub-command.

    :return: Process exit status
    :rtype: int
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "server":
            return run_server(
                ServerArgs(host=args.host, port=args.port, workers=args.workers, idle_timeout=args.idle_timeout)
            )
        return run_client(ClientArgs(config=args.config, script=args.script))
    except ValidationError as exc:
        parser.error(str(exc))


if __name__ == "__main__":
    sys.exit(main())
