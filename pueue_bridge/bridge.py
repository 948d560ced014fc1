"""
Pueue bridge - CLI entry point.
Provides start and health subcommands.
"""

import argparse
import logging
import os
import sys
import time
import urllib.error
import urllib.request

from .__version__ import __version__
from .constants import (
    DEFAULT_BIND,
    DEFAULT_HEALTH_WAIT,
    ENV_BIND,
    HEALTH_POLL_INTERVAL,
    HEALTH_REQUEST_TIMEOUT,
)

logger = logging.getLogger(__name__)

BANNER = """\
  Pueue bridge v{version}
  Listening on http://{bind}
"""


def split_bind(bind: str) -> tuple[str, int]:
    """Split ``HOST:PORT`` into its parts."""
    host, sep, port = bind.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"Expected HOST:PORT, got {bind!r}")
    return host.strip("[]"), int(port)


def _default_bind() -> str:
    return os.environ.get(ENV_BIND) or DEFAULT_BIND


def check_health(bind: str, timeout: float = HEALTH_REQUEST_TIMEOUT) -> int:
    """Return the HTTP status of ``GET /health`` on a running bridge."""
    with urllib.request.urlopen(f"http://{bind}/health", timeout=timeout) as resp:
        return resp.status


def wait_for_health(bind: str, wait: float) -> int | None:
    deadline = time.monotonic() + wait
    while time.monotonic() < deadline:
        try:
            return check_health(bind)
        except (urllib.error.URLError, OSError) as e:
            logger.debug("Bridge not healthy yet: %s", e)
        time.sleep(HEALTH_POLL_INTERVAL)
    return None


def cmd_start(args):
    """Run the bridge in the foreground."""
    import uvicorn

    from .bridge_api import create_app
    from .errors import ConfigError

    host, port = split_bind(args.host)
    try:
        app = create_app()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(BANNER.format(version=__version__, bind=args.host))
    uvicorn.run(app, host=host, port=port, log_level=args.log_level.lower())


def cmd_health(args):
    """Wait for a running bridge to answer /health."""
    status = wait_for_health(args.host, args.timeout)
    if status is None:
        print(f"Bridge at http://{args.host} did not become healthy within {args.timeout}s")
        sys.exit(1)
    print(f"health={status}")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="pueue-bridge",
        description="Pueue bridge - JSON API over a pueue daemon for the web UI",
        epilog=(
            "Examples:\n"
            "  pueue-bridge start                        Serve on 127.0.0.1:9093\n"
            "  pueue-bridge start --host 0.0.0.0:8080    Serve on a custom address\n"
            "  pueue-bridge health --timeout 10          Wait until the bridge is up\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    sub = parser.add_subparsers(dest="command")

    start_p = sub.add_parser("start", parents=[common], help="Start the bridge web server")
    start_p.add_argument(
        "--host",
        default=_default_bind(),
        help=f"HOST:PORT to listen on (default: ${ENV_BIND} or {DEFAULT_BIND})",
    )

    health_p = sub.add_parser("health", parents=[common], help="Check that a running bridge answers")
    health_p.add_argument("--host", default=_default_bind(), help="HOST:PORT of the bridge")
    health_p.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_HEALTH_WAIT,
        help=f"Seconds to wait (default: {DEFAULT_HEALTH_WAIT})",
    )

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    {
        "start": cmd_start,
        "health": cmd_health,
    }[args.command](args)


if __name__ == "__main__":
    main()
