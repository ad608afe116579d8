#!/usr/bin/env python3
"""Main entry point for fanssh."""

import argparse
import asyncio
import io
import logging
import sys
from pathlib import Path

from .config import DEFAULT_TIMEOUT, Settings, resolve_operation, resolve_targets
from .errors import ConfigurationError
from .executor import Executor, NodeStatus
from .outcome import OutputSink

EXAMPLES = """examples:
  fanssh -C iplist -c ls
  fanssh -C iplist -s main.go -d /tmp
  fanssh -c ls -u root -p 123456 -H 192.168.1.2:22
  fanssh -c ls -u root -P id_rsa -H 192.168.0.129:22
  fanssh -u root -p 123456 -H 192.168.1.2:22 -s main.go -d /tmp
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fanssh",
        description=(
            "Run a command or send a file on many hosts over SSH. Every command "
            "runs in a new session. A host file (-C) holds 'IP:PORT USER PASSWD' "
            "rows separated by whitespace; -u/-p/-H are ignored for it. When "
            "sending a file the destination is a directory and the file keeps "
            "its name."
        ),
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-C", "--hosts", dest="host_file", type=Path,
                        help="Read hosts and credentials from a file (or a YAML inventory)")
    parser.add_argument("-c", "--cmd", default="", help="Command to run")
    parser.add_argument("-H", "--host", dest="hosts", default="",
                        help="Hosts, comma separated host:port entries")
    parser.add_argument("-s", "--src", type=Path, help="Local file to send")
    parser.add_argument("-d", "--dst", default="", help="Remote directory to save the file in")
    parser.add_argument("-u", "--user", default="", help="Login user")
    parser.add_argument("-p", "--passwd", default="", help="Login password")
    parser.add_argument("-P", "--private", type=Path, help="Log in with a private key")
    parser.add_argument("-o", "--out", type=Path,
                        help="Write results to a file instead of standard output")
    parser.add_argument("-f", "--hostfile", action="store_true",
                        help="Read bare host addresses from a file, one per line")
    parser.add_argument("-t", "--timeout", type=int, default=DEFAULT_TIMEOUT,
                        help="Connection timeout in seconds")
    parser.add_argument("--known-hosts", type=Path,
                        help="Verify host keys against this known_hosts file")
    parser.add_argument("--log-dir", type=Path, help="Also write each host's result to a log file")
    parser.add_argument("--dashboard", action="store_true", help="Run with the TUI dashboard")
    parser.add_argument("--strict", action="store_true",
                        help="Exit with status 1 if any host failed")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    return Settings(
        hosts=args.hosts,
        host_file=args.host_file,
        hostfile_mode=args.hostfile,
        command=args.cmd,
        src=args.src,
        dst=args.dst,
        user=args.user,
        password=args.passwd,
        private_key=args.private,
        out=args.out,
        timeout=args.timeout,
        known_hosts=args.known_hosts,
        log_dir=args.log_dir,
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # list-file row warnings go through logging
    logging.captureWarnings(True)

    settings = settings_from_args(args)
    try:
        targets = resolve_targets(settings)
        operation = resolve_operation(settings)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if settings.out is not None:
        try:
            stream = open(settings.out, "w")
        except OSError as e:
            print(f"Error: cannot create result file: {e}", file=sys.stderr)
            return 1
    elif args.dashboard:
        # the TUI owns the terminal; records are printed once it exits
        stream = io.StringIO()
    else:
        stream = sys.stdout

    try:
        executor = Executor(
            targets,
            operation,
            OutputSink(stream),
            timeout=settings.timeout,
            known_hosts=settings.known_hosts,
            log_dir=settings.log_dir,
        )
        if args.dashboard:
            states = _run_dashboard(executor)
        else:
            states = asyncio.run(executor.run_all())
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    finally:
        if isinstance(stream, io.StringIO):
            sys.stdout.write(stream.getvalue())
        if stream is not sys.stdout:
            stream.close()

    failed_hosts = [
        address for address, state in states.items() if state.status == NodeStatus.FAILED
    ]
    if failed_hosts and args.strict:
        print(f"\nFailed hosts: {', '.join(failed_hosts)}", file=sys.stderr)
        return 1
    return 0


def _run_dashboard(executor: Executor):
    """Run the executor inside the TUI dashboard."""
    from .dashboard import Dashboard

    app = Dashboard(executor)
    app.run()
    if app.error is not None:
        raise app.error
    return executor.states


if __name__ == "__main__":
    sys.exit(main())
