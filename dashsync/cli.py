"""CLI entrypoint for the dashboard sync client."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from dashsync.common.config_loader import SyncConfig, load_config
from dashsync.common.constants import EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from dashsync.common.errors import SyncError
from dashsync.common.fs import write_json
from dashsync.common.http import HttpClient
from dashsync.common.ids import generate_session_id
from dashsync.common.logging import build_logger, log_event
from dashsync.common.models import Actor
from dashsync.sync.session import DashboardSession
from dashsync.sync.transport import RestTransport, Transport

COMMANDS = ("snapshot", "watch")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--role", default="MANAGER")
    parser.add_argument("--user-name", default=None)
    parser.add_argument("--user-email", default=None)
    parser.add_argument("--token", default=None)
    parser.add_argument("--session-id", default=None)
    parser.add_argument("--log-dir", default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--out", default=None)
    parser.add_argument("--duration", type=float, default=None)
    return parser.parse_args(argv)


def build_transport(config: SyncConfig, token: str | None) -> Transport:
    client = HttpClient(config.api.base_url, timeout=config.api.timeout, retry=config.api.retry, token=token)
    return RestTransport(client)


async def run_snapshot(session: DashboardSession, out: Path | None) -> bool:
    results = await session.refetch()
    view = session.describe()
    view["reads"] = {name: {"source": result.source, "ok": result.ok} for name, result in results.items()}
    if out is not None:
        write_json(out, view)
    else:
        print(json.dumps(view, indent=2, sort_keys=True, default=str))
    return all(result.ok for result in results.values())


async def run_watch(session: DashboardSession, duration: float | None) -> bool:
    first = await session.refetch()
    session.start()
    try:
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        await session.dispose()
    return all(result.ok for result in first.values())


async def _run(args: argparse.Namespace, session: DashboardSession) -> bool:
    try:
        if args.command == "snapshot":
            return await run_snapshot(session, Path(args.out) if args.out else None)
        return await run_watch(session, args.duration)
    finally:
        close = getattr(session.transport, "close", None)
        if close is not None:
            close()


def run_command(args: argparse.Namespace) -> int:
    session_id = args.session_id or generate_session_id()
    log_dir = Path(args.log_dir) if args.log_dir else None
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None

    logger = build_logger(session_id, log_dir=log_dir, level=args.log_level)
    config = load_config(Path(args.config_dir), overlay_config_dir=overlay_config_dir)
    actor = Actor.from_identity({"name": args.user_name, "email": args.user_email})

    session = DashboardSession(
        config,
        build_transport(config, args.token),
        actor=actor,
        role=args.role,
        logger=logger,
    )
    log_event(logger, "command start", session_id=session_id, event="COMMAND_START", status="ok")
    all_ok = asyncio.run(_run(args, session))
    status = "ok" if all_ok else "partial"
    log_event(logger, "command end", session_id=session_id, event="COMMAND_END", status=status)
    if not all_ok:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        return run_command(args)
    except KeyboardInterrupt:
        return EXIT_SUCCESS
    except SyncError:
        return EXIT_HARD_FAIL
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
