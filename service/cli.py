# service/cli.py
"""
User-facing command-line entrypoints.

Subcommands
-----------
serve
    - Primes a bearer token (fatal if the browser or every extraction fails)
    - Starts the APScheduler jobs via service.scheduler.start()
    - Registers signal handlers and a thread excepthook for shutdown

extract-token
    - One extraction + live verification; prints source and expiry

poll-once [--no-send]
    - One poll tick; optionally without sending alerts

setup
    - Prompts for the Telegram secrets and tuning values, writes them to .env

validate-config
    - Loads/validates config and returns nonzero on error
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Iterable
from types import SimpleNamespace
from typing import Any

from dotenv import load_dotenv, set_key

from modules.hiring_watch import main as _monitor
from modules.hiring_watch.lib import logging_bridge
from modules.hiring_watch.lib.config import (
    DEFAULT_GRAPHQL_URL,
    DEFAULT_MAX_PER_CYCLE,
    DEFAULT_POLL_INTERVAL_MS,
    MIN_POLL_INTERVAL_MS,
    ConfigError,
    Settings,
)
from modules.hiring_watch.lib.errors import DriverUnavailable, ExtractionFailed
from modules.hiring_watch.lib.utils import mask_secret
from service import config_schema as _config_schema
from service import scheduler as _scheduler

LOG = logging.getLogger("service.cli")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _load_settings(args: argparse.Namespace, *, require_secrets: bool) -> Settings | None:
    """Settings or None after reporting the ConfigError."""
    try:
        return _config_schema.load_settings(args.config, require_secrets=require_secrets)
    except ConfigError as e:
        LOG.error("Configuration invalid: %s", e)
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return None


def _safe_stop(name: str, handle: Any) -> None:
    """Best-effort stop & join for a scheduler-like controller."""
    if handle is None:
        return
    try:
        handle.stop()
        handle.join(timeout=10.0)
    except Exception:  # pragma: no cover
        LOG.exception("Error stopping %s", name)


# ------------------------------ Subcommands ----------------------------------
def cmd_validate_config(args: argparse.Namespace) -> int:
    settings = _load_settings(args, require_secrets=False)
    if settings is None:
        return EXIT_CONFIG
    print("OK: configuration is valid.")
    missing = [n for n, v in (("TELEGRAM_BOT_TOKEN", settings.telegram_bot_token),
                              ("TELEGRAM_CHANNEL_ID", settings.telegram_channel_id)) if not v]
    if missing:
        print(f"NOTE: {', '.join(missing)} not set; 'serve' will refuse to start.")
    return EXIT_OK


def cmd_extract_token(args: argparse.Namespace) -> int:
    settings = _load_settings(args, require_secrets=False)
    if settings is None:
        return EXIT_CONFIG
    monitor = _monitor.build(settings)
    try:
        cred = monitor.source.extract_credential()
    except (DriverUnavailable, ExtractionFailed) as e:
        LOG.error("Token extraction failed: %s", e)
        print(f"FAILURE: {e}", file=sys.stderr)
        return EXIT_FAILURE
    finally:
        monitor.close()

    print("SUCCESS: verified token extracted.")
    print(f"  source:  {cred.source}")
    print(f"  token:   {mask_secret(cred.token, keep=20)}")
    print(f"  expires: {cred.expires_at.isoformat()}{' (assumed)' if cred.expiry_assumed else ''}")
    return EXIT_OK


def cmd_poll_once(args: argparse.Namespace) -> int:
    settings = _load_settings(args, require_secrets=not args.no_send)
    if settings is None:
        return EXIT_CONFIG
    monitor = _monitor.build(settings)
    try:
        result = monitor.engine.tick(send=not args.no_send)
    finally:
        monitor.close()

    if result is None:
        print(f"FAILURE: poll ended early: {monitor.engine.last_error}", file=sys.stderr)
        return EXIT_FAILURE
    print(f"Fetched {len(result.fetched)} listing(s), {len(result.new)} new.")
    for listing in result.new:
        print(f"  {listing.job_id}  {listing.title}  ({listing.location_name or listing.city})")
    if result.report is not None:
        r = result.report
        print(f"Alerts: {r.sent} sent, {r.failed} failed, {r.over_cap} over cap.")
    return EXIT_OK


def _ask(prompt: str, default: str | None = None) -> str:
    suffix = f" [{default}]" if default is not None else ""
    while True:
        answer = input(f"{prompt}{suffix}: ").strip()
        if answer:
            return answer
        if default is not None:
            return default
        print("A value is required.")


def _ask_int(prompt: str, default: int, *, minimum: int) -> int:
    raw = _ask(prompt, str(default))
    try:
        value = int(raw)
    except ValueError:
        print(f"Not a number; using {default}.")
        return default
    if value < minimum:
        print(f"Must be at least {minimum}; using {default}.")
        return default
    return value


def cmd_setup(args: argparse.Namespace) -> int:
    """Interactive one-time setup; writes the answers to the .env file."""
    print("hiring-watch setup: answers are written to", args.env_file)
    try:
        values = {
            "TELEGRAM_BOT_TOKEN": _ask("Telegram bot token"),
            "TELEGRAM_CHANNEL_ID": _ask("Telegram channel id (e.g. @my_channel or -100...)"),
            "LISTINGS_API_URL": _ask("Listings GraphQL URL", DEFAULT_GRAPHQL_URL),
            "POLL_INTERVAL_MS": str(
                _ask_int("Polling interval in ms", DEFAULT_POLL_INTERVAL_MS, minimum=MIN_POLL_INTERVAL_MS)
            ),
            "MAX_JOBS_PER_ALERT": str(_ask_int("Max alerts per poll", DEFAULT_MAX_PER_CYCLE, minimum=1)),
        }
    except (EOFError, KeyboardInterrupt):
        print("\nSetup aborted; nothing written.", file=sys.stderr)
        return EXIT_FAILURE

    if not os.path.exists(args.env_file):
        with open(args.env_file, "a", encoding="utf-8"):
            pass
    for key, value in values.items():
        set_key(args.env_file, key, value)
    os.chmod(args.env_file, 0o600)
    logging_bridge.activity("setup_written", env_file=os.path.abspath(args.env_file), keys=sorted(values))
    print(f"Saved {len(values)} setting(s) to {args.env_file}. Start with: hiring-watch serve")
    return EXIT_OK


def cmd_serve(args: argparse.Namespace) -> int:
    """
    Prime the token, run the scheduler until a termination signal arrives,
    then stop cleanly. An uncaught exception in any thread is fatal (exit 1).
    """
    settings = _load_settings(args, require_secrets=True)
    if settings is None:
        return EXIT_CONFIG

    stop_event = threading.Event()
    running = SimpleNamespace(sched=None, fatal=None)
    previous_hook = threading.excepthook

    def _graceful_shutdown(signum=None, frame=None):
        LOG.info("Signal %s received; initiating shutdown...", signum)
        stop_event.set()

    def _fatal_thread_exception(hook_args: threading.ExceptHookArgs) -> None:
        thread_name = hook_args.thread.name if hook_args.thread else "?"
        LOG.critical(
            "Uncaught exception in thread %s; shutting down.",
            thread_name,
            exc_info=(hook_args.exc_type, hook_args.exc_value, hook_args.exc_traceback),
        )
        running.fatal = f"{hook_args.exc_type.__name__} in thread {thread_name}"
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _graceful_shutdown)
    threading.excepthook = _fatal_thread_exception

    monitor = _monitor.build(settings)
    logging_bridge.activity("serve_start", poll_interval_ms=settings.poll_interval_ms)
    try:
        try:
            cred = monitor.tokens.refresh()
        except (DriverUnavailable, ExtractionFailed) as e:
            LOG.critical("Initial token extraction failed: %s", e)
            logging_bridge.error("startup_failed", error=str(e), error_type=type(e).__name__)
            print(f"FAILURE: initial token extraction failed: {e}", file=sys.stderr)
            return EXIT_FAILURE
        LOG.info("Initial token ready (source=%s, expires=%s)", cred.source, cred.expires_at.isoformat())
        if stop_event.is_set() and not running.fatal:
            LOG.info("Shutdown requested during startup; not starting the scheduler.")
            logging_bridge.activity("serve_stop", during_startup=True)
            return EXIT_OK
        monitor.health.report()

        jobs = _scheduler.build_jobs(
            settings,
            engine=monitor.engine,
            tokens=monitor.tokens,
            seen=monitor.seen,
            health=monitor.health,
        )
        running.sched = _scheduler.start(
            jobs, timezone=settings.timezone, executor_workers=settings.executor_workers
        )

        # Main wait loop (respond quickly to signals)
        while not stop_event.is_set():
            time.sleep(0.3)

        if running.fatal:
            logging_bridge.error("serve_fatal", reason=running.fatal)
            return EXIT_FAILURE
        logging_bridge.activity("serve_stop")
        return EXIT_OK

    except KeyboardInterrupt:
        return 130
    except Exception as e:
        LOG.exception("Fatal error in serve: %s", e)
        return EXIT_FAILURE
    finally:
        _safe_stop("scheduler", running.sched)
        monitor.close()
        threading.excepthook = previous_hook


# ------------------------------- Argparse ------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="hiring-watch",
        description="Job-listing monitor with Telegram alerts",
    )
    p.add_argument(
        "--config",
        help="Path to config file (fallbacks to CONFIG_PATH env or built-in defaults).",
    )
    p.add_argument(
        "--env-file",
        default=".env",
        help="dotenv file with secrets (read at startup, written by 'setup').",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("serve", help="Run the monitor until interrupted.")
    sp.set_defaults(func=cmd_serve)

    sp = sub.add_parser("extract-token", help="Extract and verify one token, then exit.")
    sp.set_defaults(func=cmd_extract_token)

    sp = sub.add_parser("poll-once", help="Run a single poll tick.")
    sp.add_argument("--no-send", action="store_true", help="Do not send Telegram alerts (dry-run).")
    sp.set_defaults(func=cmd_poll_once)

    sp = sub.add_parser("setup", help="Interactively write secrets and tuning values to the .env file.")
    sp.set_defaults(func=cmd_setup)

    sp = sub.add_parser("validate-config", help="Verify configuration correctness.")
    sp.set_defaults(func=cmd_validate_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    # Real environment variables win over the .env file.
    load_dotenv(args.env_file, override=False)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
