"""
CDN certificate renewer — CLI entry point.

Usage:
  python main.py --once                       # Run one renewal immediately
  python main.py --schedule                   # Renew daily at SCHEDULE_TIME (UTC)
  python main.py --serve                      # Expose the authenticated HTTP trigger
  python main.py --serve --schedule           # Both, sharing one orchestrator
  python main.py --once --domain cdn.example.com
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
import time

import structlog

# ── Logging setup ─────────────────────────────────────────────────────────────

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)


# ── Runners ───────────────────────────────────────────────────────────────────


def run_once(orchestrator, domain: str | None = None) -> dict:
    """Execute one renewal from the command line and return its result."""
    from renewal.state import TriggerKind

    result = orchestrator.run(trigger=TriggerKind.CLI, domain=domain)
    if result["success"]:
        log.info("Renewal succeeded: %s", json.dumps(result["result"]))
    else:
        log.error("Renewal failed: %s", result["error"])
    return result


def run_scheduled(orchestrator, schedule_time: str, domain: str | None = None, stop: threading.Event | None = None) -> None:
    """Run the renewal every day at *schedule_time*, plus once at start."""
    import schedule

    from renewal.state import TriggerKind

    def job() -> None:
        log.info("Scheduled renewal triggered")
        result = orchestrator.run(trigger=TriggerKind.SCHEDULED, domain=domain)
        if not result["success"]:
            log.error("Scheduled renewal failed: %s", result["error"])

    schedule.every().day.at(schedule_time).do(job)
    log.info("Scheduling daily renewal at %s UTC", schedule_time)

    log.info("Running initial renewal immediately...")
    job()

    log.info("Entering schedule loop (Ctrl+C to stop)")
    while stop is None or not stop.is_set():
        schedule.run_pending()
        time.sleep(60)


def serve(orchestrator, settings, domain: str | None = None) -> None:
    """Block serving the HTTP trigger."""
    from renewal.state import TriggerKind
    from triggers.http_trigger import TriggerServer

    if not settings.TRIGGER_BEARER_TOKEN:
        log.warning("TRIGGER_BEARER_TOKEN is empty: every trigger request will be rejected")

    server = TriggerServer(
        lambda: orchestrator.run(trigger=TriggerKind.HTTP, domain=domain),
        settings.TRIGGER_BEARER_TOKEN,
        host=settings.TRIGGER_HOST,
        port=settings.TRIGGER_PORT,
    )
    server.serve_forever()


# ── CLI ───────────────────────────────────────────────────────────────────────


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Renew a TLS certificate via ACME DNS-01 and deploy it to the CDN",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --once
  python main.py --schedule
  python main.py --serve --schedule
  python main.py --once --domain cdn.example.com
        """,
    )
    parser.add_argument("--once", action="store_true", help="Run one renewal immediately and exit")
    parser.add_argument(
        "--schedule",
        action="store_true",
        help="Renew on the configured daily schedule (SCHEDULE_TIME in .env)",
    )
    parser.add_argument("--serve", action="store_true", help="Serve the authenticated HTTP trigger")
    parser.add_argument("--domain", metavar="DOMAIN", help="Override DOMAIN_NAME for this process")

    args = parser.parse_args()

    if not (args.once or args.schedule or args.serve):
        parser.print_help()
        sys.exit(1)

    from pydantic import ValidationError

    from config import load_settings
    from renewal.orchestrator import RenewalOrchestrator

    try:
        settings = load_settings()
    except ValidationError as exc:
        log.error("Invalid configuration:\n%s", exc)
        sys.exit(1)

    if not (args.domain or settings.DOMAIN_NAME):
        log.error("No target domain configured. Set DOMAIN_NAME in .env or pass --domain.")
        sys.exit(1)

    orchestrator = RenewalOrchestrator(settings)

    if args.once:
        result = run_once(orchestrator, domain=args.domain)
        sys.exit(0 if result["success"] else 2)
    if args.serve and args.schedule:
        threading.Thread(
            target=run_scheduled,
            args=(orchestrator, settings.SCHEDULE_TIME, args.domain),
            daemon=True,
        ).start()
        serve(orchestrator, settings, domain=args.domain)
    elif args.serve:
        serve(orchestrator, settings, domain=args.domain)
    else:
        run_scheduled(orchestrator, settings.SCHEDULE_TIME, domain=args.domain)


if __name__ == "__main__":
    main()
