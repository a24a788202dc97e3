"""CLI entry point for pop3-trigger."""

import argparse
import asyncio
import logging
import signal
import sys

import structlog

from pop3_trigger.config import Settings, get_settings_eager
from pop3_trigger.credentials.env import EnvCredentialBackend
from pop3_trigger.exceptions import ConfigError, MailboxNotFoundError, Pop3TriggerError
from pop3_trigger.service import MailboxService
from pop3_trigger.sink import EmissionSink, JsonLinesSink
from pop3_trigger.state import JsonFileStateStore

logger = structlog.get_logger()


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Send stdlib and structlog output to stderr; stdout carries records."""
    numeric_level = logging.getLevelName(level.upper())
    logging.basicConfig(
        stream=sys.stderr,
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    processors: list[structlog.types.Processor] = [
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_logs:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def build_service(settings: Settings) -> MailboxService:
    """Create the mailbox service from settings.

    Raises:
        ConfigError: If no mailboxes are configured.
    """
    if not settings.mailboxes:
        raise ConfigError(
            "No mailboxes configured. Add a 'mailboxes' list to pop3-trigger.yaml "
            "or point POP3T_CONFIG_FILE at a config file."
        )
    store = JsonFileStateStore(settings.state_dir)
    return MailboxService(settings.mailboxes, EnvCredentialBackend(), store)


def _select(service: MailboxService, requested: list[str] | None) -> list[str]:
    if not requested:
        return service.list_mailboxes()
    for mailbox_id in requested:
        service.get_config(mailbox_id)
    return requested


async def _poll_once(service: MailboxService, mailbox_ids: list[str], sink: EmissionSink) -> int:
    failures = 0
    for mailbox_id in mailbox_ids:
        controller = service.create_controller(mailbox_id, sink)
        try:
            result = await controller.run_cycle()
        except Pop3TriggerError as e:
            logger.error("POP3 polling failed", mailbox=mailbox_id, error=str(e))
            failures += 1
            continue
        logger.info(
            "Poll finished",
            mailbox=mailbox_id,
            listed=result.listed,
            emitted=len(result.records),
            baseline=result.baseline,
        )
    return 1 if failures else 0


async def _run_forever(service: MailboxService, mailbox_ids: list[str], sink: EmissionSink) -> int:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    schedulers = []
    try:
        for mailbox_id in mailbox_ids:
            scheduler = service.create_scheduler(mailbox_id, sink)
            schedulers.append(scheduler)
            # A mailbox that is down at launch keeps its timer and retries.
            await scheduler.start(raise_on_error=False)
        await stop_event.wait()
        logger.info("Received shutdown signal")
    finally:
        for scheduler in schedulers:
            await scheduler.stop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
    return 0


def _handle_state(service: MailboxService, action: str, mailbox_id: str) -> int:
    service.get_config(mailbox_id)
    if action == "show":
        state = service.store.load(mailbox_id)
        print(state.model_dump_json(by_alias=True, indent=2))
        return 0
    if action == "reset":
        service.store.reset(mailbox_id)
        print(f"✓ State for mailbox '{mailbox_id}' cleared")
        return 0
    return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pop3-trigger",
        description="Poll POP3 mailboxes and emit new messages as JSON lines",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for name, help_text in (
        ("poll", "Run a single poll cycle for each mailbox"),
        ("run", "Poll mailboxes on their interval until interrupted"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--mailbox",
            action="append",
            metavar="ID",
            help="Mailbox to poll (repeatable, default: all configured mailboxes)",
        )

    state_parser = subparsers.add_parser("state", help="Inspect or reset known-uid state")
    state_parser.add_argument("action", choices=["show", "reset"], help="State action")
    state_parser.add_argument("mailbox", metavar="ID", help="Mailbox ID")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        settings = get_settings_eager()
        configure_logging(settings.log_level, settings.log_json)
        service = build_service(settings)

        if args.command == "state":
            return _handle_state(service, args.action, args.mailbox)

        mailbox_ids = _select(service, args.mailbox)
        sink = JsonLinesSink(sys.stdout)
        if args.command == "poll":
            return asyncio.run(_poll_once(service, mailbox_ids, sink))
        return asyncio.run(_run_forever(service, mailbox_ids, sink))
    except ConfigError as e:
        # Errors tied to a config file already carry their location prefix.
        print(str(e) if e.file_path else f"Configuration error: {e}", file=sys.stderr)
        return 2
    except MailboxNotFoundError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except Pop3TriggerError as e:
        print(f"Polling failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
