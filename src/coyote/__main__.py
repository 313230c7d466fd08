"""
coyote command line entry point.

    coyote --url amqps://broker:5671 --exchange events=order.# --store events.db
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
import uuid
from functools import partial

from rich.console import Console
from rich.markup import escape

from coyote import __version__
from coyote.app_config import AppConfig
from coyote.auth.negotiator import AuthNegotiator
from coyote.auth.prompts import TerminalPrompter
from coyote.bindings import Binding, parse_bindings
from coyote.broker.channel_initializer import ChannelInitializer
from coyote.broker.delivery_gate import DeliveryGate
from coyote.broker.state import ExponentialBackoff
from coyote.broker.supervisor import ConnectionSupervisor, dial
from coyote.configs import (
    CONFIGS,
    COYOTE_CONNECTION_TIMEOUT,
    COYOTE_HEARTBEAT,
    COYOTE_HTTP_TIMEOUT,
    COYOTE_LOG_LEVEL,
    COYOTE_MAX_RECONNECT_DELAY,
    COYOTE_MAX_REINIT_DELAY,
    COYOTE_QUEUE_PREFIX,
    COYOTE_READINESS_POLL_INTERVAL,
    COYOTE_RECONNECT_DELAY,
    COYOTE_REINIT_DELAY,
)
from coyote.errors import CoyoteError, NotConnectedError
from coyote.sink.console import DeliveryPrinter
from coyote.sink.runner import MessageSink
from coyote.sink.store import EventStore

logger = logging.getLogger("coyote")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FORCED = 2


def exchange_bindings(value: str) -> list[Binding]:
    try:
        return parse_bindings(value)
    except CoyoteError as e:
        raise argparse.ArgumentTypeError(e.message) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="coyote",
        description="Coyote is a RabbitMQ message sink.",
    )
    parser.add_argument("--url", required=True, help="RabbitMQ url, must start with amqps:// or amqp://")
    parser.add_argument(
        "--exchange",
        required=True,
        action="append",
        type=exchange_bindings,
        help="exchange & routing key combinations to listen messages, e.g. 'a=x,b' (repeatable)",
    )
    parser.add_argument("--queue", help="name of the persistent interceptor queue")
    parser.add_argument(
        "--passive",
        action="store_true",
        help="verify the persistent queue exists instead of declaring it",
    )
    parser.add_argument("--store", metavar="FILE", help="SQLite filename to store events")
    parser.add_argument("--insecure", action="store_true", help="skips server certificate verification")
    parser.add_argument("--silent", action="store_true", help="disables terminal print")
    parser.add_argument("--oauth", action="store_true", help="use OAuth 2.0 for authentication")
    parser.add_argument("--redirect-url", help="OAuth 2.0 redirect url, required with --oauth")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def describe(error: BaseException) -> str:
    """Render an exception together with its chain of causes."""
    parts = []
    current: BaseException | None = error
    while current is not None:
        parts.append(str(current) or type(current).__name__)
        current = current.__cause__
    return ": ".join(parts)


async def consume(args: argparse.Namespace, app_config: AppConfig) -> None:
    http_timeout = app_config.get_float(COYOTE_HTTP_TIMEOUT.env_name)
    console = Console()
    negotiator = AuthNegotiator(TerminalPrompter(), http_timeout=http_timeout, console=console)
    endpoint = await negotiator.resolve(args.url, oauth=args.oauth, redirect_url=args.redirect_url)

    bindings = [binding for group in args.exchange for binding in group]
    persistent = args.queue is not None
    queue_name = args.queue if persistent else f"{app_config.get(COYOTE_QUEUE_PREFIX.env_name)}.{uuid.uuid4()}"

    connect = partial(
        dial,
        timeout=app_config.get_float(COYOTE_CONNECTION_TIMEOUT.env_name),
        heartbeat=int(app_config.get_float(COYOTE_HEARTBEAT.env_name)),
        insecure=args.insecure,
    )
    supervisor = ConnectionSupervisor(
        endpoint,
        ChannelInitializer(bindings, queue_name, persistent=persistent, passive=args.passive),
        connect=connect,
        reconnect_backoff=ExponentialBackoff(
            app_config.get_float(COYOTE_RECONNECT_DELAY.env_name),
            app_config.get_float(COYOTE_MAX_RECONNECT_DELAY.env_name),
        ),
        reinit_backoff=ExponentialBackoff(
            app_config.get_float(COYOTE_REINIT_DELAY.env_name),
            app_config.get_float(COYOTE_MAX_REINIT_DELAY.env_name),
        ),
    )

    store = EventStore(args.store) if args.store else None
    gate = DeliveryGate(supervisor, app_config.get_float(COYOTE_READINESS_POLL_INTERVAL.env_name))
    sink = MessageSink(gate, DeliveryPrinter(console, silent=args.silent), store)

    supervisor.start()
    try:
        await sink.run()
    except NotConnectedError:
        # surfaces the fatal connection error when there is one
        await supervisor.wait()
        raise
    finally:
        if persistent:
            exchanges = ", ".join(sorted({binding.exchange for binding in bindings}))
            logger.warning(
                f"⚠️ Please do not forget to clean up the persistent interceptor queue {queue_name} "
                f"manually in the following exchanges: {exchanges}"
            )
        logger.info("💔 Closing RabbitMQ connection")
        await supervisor.close()
        if store is not None:
            store.close()


async def run(args: argparse.Namespace, app_config: AppConfig) -> int:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    interrupts = 0

    def _on_signal() -> None:
        nonlocal interrupts
        interrupts += 1
        if interrupts > 1:
            logger.error("Interrupted again, exiting immediately")
            os._exit(EXIT_FORCED)
        logger.info("Shutting down ...")
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal)
        except NotImplementedError:
            logger.debug(f"Signal handler for {sig.name} not supported on this platform")

    main_task = asyncio.create_task(consume(args, app_config))
    stop_task = asyncio.create_task(stop.wait())
    try:
        done, _ = await asyncio.wait({main_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if main_task not in done:
            main_task.cancel()
            await asyncio.wait({main_task})
            return EXIT_OK
        main_task.result()
        return EXIT_OK
    finally:
        stop_task.cancel()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                pass


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.passive and args.queue is None:
        parser.error("--passive requires --queue")

    try:
        AppConfig.add_configs(CONFIGS)
        app_config = AppConfig()
        logging.basicConfig(
            level=(app_config.get(COYOTE_LOG_LEVEL.env_name) or "INFO").upper(),
            format="%(asctime)s %(message)s",
        )
        return asyncio.run(run(args, app_config))
    except CoyoteError as e:
        Console(stderr=True).print(f"[red]Error:[/red] {escape(describe(e))}", highlight=False)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
