"""`kcli` command line: environments, topics, brokers, consumer groups, tail, serve."""
from __future__ import annotations

import argparse
import contextlib
import logging
import signal
import threading
from typing import Callable, Iterator, Optional

from rich.console import Console
from rich.markup import escape

from kcli import __version__
from kcli.core.config import Settings, get_settings
from kcli.core.exceptions import (
    BrokerUnavailableError,
    ConfigError,
    FilterSyntaxError,
    KcliError,
    OffsetUnavailableError,
    TopicNotFoundError,
)
from kcli.core.logging import setup_logging
from kcli.cli import render
from kcli.domain.services.cluster_service import ClusterService
from kcli.domain.services.filter_parser import parse_filter
from kcli.domain.services.lag_aggregator import LagAggregator
from kcli.domain.services.tail_controller import CancellationToken, TailController
from kcli.models.environments import Environment
from kcli.services.kafka_service import KafkaService
from kcli.services.store import EnvironmentStore

LOG = logging.getLogger("kcli")

EXIT_OK = 0
EXIT_BROKER = 1
EXIT_USAGE = 2
EXIT_CONFIG = 3

console = Console()
err_console = Console(stderr=True, markup=False)

Handler = Callable[[argparse.Namespace, Settings], int]


# ---------- CLI ----------

def _non_negative_int(value: str) -> int:
    n = int(value)
    if n < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got {value}")
    return n


def _positive_int(value: str) -> int:
    n = int(value)
    if n < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return n


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="kcli", description="A CLI tool to monitor kafka", allow_abbrev=False)
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("--log-level", default=None, help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    ap.add_argument("-e", "--environment", default=None,
                    help="Use this stored environment instead of the active one")
    ap.add_argument("-b", "--bootstrap", default=None,
                    help="Comma-separated bootstrap servers; bypasses the environment store")
    sub = ap.add_subparsers(dest="command", metavar="<command>")
    sub.required = True

    # config
    cfg = sub.add_parser("config", help="Configure kcli environments")
    cfg.add_argument("--name", help="Environment name (non-interactive)")
    cfg.add_argument("--brokers", help="Bootstrap servers for --name (non-interactive)")
    cfg.set_defaults(handler=cmd_configure)
    cfg_sub = cfg.add_subparsers(dest="config_command", metavar="<action>")
    p = cfg_sub.add_parser("active", help="Set the active environment")
    p.add_argument("name", metavar="environment")
    p.set_defaults(handler=cmd_config_active)
    p = cfg_sub.add_parser("list", help="List stored environments")
    p.set_defaults(handler=cmd_config_list)
    p = cfg_sub.add_parser("remove", help="Remove a stored environment")
    p.add_argument("name", metavar="environment")
    p.set_defaults(handler=cmd_config_remove)

    # topics
    topics = sub.add_parser("topics", help="Inspect and manage topics")
    t_sub = topics.add_subparsers(dest="topics_command", metavar="<action>")
    t_sub.required = True
    p = t_sub.add_parser("list", help="List all topics")
    p.add_argument("-q", "--query", default=None, help="Only topics containing this substring")
    p.set_defaults(handler=cmd_topics_list)
    p = t_sub.add_parser("details", help="Get details of a topic")
    p.add_argument("topic")
    p.set_defaults(handler=cmd_topics_details)
    p = t_sub.add_parser("create", help="Create a new topic")
    p.add_argument("topic")
    p.add_argument("-p", "--partitions", type=_positive_int, default=1)
    p.add_argument("-r", "--replication-factor", type=_positive_int, default=1)
    p.set_defaults(handler=cmd_topics_create)
    p = t_sub.add_parser("delete", help="Delete a topic")
    p.add_argument("topic")
    p.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    p.set_defaults(handler=cmd_topics_delete)
    p = t_sub.add_parser("tail", help="Tail a topic")
    p.add_argument("-t", "--topic", required=True, help="Topic to tail")
    p.add_argument("--before", type=_non_negative_int, default=None,
                   help="Start N messages before the current end of each partition")
    p.add_argument("-f", "--filter", default=None, help="Field filter, e.g. data.attributes.name=19")
    p.add_argument("-n", "--limit", type=_positive_int, default=None,
                   help="Stop after N matching messages")
    p.set_defaults(handler=cmd_topics_tail)

    # brokers
    p = sub.add_parser("brokers", help="List all brokers")
    p.add_argument("-l", "--list", action="store_true", help="List brokers (default)")
    p.set_defaults(handler=cmd_brokers)

    # consumer groups
    p = sub.add_parser("consumer", help="Inspect consumer groups")
    p.add_argument("-l", "--list", action="store_true", help="List all consumer groups")
    p.add_argument("-c", "-g", "--consumer", "--group", dest="consumer", default=None,
                   help="Consumer group id")
    p.add_argument("--pending", action="store_true", help="Show per-partition lag for the group")
    p.add_argument("-t", "--topic", default=None, help="Restrict --pending to one topic")
    p.set_defaults(handler=cmd_consumer)

    # serve
    p = sub.add_parser("serve", help="Serve the read-only HTTP/WebSocket API")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)
    p.set_defaults(handler=cmd_serve)
    return ap


# ---------- wiring ----------

def _store(settings: Settings) -> EnvironmentStore:
    return EnvironmentStore(settings.config_file)


def _environment(args: argparse.Namespace, settings: Settings) -> Environment:
    if args.bootstrap:
        return Environment(name="adhoc", brokers=args.bootstrap)
    store = _store(settings)
    if args.environment:
        return store.get(args.environment)
    return store.active()


def _client(args: argparse.Namespace, settings: Settings) -> KafkaService:
    env = _environment(args, settings)
    LOG.debug("using environment %s (%s)", env.name, env.brokers)
    return KafkaService(env, settings)


@contextlib.contextmanager
def _cancel_on_signals(token: CancellationToken) -> Iterator[None]:
    """SIGINT/SIGTERM cancel *token* instead of raising KeyboardInterrupt."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _shutdown(signum, _frame):
        LOG.info("Signal %s received. Shutting down...", signum)
        token.cancel()

    previous = {sig: signal.signal(sig, _shutdown) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _confirm(prompt: str) -> bool:
    while True:
        answer = input(f"{prompt} (y/n) ").strip().lower()
        if answer in ("y", "n"):
            return answer == "y"
        console.print("Invalid input. Please enter 'y' or 'n'")


# ---------- config ----------

def cmd_configure(args: argparse.Namespace, settings: Settings) -> int:
    store = _store(settings)
    if args.name or args.brokers:
        if not (args.name and args.brokers):
            err_console.print("--name and --brokers must be given together")
            return EXIT_USAGE
        name, brokers = args.name, args.brokers
    else:
        console.print("Configuring kcli")
        while True:
            name = input("Enter environment name: ").strip()
            brokers = input("Enter Kafka brokers: ").strip()
            console.print(f"Environment: {name}\nBrokers: {brokers}")
            if _confirm("Are these values correct?"):
                break

    env = store.upsert(Environment(name=name, brokers=brokers))
    console.print(f"Configuration saved to {escape(str(store.path))}" + (" (active)" if env.is_active else ""))
    return EXIT_OK


def cmd_config_active(args: argparse.Namespace, settings: Settings) -> int:
    _store(settings).activate(args.name)
    console.print(f"Environment {args.name} activated")
    return EXIT_OK


def cmd_config_list(args: argparse.Namespace, settings: Settings) -> int:
    render.render_environments(console, _store(settings).list())
    return EXIT_OK


def cmd_config_remove(args: argparse.Namespace, settings: Settings) -> int:
    _store(settings).remove(args.name)
    console.print(f"Environment {args.name} removed")
    return EXIT_OK


# ---------- topics ----------

def cmd_topics_list(args: argparse.Namespace, settings: Settings) -> int:
    svc = ClusterService(_client(args, settings))
    render.render_topics(console, svc.list_topics(args.query))
    return EXIT_OK


def cmd_topics_details(args: argparse.Namespace, settings: Settings) -> int:
    svc = ClusterService(_client(args, settings))
    render.render_topic_detail(console, svc.topic_detail(args.topic))
    return EXIT_OK


def cmd_topics_create(args: argparse.Namespace, settings: Settings) -> int:
    svc = ClusterService(_client(args, settings))
    created = svc.create_topic(args.topic, args.partitions, args.replication_factor)
    console.print(f"Topic {args.topic} {'created' if created else 'already exists'}")
    return EXIT_OK


def cmd_topics_delete(args: argparse.Namespace, settings: Settings) -> int:
    if not args.yes and not _confirm(f"Delete topic {args.topic}?"):
        console.print("Aborted")
        return EXIT_OK
    ClusterService(_client(args, settings)).delete_topic(args.topic)
    console.print(f"Topic {args.topic} deleted")
    return EXIT_OK


def cmd_topics_tail(args: argparse.Namespace, settings: Settings) -> int:
    # Reject a bad filter before touching the brokers.
    expression = parse_filter(args.filter) if args.filter is not None else None
    token = CancellationToken()
    controller = TailController(
        _client(args, settings),
        args.topic,
        render.TailPrinter(console),
        before=args.before,
        expression=expression,
        token=token,
        max_messages=args.limit,
        settings=settings,
    )
    with _cancel_on_signals(token):
        stats = controller.run()
    LOG.info("tail stopped: %d seen, %d matched", stats.seen, stats.matched)
    return EXIT_OK


# ---------- brokers / consumer groups ----------

def cmd_brokers(args: argparse.Namespace, settings: Settings) -> int:
    render.render_brokers(console, ClusterService(_client(args, settings)).list_brokers())
    return EXIT_OK


def cmd_consumer(args: argparse.Namespace, settings: Settings) -> int:
    if args.list:
        render.render_groups(console, ClusterService(_client(args, settings)).list_groups())
        return EXIT_OK
    if not args.consumer:
        err_console.print("Either specify -c/--consumer or -l/--list")
        return EXIT_USAGE

    client = _client(args, settings)
    render.render_group_detail(console, ClusterService(client).describe_group(args.consumer))
    if args.pending:
        render.render_lag(console, LagAggregator(client).aggregate(args.consumer, topic=args.topic))
    return EXIT_OK


# ---------- serve ----------

def cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    import uvicorn

    from kcli.server import create_app

    app = create_app(_client(args, settings), settings)
    uvicorn.run(app, host=args.host or settings.api_host, port=args.port or settings.api_port)
    return EXIT_OK


# ---------- entry ----------

def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(args.log_level or settings.log_level)

    try:
        return args.handler(args, settings)
    except FilterSyntaxError as exc:
        err_console.print(f"Invalid filter: {exc}")
        return EXIT_USAGE
    except ConfigError as exc:
        err_console.print(f"Configuration error: {exc}")
        return EXIT_CONFIG
    except (BrokerUnavailableError, TopicNotFoundError, OffsetUnavailableError) as exc:
        err_console.print(f"Error: {exc}")
        return EXIT_BROKER
    except ValueError as exc:
        err_console.print(f"Error: {exc}")
        return EXIT_USAGE
    except KcliError as exc:
        err_console.print(f"Error: {exc}")
        return EXIT_BROKER


if __name__ == "__main__":
    raise SystemExit(main())
