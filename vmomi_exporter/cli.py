"""
Command line entry point.

Without a subcommand the exporter is served over HTTP. The other
subcommands print what the vSphere server provides, in the format of the
configuration file where one applies:

    vmomi-exporter --user admin --password secret
    vmomi-exporter counter > counters.yaml
    vmomi-exporter entity --entity-type Datacenter --entity-name dc1
    vmomi-exporter interval --entity-type HostSystem --entity-id host-10
    vmomi-exporter perf --entity-type HostSystem --entity-id host-10 --counter 2 --interval 20
"""

import argparse
import asyncio
import logging
import sys

import uvicorn

from vmomi_exporter import __version__
from vmomi_exporter.app import create_app
from vmomi_exporter.collector import VmomiCollector
from vmomi_exporter.config import (ConfigError, Root, Settings, encode_config, encode_counters, encode_instances,
                                   encode_roots, load_config)
from vmomi_exporter.counter import fetch_counters
from vmomi_exporter.entity import (ROOT_FOLDER_NAME, ManagedEntityType, entities_from_roots, find_entity,
                                   resolve_entities, resolve_from_root)
from vmomi_exporter.interval import IntervalResolver, fetch_historical_intervals, list_intervals
from vmomi_exporter.metric import materialize
from vmomi_exporter.query import instance_infos, plan_entity_query, plan_queries
from vmomi_exporter.session import open_session

log = logging.getLogger(__name__)

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] %(message)s"


def log_level(name):
    return LOG_LEVELS.get((name or "").upper(), logging.INFO)


def create_parser():
    parser = argparse.ArgumentParser(prog="vmomi-exporter",
                                     description="Prometheus exporter of vSphere performance counters")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    parser.add_argument("--url", dest="target_url", help="vSphere server URL.")
    parser.add_argument("--user", dest="target_user", help="vSphere server username.")
    parser.add_argument("--password", dest="target_password", help="vSphere server password.")
    parser.add_argument("--no-verify-ssl", dest="no_verify_ssl", action="store_const", const=True,
                        help="Skip SSL verification.")
    parser.add_argument("--timeout", type=int, help="API call timeout seconds.")
    parser.add_argument("--config", help="Config file path.")
    parser.add_argument("--exporter", help="Exporter listen address as host:port.")
    parser.add_argument("--log-level", dest="log_level", help="Log level.")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("serve", help="Serve the exporter (default).")
    subparsers.add_parser("config", help="Print the effective configuration.")
    subparsers.add_parser("counter", help="List the performance counters of the server.")
    subparsers.add_parser("instance", help="List the counter instances of every entity.")

    entity = subparsers.add_parser("entity", help="List the entities below a root.")
    entity.add_argument("--entity-type", type=ManagedEntityType, choices=list(ManagedEntityType))
    entity.add_argument("--entity-name", default="")
    entity.add_argument("--ancestors", action="store_true", help="List the parents of the root instead.")

    interval = subparsers.add_parser("interval", help="List the intervals of an entity.")
    interval.add_argument("--entity-type", type=ManagedEntityType, choices=list(ManagedEntityType), required=True)
    interval.add_argument("--entity-id", required=True)

    perf = subparsers.add_parser("perf", help="Query one counter of an entity.")
    perf.add_argument("--entity-type", type=ManagedEntityType, choices=list(ManagedEntityType), required=True)
    perf.add_argument("--entity-id", required=True)
    perf.add_argument("--counter", type=int, required=True, help="Counter ID.")
    perf.add_argument("--interval", type=int, required=True, help="Interval ID.")

    return parser


def settings_from_args(args):
    settings = Settings()
    for name in ("target_url", "target_user", "target_password", "no_verify_ssl",
                 "timeout", "config", "exporter", "log_level"):
        value = getattr(args, name, None)
        if value is not None:
            setattr(settings, name, value)

    return settings


def serve(settings, config):
    host, port = settings.listen
    collector = VmomiCollector(settings, config)

    log.info(f"HTTP server started on {host}:{port}")
    uvicorn.run(create_app(collector),
                host=host,
                port=port,
                log_level=logging.getLevelName(log_level(settings.log_level)).lower())


async def print_counters(settings):
    async with open_session(settings) as session:
        catalog = await fetch_counters(session)

    print(encode_counters(sorted(catalog, key=lambda c: c.id)), end="")


def cli_root(args):
    if args.entity_type is None or not args.entity_name:
        return Root(type=ManagedEntityType.FOLDER, name=ROOT_FOLDER_NAME)

    return Root(type=args.entity_type, name=args.entity_name)


async def print_entities(settings, root, ancestors=False):
    types = list(ManagedEntityType)

    async with open_session(settings) as session:
        roots = await entities_from_roots(session, [root])
        if roots is None:
            entities = await resolve_from_root(session, types)
        else:
            entities = await resolve_entities(session, roots, types, include_roots=True, ancestors=ancestors)

    print(encode_roots(sorted(entities, key=lambda e: str(e.type))), end="")


async def print_instances(settings):
    async with open_session(settings) as session:
        server_clock = await session.current_time()
        entities = await resolve_from_root(session, list(ManagedEntityType))

        resolver = IntervalResolver(await fetch_historical_intervals(session))
        specs = await plan_queries(session, entities, None, resolver, server_clock)

    infos = instance_infos(entities, specs)
    print(encode_instances(sorted(infos, key=lambda i: str(i.entity_type))), end="")


async def lookup_entity(session, entity_type, entity_id):
    entity = find_entity(await resolve_from_root(session, [entity_type]), entity_type, entity_id)
    if entity is None:
        raise LookupError(f"Entity not found: {entity_type} {entity_id}")
    return entity


async def print_intervals(settings, entity_type, entity_id):
    async with open_session(settings) as session:
        entity = await lookup_entity(session, entity_type, entity_id)
        intervals = await list_intervals(session, entity, await fetch_historical_intervals(session))

    for interval in intervals:
        print(f"{interval.id} (Current: {str(interval.current).lower()})")


async def print_perf(settings, entity_type, entity_id, counter_id, interval_id):
    async with open_session(settings) as session:
        entity = await lookup_entity(session, entity_type, entity_id)
        server_clock = await session.current_time()
        catalog = await fetch_counters(session)
        historical = await fetch_historical_intervals(session)

        spec = await plan_entity_query(session, entity, interval_id, counter_id, historical, server_clock)
        raw_series = await session.call(session.content.perfManager.QueryPerf, querySpec=[spec])

    for metric in materialize(catalog, [entity], raw_series or []):
        print(f"{metric.timestamp.isoformat()}\tinstance={metric.instance}\tinterval={metric.interval}"
              f"\tcounter={metric.counter.id}\tvalue={metric.value}")


def run(args, settings):
    config = load_config(settings.config)
    command = args.command or "serve"

    if command == "serve":
        serve(settings, config)
    elif command == "config":
        print(encode_config(config), end="")
    elif command == "counter":
        asyncio.run(print_counters(settings))
    elif command == "entity":
        asyncio.run(print_entities(settings, cli_root(args), ancestors=args.ancestors))
    elif command == "instance":
        asyncio.run(print_instances(settings))
    elif command == "interval":
        asyncio.run(print_intervals(settings, args.entity_type, args.entity_id))
    elif command == "perf":
        asyncio.run(print_perf(settings, args.entity_type, args.entity_id, args.counter, args.interval))


def main(argv=None):
    args = create_parser().parse_args(argv)

    try:
        settings = settings_from_args(args)
    except ConfigError as e:
        print(f"vmomi-exporter: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(level=log_level(settings.log_level), format=LOG_FORMAT)

    try:
        run(args, settings)
    except ConfigError as e:
        log.error(f"{e}")
        return 2
    except Exception as e:
        log.exception(f"{args.command or 'serve'} failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
