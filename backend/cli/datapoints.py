"""CLI for one-off collection and exporting stored datapoints."""
import argparse
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


def _build_service(settings):
    from datapoint_collector.core.database import build_engine, create_tables
    from datapoint_collector.core.producer_client import ProducerClient
    from datapoint_collector.services.admission import AdmissionPolicy
    from datapoint_collector.services.datapoint_service import DataPointService
    from datapoint_collector.services.datapoint_store import SQLDataPointStorage

    engine = build_engine(settings.database_url)
    if settings.database_auto_create:
        create_tables(engine)
    storage = SQLDataPointStorage(engine, batch_size=settings.query_stream_batch_size)
    producer = ProducerClient(settings.producer_url, timeout=settings.producer_timeout_seconds)
    policy = AdmissionPolicy.from_settings(
        settings.admission_max_age_seconds, settings.blocked_tags_list
    )
    return engine, DataPointService(storage, producer, policy)


async def _collect_once(service):
    try:
        return await service.collect()
    finally:
        await service.producer.aclose()


def cmd_collect_once(args):
    """Fetch one datapoint from the producer and store it."""
    from datapoint_collector.core.config import get_settings
    from datapoint_collector.core.errors import CollectorError

    engine, service = _build_service(get_settings())
    try:
        admission = asyncio.run(_collect_once(service))
    except CollectorError as e:
        print(f"Collection failed: {e}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()

    if admission.accepted:
        print("Datapoint accepted")
    else:
        print(f"Datapoint rejected: {admission.reason.value} ({admission.detail})")
    return 0


def cmd_export(args):
    """Write accepted datapoints in the range as a JSON array."""
    from datapoint_collector.core.config import get_settings
    from datapoint_collector.core.database import build_engine
    from datapoint_collector.core.errors import StorageError
    from datapoint_collector.services.datapoint_store import SQLDataPointStorage
    from datapoint_collector.services.query_streamer import stream_json_array
    from datapoint_collector.utils.datetime_utils import parse_optional_rfc3339

    try:
        start = parse_optional_rfc3339(args.start)
        until = parse_optional_rfc3339(args.until)
    except ValueError as e:
        print(f"Invalid time range: {e}", file=sys.stderr)
        return 2

    settings = get_settings()
    engine = build_engine(settings.database_url)
    storage = SQLDataPointStorage(engine, batch_size=settings.query_stream_batch_size)
    try:
        if args.output:
            with open(args.output, "wb") as out, storage.query(start, until) as cursor:
                written = stream_json_array(cursor, out)
        else:
            with storage.query(start, until) as cursor:
                written = stream_json_array(cursor, sys.stdout.buffer)
            sys.stdout.buffer.write(b"\n")
            sys.stdout.flush()
    except (StorageError, OSError) as e:
        print(f"Export failed: {e}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()

    print(f"Exported {written} datapoints", file=sys.stderr)
    return 0


def build_parser():
    p = argparse.ArgumentParser(prog="datapoints")
    sub = p.add_subparsers(dest="cmd")
    s = sub.add_parser("collect-once", help="Collect a single datapoint")
    s.set_defaults(func=cmd_collect_once)
    s = sub.add_parser("export", help="Export accepted datapoints as JSON")
    s.add_argument("--start", help="Inclusive lower bound (RFC 3339)", default=None)
    s.add_argument("--until", help="Inclusive upper bound (RFC 3339)", default=None)
    s.add_argument("--output", "-o", help="Output file (stdout if omitted)", default=None)
    s.set_defaults(func=cmd_export)
    return p


def main(argv=None):
    p = build_parser()
    args = p.parse_args(argv)
    if not hasattr(args, "func"):
        p.print_help()
        return 2
    return args.func(args)


if __name__ == "__main__":
    sys.path.insert(0, str(ROOT))
    raise SystemExit(main())
