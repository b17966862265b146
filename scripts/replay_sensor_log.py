import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from stocksense.config import get_settings
from stocksense.core.logging import setup_logging
from stocksense.database import SessionLocal, engine
from stocksense.main import init_database
from stocksense.schemas.sensor import WeightPayload
from stocksense.services.container import build_services

logger = logging.getLogger("replay_sensor_log")


def parse_args():
    parser = argparse.ArgumentParser(
        description="Replay a JSON-lines capture of sensor messages ({\"topic\": ..., \"payload\": ...})."
    )
    parser.add_argument("path", type=Path, help="Capture file to replay.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only run weight readings through the stabilizer and print settled transitions.",
    )
    parser.add_argument(
        "--show-events",
        action="store_true",
        help="Print every feed event published while replaying.",
    )
    return parser.parse_args()


def _print_event(event, payload):
    print("{} {}".format(event, json.dumps(payload, default=str)))


def _read_messages(path: Path):
    with path.open("r", encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except ValueError:
                logger.warning("Line %s is not JSON, skipped", line_number)
                continue
            if not isinstance(record, dict) or "topic" not in record:
                logger.warning("Line %s has no topic, skipped", line_number)
                continue
            yield record["topic"], record.get("payload")


def main():
    setup_logging()
    args = parse_args()
    if not args.path.is_file():
        print("Capture file not found: {}".format(args.path))
        return 1

    settings = get_settings()
    services = build_services(SessionLocal, settings=settings)
    router = services.sensor_router

    if args.dry_run:
        if services.weight is None:
            print("No WEIGHT_CHANNELS configured; nothing to replay.")
            return 1
        stabilizer = services.weight.stabilizer
        for topic, payload in _read_messages(args.path):
            kind = router.classify(topic)
            if kind is None or kind[1] is None:
                continue
            data = payload if isinstance(payload, dict) else {}
            if "value" not in data:
                continue
            try:
                reading = WeightPayload.model_validate(data)
            except ValidationError as exc:
                logger.warning("Weight reading on %s skipped: %s", topic, exc)
                continue
            transition = stabilizer.feed(kind[1], reading.value, reading.ts)
            if transition is not None:
                print(
                    "{}: {} -> {} (type {}, qty {})".format(
                        transition.channel,
                        transition.previous,
                        transition.final,
                        transition.type_id,
                        transition.quantity,
                    )
                )
                stabilizer.commit(transition)
        return 0

    init_database(engine, SessionLocal)
    if args.show_events:
        services.broadcaster.add_listener(_print_event)
    feed = services.broadcaster.subscribe(name="replay")
    processed = 0
    dropped = 0
    published = 0
    for topic, payload in _read_messages(args.path):
        if router.dispatch(topic, payload):
            processed += 1
        else:
            dropped += 1
        published += len(feed.drain())
    services.broadcaster.unsubscribe(feed)
    print("Replay finished: {} processed, {} dropped, {} updates published".format(processed, dropped, published))
    return 0


if __name__ == "__main__":
    sys.exit(main())
