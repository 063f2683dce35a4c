"""Run one expiration sweep against the configured database and print the summary"""
import argparse
import json
import sys

from signflow.config.settings import settings
from signflow.repositories.mongo_client import close_connection, get_database
from signflow.scheduler.expiration_scheduler import ExpirationScheduler
from signflow.services.container import ServiceContainer
from signflow.utils.logger import setup_logging


def main() -> int:
    parser = argparse.ArgumentParser(description="Expire overdue signature requests and send warnings")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help=f"Requests per phase (default: {settings.expiration_batch_size})"
    )
    args = parser.parse_args()

    config = settings
    if args.batch_size:
        config = settings.model_copy(update={"expiration_batch_size": args.batch_size})
    setup_logging(config)

    try:
        container = ServiceContainer.build(get_database(config), config)
        result = ExpirationScheduler(container.expirations).run_once()
    finally:
        close_connection()

    print(json.dumps(result.model_dump(mode="json"), indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
