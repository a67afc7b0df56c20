import argparse
import logging
import threading
from typing import List, Optional

from classdesk.app import ClassroomApp
from classdesk.config.logging_setup import setup_logging
from classdesk.config.settings import settings

logger = logging.getLogger(__name__)


def _print_notice(level: str, message: str) -> None:
    print(f"[{level}] {message}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="classdesk-sync", description="Pull server data and flush queued writes.")
    parser.add_argument("--watch", action="store_true", help="keep running and drain the queue periodically")
    parser.add_argument("--log-level", default=settings.log_level)
    parser.add_argument("--log-file", default=settings.log_file)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    app = ClassroomApp.from_settings(notify=_print_notice)
    result = app.start(background=args.watch)
    print(f"sync: {result.status.value} ({len(app.queue)} queued)")

    if args.watch:
        try:
            threading.Event().wait()
        except KeyboardInterrupt:
            logger.info("Interrupted")
        finally:
            app.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
