"""Run a single modeler pass from the command line."""
from __future__ import annotations

import argparse
import json
import logging
import sys

from quota_modeler.core.settings import settings
from quota_modeler.services.modeler import get_modeler_service


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Rebuild realm abuse-prevention models.")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Ignore the execution lock and run even if this period was already handled.",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.log_level.upper())

    result = get_modeler_service().run(force=args.force)
    if result.too_early:
        print("Skipped: the modeler already ran this period.")
        return 0
    if not result.ok:
        print(json.dumps(result.error_messages(), indent=2), file=sys.stderr)
        return 1

    print(f"Rebuilt {len(result.processed)} realm model(s).")
    if result.unprocessed:
        print(f"{len(result.unprocessed)} realm(s) left for the next run.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
