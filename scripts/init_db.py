from __future__ import annotations

import argparse
import sys
from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    # Ensure project root (containing 'userservice') is importable
    project_root = Path(__file__).resolve().parents[1]
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))

    from userservice.config.settings import build_settings
    from userservice.logging_config import get_logger
    from userservice.repositories.factory import build_repository

    parser = argparse.ArgumentParser(
        description="Provision user storage for the backend selected by DSN"
    )
    parser.add_argument(
        "--dsn",
        help="Override the DSN environment variable (dynamo, dynamo-local or an SQLite path)",
    )
    args = parser.parse_args(argv)

    if args.dsn:
        import os

        os.environ["DSN"] = args.dsn

    logger = get_logger()
    settings = build_settings()
    # Adapters create their tables on construction; existing tables are kept
    build_repository(settings)
    logger.info("Storage provisioned", extra={"dsn": settings.dsn})
    print(f"Initialized user storage for DSN: {settings.dsn}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
