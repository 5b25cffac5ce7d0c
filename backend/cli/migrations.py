"""CLI for database migrations."""
import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


def build_alembic_config(database_url=None):
    """Alembic config pointing at the backend migration scripts."""
    from alembic.config import Config

    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "alembic"))
    if database_url:
        config.set_main_option("sqlalchemy.url", database_url)
    return config


def cmd_migrate(args):
    """Run alembic upgrade to the requested revision."""
    from alembic import command

    config = build_alembic_config(args.database_url)
    print(f"Upgrading database to {args.revision}")
    command.upgrade(config, args.revision)
    return 0


def cmd_stamp(args):
    """Stamp alembic revision without running migrations."""
    from alembic import command

    config = build_alembic_config(args.database_url)
    command.stamp(config, args.revision or "head")
    return 0


def cmd_create(args):
    """Create missing tables straight from the models (no alembic history)."""
    from datapoint_collector.core.database import build_engine, create_tables
    from datapoint_collector.core.config import get_settings

    url = args.database_url or get_settings().database_url
    engine = build_engine(url)
    try:
        create_tables(engine)
    finally:
        engine.dispose()
    print("Tables created")
    return 0


def build_parser():
    p = argparse.ArgumentParser(prog="migrations")
    p.add_argument("--database-url", help="Override DATABASE_URL", default=None)
    sub = p.add_subparsers(dest="cmd")
    s = sub.add_parser("migrate", help="Run migrations (upgrade head)")
    s.add_argument("--revision", "-r", help="Target revision", default="head")
    s.set_defaults(func=cmd_migrate)
    s = sub.add_parser("stamp", help="Stamp alembic to a revision")
    s.add_argument("--revision", "-r", help="Revision to stamp", default="head")
    s.set_defaults(func=cmd_stamp)
    s = sub.add_parser("create", help="Create tables from models")
    s.set_defaults(func=cmd_create)
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
