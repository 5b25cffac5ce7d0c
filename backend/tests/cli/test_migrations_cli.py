import importlib

import pytest


def test_build_parser_and_help():
    m = importlib.import_module("cli.migrations")
    parser = m.build_parser()
    # just ensure parser builds and help can be printed
    assert "migrate" in parser.format_help()
    assert m.main([]) == 2


def test_alembic_config_points_at_scripts(tmp_path):
    m = importlib.import_module("cli.migrations")
    url = f"sqlite:///{tmp_path / 'dp.db'}"

    config = m.build_alembic_config(url)

    assert config.get_main_option("script_location").endswith("alembic")
    assert config.get_main_option("sqlalchemy.url") == url


def test_migrate_creates_tables(tmp_path):
    """Test upgrade head creates both datapoint tables"""
    from sqlalchemy import create_engine, inspect

    m = importlib.import_module("cli.migrations")
    url = f"sqlite:///{tmp_path / 'dp.db'}"

    assert m.main(["--database-url", url, "migrate"]) == 0

    engine = create_engine(url)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert {"accepted", "rejected", "alembic_version"} <= tables


def test_unknown_command_exits():
    m = importlib.import_module("cli.migrations")
    with pytest.raises(SystemExit):
        m.main(["repair"])
