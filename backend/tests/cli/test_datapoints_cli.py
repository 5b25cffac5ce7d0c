import importlib
import json
import time

import pytest
from conftest import make_record
from datapoint_collector.core.config import Settings
from datapoint_collector.core.database import build_engine, create_tables
from datapoint_collector.services.datapoint_store import SQLDataPointStorage
from sqlalchemy import text


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Settings pointing at a file database, patched into the CLI"""
    settings = Settings(database_url=f"sqlite:///{tmp_path / 'dp.db'}")
    monkeypatch.setattr("datapoint_collector.core.config.get_settings", lambda: settings)
    return settings


@pytest.fixture
def cli():
    return importlib.import_module("cli.datapoints")


def _count(settings, table):
    engine = build_engine(settings.database_url)
    try:
        with engine.connect() as connection:
            return connection.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar()
    finally:
        engine.dispose()


def test_export_to_file(cli, settings, tmp_path, fixed_now):
    engine = build_engine(settings.database_url)
    create_tables(engine)
    storage = SQLDataPointStorage(engine)
    storage.write_accepted(make_record(1700000000, value=1.5), fixed_now)
    storage.write_accepted(make_record(1700000010, value=2.5), fixed_now)
    engine.dispose()
    out = tmp_path / "export.json"

    assert cli.main(["export", "--until", "2023-11-14T22:13:25Z", "--output", str(out)]) == 0

    assert json.loads(out.read_text()) == [{"time": "2023-11-14T22:13:20Z", "value": 1.5}]


def test_export_invalid_range(cli, settings):
    assert cli.main(["export", "--start", "not-a-time"]) == 2


def test_export_missing_tables(cli, settings, tmp_path):
    assert cli.main(["export", "--output", str(tmp_path / "out.json")]) == 1


def test_collect_once(cli, settings, monkeypatch):
    """Test one fresh datapoint is fetched and stored"""
    class FakeProducer:
        def __init__(self, url, timeout=None):
            self.url = url

        async def fetch(self):
            return make_record(int(time.time()), tags=["ok"])

        async def aclose(self):
            pass

    monkeypatch.setattr("datapoint_collector.core.producer_client.ProducerClient", FakeProducer)

    assert cli.main(["collect-once"]) == 0
    assert _count(settings, "accepted") == 1
    assert _count(settings, "rejected") == 0


def test_collect_once_producer_down(cli, settings, monkeypatch):
    from datapoint_collector.core.errors import TransportError

    class DownProducer:
        def __init__(self, url, timeout=None):
            pass

        async def fetch(self):
            raise TransportError("connection refused")

        async def aclose(self):
            pass

    monkeypatch.setattr("datapoint_collector.core.producer_client.ProducerClient", DownProducer)

    assert cli.main(["collect-once"]) == 1


def test_export_unwritable_output(cli, settings, tmp_path):
    engine = build_engine(settings.database_url)
    create_tables(engine)
    engine.dispose()

    assert cli.main(["export", "--output", str(tmp_path)]) == 1
