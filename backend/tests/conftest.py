"""
Pytest configuration and fixtures
"""
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Tests never poll a real producer or touch the on-disk database
os.environ.setdefault("COLLECTOR_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "text")

from datapoint_collector.core.database import build_engine, create_tables
from datapoint_collector.core.wire_decoder import CandidateRecord
from datapoint_collector.services.datapoint_store import SQLDataPointStorage

# 3.14 as little-endian float32
PI_BYTES = [195, 245, 72, 64]


@pytest.fixture(scope="function")
def engine():
    """In-memory SQLite engine with the datapoint tables created"""
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def storage(engine):
    """SQL storage over the in-memory engine"""
    return SQLDataPointStorage(engine, batch_size=2)


@pytest.fixture
def fixed_now():
    return datetime(2023, 11, 14, 22, 20, 0, tzinfo=timezone.utc)


def make_record(seconds=1700000000, value=3.14, tags=None):
    """Candidate record with an epoch-seconds timestamp"""
    return CandidateRecord(
        timestamp=datetime.fromtimestamp(seconds, tz=timezone.utc),
        measurement=value,
        tags=["ok"] if tags is None else tags,
    )
