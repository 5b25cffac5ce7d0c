"""
Accepted and rejected datapoint tables
"""
from sqlalchemy import JSON, Column, DateTime, Float, Integer, String

from datapoint_collector.core.database import Base


class DataPointColumns:
    """Columns shared by both destinations"""
    id = Column(Integer, primary_key=True, autoincrement=True)
    time = Column(DateTime(timezone=True), nullable=False, index=True)  # producer timestamp
    value = Column(Float, nullable=True)  # NaN is stored as NULL
    tags = Column(JSON, nullable=False, default=list)
    received_at = Column(DateTime(timezone=True), nullable=False)  # set at admission


class AcceptedDataPoint(DataPointColumns, Base):
    """Datapoint that passed admission"""
    __tablename__ = "accepted"

    def __repr__(self):
        return f"<AcceptedDataPoint(time={self.time}, value={self.value})>"


class RejectedDataPoint(DataPointColumns, Base):
    """Datapoint kept for audit after failing admission"""
    __tablename__ = "rejected"

    reason = Column(String(32), nullable=False, index=True)  # 'stale', 'blocked-tag'
    detail = Column(String(255), nullable=True)

    def __repr__(self):
        return f"<RejectedDataPoint(time={self.time}, reason={self.reason})>"
