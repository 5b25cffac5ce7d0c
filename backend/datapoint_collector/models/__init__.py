"""
SQLAlchemy models
"""
from datapoint_collector.core.database import Base
from datapoint_collector.models.datapoint import (AcceptedDataPoint,  # noqa: F401
                                                  RejectedDataPoint)

__all__ = [
    "Base",
    "AcceptedDataPoint",
    "RejectedDataPoint",
]
