"""Time-series result model and frame shaping.

A query produces a :class:`TimeSeries`: two parallel sequences (timestamps and
numeric values) in the order the WEMS API returned them. The host renders
columnar frames, so :meth:`TimeSeries.to_frame` reshapes the series into a
single frame with a ``time`` and a ``value`` field.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, model_validator

from ..schemas.wems_contract import DataQuery, TimeSeriesDataPoint
from .utils.validation import json_safe_floats
from .utils.values import coerce_value

FRAME_NAME = "response"


class TimeSeries(BaseModel):
    """Normalized numeric series.

    Attributes
    ----------
    timestamps: List[datetime]
        Point instants (UTC), upstream order preserved.
    values: List[float]
        Numeric values, one per timestamp.
    """

    timestamps: List[datetime] = Field(default_factory=list)
    values: List[float] = Field(default_factory=list)

    @model_validator(mode="after")
    def _equal_length(self) -> "TimeSeries":
        if len(self.timestamps) != len(self.values):
            raise ValueError("timestamps and values must have equal length")
        return self

    def __len__(self) -> int:
        return len(self.values)

    @classmethod
    def from_points(cls, points: Sequence[TimeSeriesDataPoint]) -> "TimeSeries":
        """Build a series from upstream points without re-sorting."""
        timestamps = [
            datetime.fromtimestamp(point.time, tz=timezone.utc) for point in points
        ]
        values = [coerce_value(point.value) for point in points]
        return cls(timestamps=timestamps, values=values)

    def to_frame(self, unit: Optional[str] = None) -> Dict[str, Any]:
        """Return the series as a JSON-ready columnar frame.

        Times are epoch milliseconds. Non-finite values become ``null``.
        """
        value_field: Dict[str, Any] = {
            "name": "value",
            "type": "number",
            "values": json_safe_floats(self.values),
        }
        if unit:
            value_field["config"] = {"unit": unit}
        return {
            "name": FRAME_NAME,
            "fields": [
                {
                    "name": "time",
                    "type": "time",
                    "values": [int(ts.timestamp() * 1000) for ts in self.timestamps],
                },
                value_field,
            ],
        }


class QueryDescriptor(BaseModel):
    """One upstream time-series fetch.

    The four identifying fields are mandatory; they default to blank so that
    validation can report every missing one at once.
    """

    endpoint_id: str = ""
    appliance_id: str = ""
    service_uri: str = ""
    data_point: str = ""
    aggregate_function: Optional[str] = None
    create_empty_values: Optional[bool] = None
    time_from: datetime
    time_to: datetime
    max_data_points: int = 0
    interval: timedelta = timedelta(0)

    @classmethod
    def from_data_query(cls, query: DataQuery) -> "QueryDescriptor":
        """Build a descriptor from a host query."""
        return cls(
            endpoint_id=query.endpoint_id,
            appliance_id=query.appliance_id,
            service_uri=query.service_uri,
            data_point=query.data_point,
            aggregate_function=query.aggregate_function,
            create_empty_values=query.create_empty_values,
            time_from=query.time_range.from_,
            time_to=query.time_range.to,
            max_data_points=query.max_data_points,
            interval=timedelta(milliseconds=query.interval_ms),
        )
