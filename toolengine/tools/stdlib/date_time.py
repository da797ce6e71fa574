"""
Date/time tool: current time, ISO-8601 parsing and formatting, and
duration arithmetic.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Literal
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, model_validator

from toolengine.tools.base import NativeFunction, Tool, ToolDefinition

logger = logging.getLogger(__name__)

DurationUnit = Literal["weeks", "days", "hours", "minutes", "seconds"]

UNIT_SECONDS: dict[str, float] = {
    "weeks": 7 * 24 * 3600.0,
    "days": 24 * 3600.0,
    "hours": 3600.0,
    "minutes": 60.0,
    "seconds": 1.0,
}


class DateTimeInput(BaseModel):
    operation: Literal["now", "parse", "format", "add", "subtract", "diff"] = Field(
        ...,
        description="Operation to perform"
    )
    value: str | None = Field(default=None, description="ISO-8601 date/time the operation applies to")
    other: str | None = Field(default=None, description="Second ISO-8601 value for 'diff'")
    amount: float | None = Field(default=None, description="Duration amount for 'add'/'subtract'")
    unit: DurationUnit = Field(default="days", description="Duration unit")
    pattern: str = Field(default="%Y-%m-%d %H:%M:%S", description="strftime pattern for 'format'")
    timezone: str = Field(default="UTC", description="IANA timezone for 'now'")

    @model_validator(mode="after")
    def check_required(self) -> "DateTimeInput":
        if self.operation != "now" and not self.value:
            raise ValueError(f"'value' is required for operation '{self.operation}'")
        if self.operation in ("add", "subtract") and self.amount is None:
            raise ValueError(f"'amount' is required for operation '{self.operation}'")
        if self.operation == "diff" and not self.other:
            raise ValueError("'other' is required for operation 'diff'")
        return self


class DateTimeOutput(BaseModel):
    result: str | float = Field(..., description="Operation result")
    details: dict[str, Any] = Field(default_factory=dict, description="Extra information")


def _zone(name: str):
    return timezone.utc if name.upper() == "UTC" else ZoneInfo(name)


def parse_iso(value: str) -> datetime:
    """
    Parse an ISO-8601 string, accepting a trailing 'Z'.

    Raises:
        ValueError: If the value is not ISO-8601
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise ValueError(f"Failed to parse date/time value: {value}") from e


def run_datetime(params: DateTimeInput) -> DateTimeOutput:
    logger.debug(f"Date/time operation: {params.operation}")

    if params.operation == "now":
        now = datetime.now(_zone(params.timezone))
        return DateTimeOutput(result=now.isoformat(), details={"timezone": params.timezone})

    moment = parse_iso(params.value)

    if params.operation == "parse":
        return DateTimeOutput(
            result=moment.isoformat(),
            details={
                "year": moment.year,
                "month": moment.month,
                "day": moment.day,
                "hour": moment.hour,
                "minute": moment.minute,
                "second": moment.second,
                "weekday": moment.strftime("%A"),
                "timezone": moment.tzname()
            }
        )

    if params.operation == "format":
        return DateTimeOutput(result=moment.strftime(params.pattern), details={"pattern": params.pattern})

    if params.operation in ("add", "subtract"):
        delta = timedelta(**{params.unit: params.amount})
        shifted = moment + delta if params.operation == "add" else moment - delta
        return DateTimeOutput(
            result=shifted.isoformat(),
            details={"start": moment.isoformat(), "amount": params.amount, "unit": params.unit}
        )

    other = parse_iso(params.other)
    seconds = (other - moment).total_seconds()
    return DateTimeOutput(
        result=seconds / UNIT_SECONDS[params.unit],
        details={"start": moment.isoformat(), "end": other.isoformat(), "unit": params.unit}
    )


def build_datetime_tool() -> Tool:
    return Tool(
        definition=ToolDefinition(
            name="datetime",
            description=(
                "Date/time operations: 'now', 'parse' and 'format' ISO-8601 values, "
                "'add'/'subtract' a duration, 'diff' two values in a unit"
            ),
            version="1.0.0",
            author="system",
            tags=("date", "time", "utility"),
            examples=(
                {"operation": "now"},
                {"operation": "add", "value": "2024-03-15T14:30:00Z", "amount": 2, "unit": "days"}
            )
        ),
        implementation=NativeFunction(
            execute=run_datetime,
            input_schema=DateTimeInput,
            output_schema=DateTimeOutput
        )
    )
