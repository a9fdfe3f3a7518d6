"""Pydantic schemas: the wire shapes shared by REST, WebSocket, and replay.

Field names are snake_case in Python and camelCase on the wire. Always
serialize with ``by_alias=True`` (``model_dump_json`` on these models does
so through ``serialize_by_alias``).

RULES:
- Records leaving the process (REST responses, WebSocket frames) use these types.
- Datetimes are always timezone-aware UTC; naive values coming back from
  SQLite are treated as UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

MatchStatusType = Literal["scheduled", "live", "finished"]


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive input is assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class CamelModel(BaseModel):
    """Base model: camelCase aliases, accepts either spelling on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        validate_by_name=True,
        validate_by_alias=True,
        serialize_by_alias=True,
        from_attributes=True,
    )


# ─── Match Schemas ───


class MatchCreate(CamelModel):
    """Request body for POST /matches."""

    sport: str = Field(min_length=1)
    home_team: str = Field(min_length=1)
    away_team: str = Field(min_length=1)
    start_time: datetime
    end_time: datetime
    home_score: int = Field(default=0, ge=0)
    away_score: int = Field(default=0, ge=0)

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize_tz(cls, value: datetime) -> datetime:
        return as_utc(value)


class MatchRecord(CamelModel):
    """A match as returned by the API and carried in ``match_created`` frames."""

    id: str
    sport: str
    home_team: str
    away_team: str
    status: MatchStatusType
    start_time: datetime
    end_time: datetime | None = None
    home_score: int
    away_score: int
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def _enum_value(cls, value: Any) -> Any:
        return getattr(value, "value", value)

    @field_validator("start_time", "end_time", "created_at")
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


# ─── Commentary Schemas ───


class CommentaryCreate(CamelModel):
    """Request body for POST /matches/{id}/commentary."""

    minute: int | None = Field(default=None, ge=0)
    sequence: int
    period: str | None = None
    event_type: str = Field(min_length=1)
    actor: str | None = None
    team: str | None = None
    message: str = Field(min_length=1)
    metadata: dict[str, Any] | None = None
    tags: list[str] | None = None


class CommentaryRecord(CamelModel):
    """A commentary row as pushed to subscribers and returned by the API."""

    id: str
    match_id: str
    minute: int | None = None
    sequence: int
    period: str | None = None
    event_type: str
    actor: str | None = None
    team: str | None = None
    message: str
    metadata: dict[str, Any] | None = None
    tags: list[str] | None = None
    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _from_orm_metadata(cls, data: Any) -> Any:
        # The ORM attribute is ``extra_metadata``; SQLAlchemy owns ``metadata``
        if hasattr(data, "extra_metadata") and not isinstance(data, dict):
            return {
                "id": data.id,
                "match_id": data.match_id,
                "minute": data.minute,
                "sequence": data.sequence,
                "period": data.period,
                "event_type": data.event_type,
                "actor": data.actor,
                "team": data.team,
                "message": data.message,
                "metadata": data.extra_metadata,
                "tags": data.tags,
                "created_at": data.created_at,
            }
        return data

    @field_validator("created_at")
    @classmethod
    def _normalize_tz(cls, value: datetime) -> datetime:
        return as_utc(value)
