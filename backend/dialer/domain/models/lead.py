"""
Lead Snapshot Model
Immutable copy of a lead taken when a queue job is created
"""
import re
from typing import Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator, field_validator

E164_PATTERN = re.compile(r"^\+\d{10,15}$")


def to_e164(raw: Optional[str], default_country: str = "+1") -> str:
    """
    Normalize a phone number to E.164.

    10 digits are treated as NANP and get the default country code,
    11 digits starting with 1 get a leading '+'. Anything already
    starting with '+' is kept as typed (minus formatting).

    Returns:
        Normalized number, or "" if nothing usable was given
    """
    raw = (raw or "").strip()
    digits = re.sub(r"\D", "", raw)
    if not digits:
        return ""
    if raw.startswith("+"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"{default_country}{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return f"+{digits}"


def is_e164(number: str) -> bool:
    return bool(E164_PATTERN.match(number or ""))


class LeadSnapshot(BaseModel):
    """
    Lead as submitted to the queue.

    Accepts the dashboard's field names (first, last, phone, name) as well as
    the canonical ones. A bare `name` is split into first/last when those are
    missing. Frozen: later edits to the lead elsewhere never reach an
    in-flight job.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    first_name: str = Field(..., alias="first")
    last_name: str = Field(default="", alias="last")
    phone: str
    email: Optional[str] = None
    custom_fields: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def split_full_name(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        parts = str(data.get("name") or "").split()
        if parts:
            if not (data.get("first") or data.get("first_name")):
                data["first"] = parts[0]
            if not (data.get("last") or data.get("last_name")) and len(parts) > 1:
                data["last"] = " ".join(parts[1:])
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        return data

    @field_validator("first_name")
    @classmethod
    def require_first_name(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("last_name", mode="before")
    @classmethod
    def strip_last_name(cls, v: Optional[str]) -> str:
        return (v or "").strip()

    @field_validator("phone", mode="before")
    @classmethod
    def normalize_phone(cls, v: Any) -> str:
        normalized = to_e164(str(v) if v is not None else "")
        if not is_e164(normalized):
            raise ValueError(f'invalid phone number "{v}"')
        return normalized

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
