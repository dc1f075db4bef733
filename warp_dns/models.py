from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ActionKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    NO_CHANGE = "no-change"


class Observation(BaseModel):
    device_id: str
    device_name: str


class ResolvedDevice(BaseModel):
    name: str
    address: str


class DnsRecord(BaseModel):
    """An A record as stored in the zone. ``content`` holds the IPv4 address."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    content: str
    type: str = "A"
    ttl: int = 1
    proxied: bool = False


class ZoneMutationPlan(BaseModel):
    kind: ActionKind
    name: str
    address: str
    record_id: Optional[str] = None
    delete_record: Optional[DnsRecord] = None


class ReconciliationAction(BaseModel):
    """
    Audit entry for one reconciled device.

    Serialised with the field names the Logpush caller already consumes:
    ``action``, ``name``, ``ipv4`` and, for a resolved duplicate,
    ``deleted_duplicate``.
    """

    model_config = ConfigDict(populate_by_name=True)

    kind: ActionKind = Field(serialization_alias="action")
    name: str
    address: str = Field(serialization_alias="ipv4")
    deleted_duplicate_name: Optional[str] = Field(default=None, serialization_alias="deleted_duplicate")

    def to_response(self):
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
