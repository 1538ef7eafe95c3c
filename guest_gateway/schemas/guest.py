from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Optional

MAX_IDENTIFIER_LENGTH = 128


class GuestMeta(BaseModel):
    """Out-of-band `_meta` block the client attaches to every guest request."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    client_token: Optional[str] = Field(default=None, alias="clientUuid", max_length=MAX_IDENTIFIER_LENGTH)
    device_signature: Optional[str] = Field(default=None, alias="deviceFingerprint", max_length=MAX_IDENTIFIER_LENGTH)
    unit_count: int = Field(default=1, alias="parallelCount")

    @field_validator("client_token", "device_signature", mode="before")
    @classmethod
    def _blank_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("unit_count", mode="before")
    @classmethod
    def _whole_number(cls, value: Any) -> Any:
        # null means the default; booleans and fractional counts are malformed
        if value is None:
            return 1
        if isinstance(value, bool):
            raise ValueError("parallelCount must be a whole number")
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError("parallelCount must be a whole number")
            return int(value)
        return value

    def has_identifiers(self) -> bool:
        return bool(self.client_token) and bool(self.device_signature)


class DemoUsage(BaseModel):
    """Usage block appended to successful upstream responses as `_demo`."""
    model_config = ConfigDict(populate_by_name=True)

    usage: int
    limit: int
    remaining: int
    device_id: str = Field(alias="deviceId")
