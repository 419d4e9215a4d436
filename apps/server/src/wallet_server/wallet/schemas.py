from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import RequestInvalid

_SERIAL_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


class PassRequest(BaseModel):
    """
    Caller-supplied data for one Legacy Card pass.

    Wire names are camelCase (`serialNumber`, ...); Python code uses the
    snake_case attribute names.
    """

    model_config = ConfigDict(
        extra="ignore",
        str_strip_whitespace=True,
        populate_by_name=True,
        frozen=True,
    )

    serial_number: str = Field(alias="serialNumber", min_length=1)
    legacy_amount_display: str = Field(alias="legacyAmountDisplay", min_length=1)
    legacy_type: str = Field(alias="legacyType", min_length=1)
    withdrawal_rate_display: str = Field(default="", alias="withdrawalRateDisplay")
    success_probability_display: str = Field(default="", alias="successProbabilityDisplay")
    explanation_text: str = Field(default="", alias="explanationText")
    barcode_message: str = Field(default="", alias="barcodeMessage")

    # Raw numbers travel with the request but are not interpolated.
    legacy_amount: float | None = Field(default=None, alias="legacyAmount")
    withdrawal_rate: float | None = Field(default=None, alias="withdrawalRate")
    success_probability: float | None = Field(default=None, alias="successProbability")

    @field_validator("serial_number")
    @classmethod
    def _serial_is_path_safe(cls, v: str) -> str:
        if v in (".", "..") or not _SERIAL_RE.match(v):
            raise ValueError("serialNumber may only contain letters, digits, '.', '_' and '-' (max 128)")
        return v

    def template_values(self) -> dict[str, str]:
        """Placeholder name -> display string for pass.json."""
        return {
            "serialNumber": self.serial_number,
            "legacyAmountDisplay": self.legacy_amount_display,
            "legacyType": self.legacy_type,
            "withdrawalRateDisplay": self.withdrawal_rate_display,
            "successProbabilityDisplay": self.success_probability_display,
            "explanationText": self.explanation_text,
            "barcodeMessage": self.barcode_message,
        }


def parse_pass_request(data: Any) -> PassRequest:
    if isinstance(data, PassRequest):
        return data
    if not isinstance(data, dict):
        raise RequestInvalid("Request body must be a JSON object")
    try:
        return PassRequest.model_validate(data)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise RequestInvalid(f"Missing or invalid fields: {', '.join(fields)}") from e
