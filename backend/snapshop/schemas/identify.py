from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class FailureReason(str, Enum):
    CREDENTIAL_MISSING = "credential_missing"
    CREDENTIAL_INVALID = "credential_invalid"
    TRANSPORT_OR_SERVICE_ERROR = "transport_or_service_error"
    MALFORMED_RESPONSE = "malformed_response"


class IdentificationSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["success"] = "success"
    name: str
    brand: str
    price: str
    confidence: str


class IdentificationFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["failure"] = "failure"
    reason: FailureReason
    detail: Optional[str] = None  # safe to show the user (key already redacted)


IdentificationOutcome = Annotated[
    Union[IdentificationSuccess, IdentificationFailure],
    Field(discriminator="kind"),
]
