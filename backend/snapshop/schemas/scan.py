from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ScanPhase(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    AWAITING_IDENTIFICATION = "awaiting_identification"
    RECONCILING = "reconciling"
    SETTLED = "settled"
    FAILED = "failed"


ViewName = Literal["home", "camera", "results"]


class ScanResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    brand: str
    price: str               # e.g. "$170.00"
    confidence: str          # e.g. "98%"
    image: str               # data: URL of the captured frame, or a catalog image URL
    ai_powered: bool = False


class ScanState(BaseModel):
    """
    Everything the presentation layer needs, in one immutable object.
    Transitions never mutate it; they build (and re-validate) the next one.
    """
    model_config = ConfigDict(frozen=True)

    phase: ScanPhase = ScanPhase.IDLE
    view: ViewName = "home"
    progress: int = Field(default=0, ge=0, le=100)
    result: Optional[ScanResult] = None
    error_message: Optional[str] = None
    show_settings: bool = False
    custom_key: str = Field(default="", repr=False)
    generation: int = 0

    @property
    def is_scanning(self) -> bool:
        return self.phase in (
            ScanPhase.CAPTURING,
            ScanPhase.AWAITING_IDENTIFICATION,
            ScanPhase.RECONCILING,
        )

    @model_validator(mode="after")
    def _phase_matches_payload(self) -> "ScanState":
        if self.phase == ScanPhase.SETTLED and self.result is None:
            raise ValueError("settled phase requires a result")
        if self.phase == ScanPhase.FAILED and self.result is not None:
            raise ValueError("failed phase cannot carry a result")
        return self


class ShoppingLink(BaseModel):
    store: str
    url: str


class ScanStateOut(BaseModel):
    phase: ScanPhase
    view: ViewName
    progress: int
    is_scanning: bool
    error_message: Optional[str] = None
    show_settings: bool = False
    has_custom_key: bool = False
    result: Optional[ScanResult] = None
    links: List[ShoppingLink] = Field(default_factory=list)
