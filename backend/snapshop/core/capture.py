"""
Capture sources.

The real camera lives outside this service (phone / browser). A capture source
only has to say whether a live frame is available and hand over one encoded
JPEG frame on demand. Failing to open a source is not an error: it just means
the scan runs in demo mode.
"""
import base64
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

logger = logging.getLogger(__name__)

ImageUse = Literal["identification", "display"]


class CapturedImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str = "image/jpeg"
    use: ImageUse = "identification"

    @field_validator("data")
    @classmethod
    def _not_empty(cls, v: bytes) -> bytes:
        if not v:
            raise ValueError("captured image has no encoded bytes")
        return v

    def b64(self) -> str:
        return base64.b64encode(self.data).decode("utf-8")

    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.b64()}"

    def for_display(self) -> "CapturedImage":
        return self.model_copy(update={"use": "display"})


class CaptureUnavailableError(RuntimeError):
    pass


class CaptureSource(ABC):
    @abstractmethod
    def open(self) -> bool:
        """Acquire the device. Returns False when no live capture is possible."""
        ...

    @abstractmethod
    def capture(self) -> CapturedImage:
        """Grab one frame. Only valid after a successful open()."""
        ...

    def release(self) -> None:
        return None

    @property
    def is_live(self) -> bool:
        return False


class NullCaptureSource(CaptureSource):
    """No camera at all (demo mode)."""

    def open(self) -> bool:
        return False

    def capture(self) -> CapturedImage:
        raise CaptureUnavailableError("no capture source available")


class BytesCaptureSource(CaptureSource):
    """A frame the client already encoded and uploaded."""

    def __init__(self, data: Optional[bytes], mime_type: str = "image/jpeg"):
        self._data = data or b""
        self._mime_type = mime_type or "image/jpeg"
        self._open = False

    def open(self) -> bool:
        self._open = bool(self._data)
        return self._open

    @property
    def is_live(self) -> bool:
        return self._open

    def capture(self) -> CapturedImage:
        if not self._open:
            raise CaptureUnavailableError("capture source is not open")
        return CapturedImage(data=self._data, mime_type=self._mime_type)

    def release(self) -> None:
        self._open = False


class FileCaptureSource(CaptureSource):
    """Reads a JPEG from disk on every capture (handy for local runs)."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._open = False

    def open(self) -> bool:
        self._open = self.path.is_file()
        if not self._open:
            logger.warning("capture: image file not found: %s", self.path)
        return self._open

    @property
    def is_live(self) -> bool:
        return self._open

    def capture(self) -> CapturedImage:
        if not self._open:
            raise CaptureUnavailableError("capture source is not open")
        try:
            data = self.path.read_bytes()
        except OSError as e:
            raise CaptureUnavailableError(f"cannot read {self.path}: {e}") from e
        if not data:
            raise CaptureUnavailableError(f"image file is empty: {self.path}")
        return CapturedImage(data=data)

    def release(self) -> None:
        self._open = False
