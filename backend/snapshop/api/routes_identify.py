from typing import Optional

from fastapi import APIRouter, File, Header, HTTPException, UploadFile
from pydantic import ValidationError

from snapshop.core.capture import CapturedImage
from snapshop.core.config import resolve_credential
from snapshop.core.gemini import GeminiClient
from snapshop.schemas.identify import FailureReason, IdentificationSuccess

router = APIRouter(prefix="/v1", tags=["identify"])

# failure reason -> HTTP status
_STATUS_FOR_FAILURE = {
    FailureReason.CREDENTIAL_MISSING: 401,
    FailureReason.CREDENTIAL_INVALID: 401,
    FailureReason.TRANSPORT_OR_SERVICE_ERROR: 502,
    FailureReason.MALFORMED_RESPONSE: 422,
}


@router.post("/identify", response_model=IdentificationSuccess)
async def identify(
    image: UploadFile = File(...),
    x_gemini_key: Optional[str] = Header(default=None),
):
    """
    Identification only: no progress, no fallback.
    A key in X-Gemini-Key overrides the server's GEMINI_API_KEY.
    """
    img_bytes = await image.read()
    try:
        captured = CapturedImage(data=img_bytes, mime_type=image.content_type or "image/jpeg")
    except ValidationError:
        raise HTTPException(status_code=422, detail={"error": "empty_image", "message": "Uploaded image is empty"})

    outcome = await GeminiClient().identify(captured, resolve_credential(x_gemini_key))

    if isinstance(outcome, IdentificationSuccess):
        return outcome

    raise HTTPException(
        status_code=_STATUS_FOR_FAILURE[outcome.reason],
        detail={
            "error": outcome.reason.value,
            "message": outcome.detail,
        },
    )
