"""
Scan orchestration.

    capture -> (fake progress || one Gemini call) -> reconcile -> settled | failed

State lives in a single immutable ScanState owned by ScanOrchestrator.
Every change goes through a pure transition function below and is pushed to
listeners. reset() bumps the state generation; anything a scan from an older
generation tries to commit afterwards is dropped.
"""
import asyncio
import logging
import random
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from snapshop.core import catalog
from snapshop.core.capture import CapturedImage, CaptureSource, CaptureUnavailableError, NullCaptureSource
from snapshop.core.config import Credential, resolve_credential, settings
from snapshop.core.gemini import GeminiClient
from snapshop.core.progress import ProgressHandle, ProgressSimulator
from snapshop.schemas.identify import (
    FailureReason,
    IdentificationFailure,
    IdentificationOutcome,
    IdentificationSuccess,
)
from snapshop.schemas.scan import ScanPhase, ScanResult, ScanState

logger = logging.getLogger(__name__)

KEY_MISSING_MESSAGE = "Auto-injection failed: Key is missing. Please enter one in Settings."
KEY_INVALID_MESSAGE = "Auto-injected key is invalid. Please enter a valid key in Settings."
UNKNOWN_ERROR_MESSAGE = "Unknown API Error"

ScanListener = Callable[[ScanState], None]


class Identifier(Protocol):
    async def identify(self, image: CapturedImage, credential: Optional[Credential]) -> IdentificationOutcome:
        ...


class ScanInProgressError(RuntimeError):
    pass


# =============================================================================
# Decision table
# =============================================================================

class Resolution(str, Enum):
    SETTLE_AI = "settle_ai"
    SETTLE_FALLBACK = "settle_fallback"
    FAIL_NEEDS_KEY = "fail_needs_key"
    FAIL_VERBATIM = "fail_verbatim"


NO_CAPTURE = "no_capture"
SUCCESS = "success"

# (what happened, was the credential user-supplied?) -> resolution
DECISION_TABLE: Dict[Tuple[str, bool], Resolution] = {
    (SUCCESS, False): Resolution.SETTLE_AI,
    (SUCCESS, True): Resolution.SETTLE_AI,
    (FailureReason.CREDENTIAL_MISSING.value, False): Resolution.FAIL_NEEDS_KEY,
    (FailureReason.CREDENTIAL_MISSING.value, True): Resolution.FAIL_NEEDS_KEY,
    (FailureReason.CREDENTIAL_INVALID.value, False): Resolution.FAIL_NEEDS_KEY,
    (FailureReason.CREDENTIAL_INVALID.value, True): Resolution.FAIL_NEEDS_KEY,
    (FailureReason.TRANSPORT_OR_SERVICE_ERROR.value, False): Resolution.SETTLE_FALLBACK,
    (FailureReason.TRANSPORT_OR_SERVICE_ERROR.value, True): Resolution.FAIL_VERBATIM,
    (FailureReason.MALFORMED_RESPONSE.value, False): Resolution.SETTLE_FALLBACK,
    (FailureReason.MALFORMED_RESPONSE.value, True): Resolution.FAIL_VERBATIM,
    (NO_CAPTURE, False): Resolution.SETTLE_FALLBACK,
    (NO_CAPTURE, True): Resolution.SETTLE_FALLBACK,
}


def outcome_key(outcome: Optional[IdentificationOutcome]) -> str:
    """None means the identification step never ran (no live capture)."""
    if outcome is None:
        return NO_CAPTURE
    if isinstance(outcome, IdentificationSuccess):
        return SUCCESS
    return outcome.reason.value


def decide(outcome: Optional[IdentificationOutcome], user_supplied: bool) -> Resolution:
    return DECISION_TABLE[(outcome_key(outcome), bool(user_supplied))]


# =============================================================================
# Pure transitions
# =============================================================================

def _evolve(state: ScanState, **changes) -> ScanState:
    # Re-run validation so phase/result invariants hold for every new state
    return ScanState(**{**dict(state), **changes})


def open_camera(state: ScanState) -> ScanState:
    return _evolve(state, view="camera", phase=ScanPhase.IDLE, error_message=None, result=None, progress=0)


def begin_scan(state: ScanState) -> ScanState:
    return _evolve(state, phase=ScanPhase.CAPTURING, progress=0, error_message=None, result=None)


def await_identification(state: ScanState) -> ScanState:
    return _evolve(state, phase=ScanPhase.AWAITING_IDENTIFICATION)


def advance_progress(state: ScanState, percent: int) -> ScanState:
    return _evolve(state, progress=max(state.progress, min(percent, 100)))


def complete_progress(state: ScanState) -> ScanState:
    return _evolve(state, progress=100)


def begin_reconcile(state: ScanState) -> ScanState:
    return _evolve(state, phase=ScanPhase.RECONCILING)


def settle(state: ScanState, result: ScanResult) -> ScanState:
    return _evolve(state, phase=ScanPhase.SETTLED, result=result, error_message=None, view="results")


def fail(state: ScanState, message: str, *, needs_key: bool = False) -> ScanState:
    return _evolve(
        state,
        phase=ScanPhase.FAILED,
        result=None,
        error_message=message,
        show_settings=state.show_settings or needs_key,
        view="camera",
    )


def reset_state(state: ScanState) -> ScanState:
    # the user's key and the settings panel survive a reset
    return ScanState(custom_key=state.custom_key, show_settings=state.show_settings, generation=state.generation + 1)


def set_custom_key(state: ScanState, key: Optional[str]) -> ScanState:
    return _evolve(state, custom_key=(key or "").strip())


def close_settings(state: ScanState) -> ScanState:
    return _evolve(state, show_settings=False)


def reconcile(
    state: ScanState,
    outcome: Optional[IdentificationOutcome],
    credential: Optional[Credential],
    image: Optional[CapturedImage] = None,
    rng: Optional[random.Random] = None,
) -> ScanState:
    """Apply the decision table and return the terminal state."""
    user_supplied = credential is not None and credential.user_supplied
    resolution = decide(outcome, user_supplied)

    if resolution == Resolution.SETTLE_AI and isinstance(outcome, IdentificationSuccess):
        return settle(
            state,
            ScanResult(
                name=outcome.name,
                brand=outcome.brand,
                price=outcome.price,
                confidence=outcome.confidence,
                image=image.for_display().data_url() if image is not None else "",
                ai_powered=True,
            ),
        )

    if resolution == Resolution.SETTLE_FALLBACK:
        return settle(state, catalog.pick_random(rng).to_result())

    if not isinstance(outcome, IdentificationFailure):
        raise ValueError(f"no resolution {resolution.value} for outcome {outcome_key(outcome)}")

    if resolution == Resolution.FAIL_NEEDS_KEY:
        if outcome.reason == FailureReason.CREDENTIAL_MISSING:
            return fail(state, KEY_MISSING_MESSAGE, needs_key=True)
        return fail(state, KEY_INVALID_MESSAGE, needs_key=True)

    return fail(state, outcome.detail or UNKNOWN_ERROR_MESSAGE)


# =============================================================================
# Orchestrator
# =============================================================================

class ScanOrchestrator:
    def __init__(
        self,
        client: Optional[Identifier] = None,
        capture_source: Optional[CaptureSource] = None,
        *,
        progress: Optional[ProgressSimulator] = None,
        demo_delay: Optional[float] = None,
        settle_delay: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        self.client = client or GeminiClient()
        self.capture_source = capture_source or NullCaptureSource()
        self.progress = progress or ProgressSimulator(
            interval=settings.PROGRESS_INTERVAL_SECONDS,
            step=settings.PROGRESS_STEP,
            ceiling=settings.PROGRESS_CEILING,
        )
        self.demo_delay = settings.DEMO_DELAY_SECONDS if demo_delay is None else demo_delay
        self.settle_delay = settings.SETTLE_DELAY_SECONDS if settle_delay is None else settle_delay
        self.rng = rng

        self._state = ScanState()
        self._listeners: List[ScanListener] = []
        self._progress_handle: Optional[ProgressHandle] = None
        self._active_generation: Optional[int] = None

    # ---- state plumbing ----------------------------------------------------

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._active_generation is not None and self._active_generation == self._state.generation

    def subscribe(self, listener: ScanListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, new_state: ScanState) -> None:
        self._state = new_state
        for listener in list(self._listeners):
            listener(new_state)

    def _apply(self, generation: int, transition: Callable[..., ScanState], *args, **kwargs) -> bool:
        """Commit transition(state, ...) unless the scan went stale."""
        if self._state.generation != generation:
            logger.debug("scan: dropping stale %s (gen %s != %s)", transition.__name__, generation, self._state.generation)
            return False
        self._commit(transition(self._state, *args, **kwargs))
        return True

    # ---- user actions ------------------------------------------------------

    def open_camera(self) -> bool:
        """Switch to the camera view. Returns whether a live capture is available."""
        live = self.capture_source.open()
        if not live:
            logger.info("scan: no capture source, demo mode")
        self._commit(open_camera(self._state))
        return live

    def set_custom_key(self, key: Optional[str]) -> None:
        self._commit(set_custom_key(self._state, key))

    def close_settings(self) -> None:
        self._commit(close_settings(self._state))

    def resolve_credential(self) -> Optional[Credential]:
        return resolve_credential(self._state.custom_key)

    def reset(self) -> None:
        self.progress.stop(self._progress_handle)
        self._progress_handle = None
        self.capture_source.release()
        self._commit(reset_state(self._state))

    # ---- the scan ----------------------------------------------------------

    async def scan(self) -> ScanState:
        """Scan with whatever the app currently has: its capture source and key."""
        return await self.run_scan(self.capture_source.is_live, self.resolve_credential())

    async def run_scan(self, has_live_capture: bool, credential: Optional[Credential]) -> ScanState:
        if self.busy:
            raise ScanInProgressError("a scan is already running")

        generation = self._state.generation
        self._active_generation = generation
        try:
            await self._run(generation, has_live_capture, credential)
        finally:
            if self._active_generation == generation:
                self._active_generation = None
        return self._state

    async def _run(self, generation: int, has_live_capture: bool, credential: Optional[Credential]) -> None:
        logger.info(
            "scan: start live=%s credential=%s",
            has_live_capture,
            credential.source if credential else None,
        )
        self._apply(generation, begin_scan)

        handle = self.progress.start(lambda pct: self._apply(generation, advance_progress, pct))
        self._progress_handle = handle

        outcome: Optional[IdentificationOutcome] = None
        image: Optional[CapturedImage] = None
        try:
            if has_live_capture:
                image = self._capture()

            self._apply(generation, await_identification)

            if image is not None:
                outcome = await self._identify(image, credential)
            else:
                await asyncio.sleep(self.demo_delay)
        finally:
            self.progress.stop(handle)
            if self._progress_handle is handle:
                self._progress_handle = None

        if not self._apply(generation, complete_progress):
            return
        self._apply(generation, begin_reconcile)

        await asyncio.sleep(self.settle_delay)

        if not self._apply(generation, reconcile, outcome, credential, image, self.rng):
            return

        final = self._state
        if final.phase == ScanPhase.SETTLED:
            self.capture_source.release()
            logger.info("scan: settled name=%r ai_powered=%s", final.result.name, final.result.ai_powered)
        else:
            logger.info("scan: failed message=%r", final.error_message)

    def _capture(self) -> Optional[CapturedImage]:
        try:
            return self.capture_source.capture()
        except CaptureUnavailableError as e:
            logger.warning("scan: capture failed, falling back to demo: %s", e)
            return None

    async def _identify(self, image: CapturedImage, credential: Optional[Credential]) -> IdentificationOutcome:
        try:
            return await self.client.identify(image, credential)
        except Exception as e:
            logger.exception("scan: identification crashed")
            return IdentificationFailure(
                reason=FailureReason.TRANSPORT_OR_SERVICE_ERROR,
                detail=str(e) or UNKNOWN_ERROR_MESSAGE,
            )
