"""Drives one extraction session: remote calls, image previews and hand-off"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence, Tuple

from . import config
from .errors import AIServiceError, ErrorCategory, NoSpeechError
from .extraction import extract
from .images import (
    ImageUpload,
    PreviewStore,
    TempImage,
    encode_images,
    release_all,
    remove_image,
    set_primary,
    stage_images,
)
from .models import AIContext, ExtractedFormData
from .recording import AudioClip, Recorder, RecordingError, RecordingErrorKind, format_duration
from .session import (
    ApplyAnyway,
    Applied,
    BackToImages,
    ContinueToVoice,
    ExtractionSucceeded,
    ImagesChanged,
    InvalidTransition,
    ManualInputsApplied,
    ProcessingStarted,
    RecordMore,
    Retry,
    SessionState,
    SkipImages,
    StartOver,
    Step,
    StepCompleted,
    StepFailed,
    StepRunning,
    TranscriptReceived,
    describe,
    initial_state,
    reduce,
)
from .transcription import transcribe


logger = logging.getLogger(__name__)

Transcriber = Callable[[bytes, str], Awaitable[str]]
Extractor = Callable[[str, List[str], AIContext], Awaitable[ExtractedFormData]]
CompletionHandler = Callable[[ExtractedFormData, Tuple[TempImage, ...]], Any]

UNEXPECTED_MESSAGE = "An unexpected error occurred. Please try again."


@dataclass(frozen=True)
class Handoff:
    data: ExtractedFormData
    images: Tuple[TempImage, ...]
    result: Any = None


class ExtractionSession:
    """One user's pass through the voice intake flow.

    Only one recording is processed at a time: ``submit_recording`` is
    rejected unless the session is waiting for voice input. When the
    session is reset or closed while a remote call is in flight, the late
    result is dropped.
    """

    def __init__(
        self,
        previews: PreviewStore,
        context: Optional[AIContext] = None,
        transcriber: Transcriber = transcribe,
        extractor: Extractor = extract,
        on_complete: Optional[CompletionHandler] = None,
        max_images: int = config.MAX_IMAGES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.id = uuid.uuid4().hex
        self.previews = previews
        self.context = context or AIContext()
        self.max_images = max_images
        self.closed = False
        self.state: SessionState = initial_state()
        self.recorder: Optional[Recorder] = None
        self._transcriber = transcriber
        self._extractor = extractor
        self._on_complete = on_complete
        self._clock = clock
        self._epoch = 0
        self.last_active = clock()

    def _dispatch(self, event) -> SessionState:
        self.state = reduce(self.state, event)
        return self.state

    def _require(self, *steps: Step, event=None) -> None:
        if self.state.step not in steps:
            raise InvalidTransition(self.state.step, event)

    def touch(self) -> None:
        self.last_active = self._clock()

    def idle_for(self) -> float:
        return self._clock() - self.last_active

    def snapshot(self) -> dict:
        view = describe(self.state)
        view["id"] = self.id
        if self.recorder is not None and self.recorder.is_recording:
            view["recording"] = {
                "mime_type": self.recorder.mime_type,
                "elapsed": format_duration(self.recorder.elapsed),
            }
        else:
            view["recording"] = None
        return view

    # Recording

    def start_recording(self, supported_types: Optional[Sequence[str]] = None) -> str:
        """Begin collecting audio chunks; returns the container the client should record in"""
        self._require(Step.VOICE, Step.SUPPLEMENTAL_VOICE, event=ProcessingStarted())
        if self.recorder is not None and self.recorder.is_recording:
            raise RecordingError(RecordingErrorKind.FAILED, "already recording")
        recorder = Recorder(supported_types, clock=self._clock)
        mime_type = recorder.start()
        self.recorder = recorder
        return mime_type

    def add_audio_chunk(self, chunk: bytes) -> None:
        self._active_recorder().add_chunk(chunk)

    def cancel_recording(self) -> None:
        if self.recorder is not None:
            self.recorder.cancel()
            self.recorder = None

    async def finish_recording(self) -> SessionState:
        """Stop the recorder and process what it captured"""
        clip = self._active_recorder().stop()
        self.recorder = None
        if not clip.data:
            raise RecordingError(RecordingErrorKind.FAILED, "no audio was captured")
        return await self.submit_recording(clip)

    def _active_recorder(self) -> Recorder:
        if self.recorder is None or not self.recorder.is_recording:
            raise RecordingError(RecordingErrorKind.FAILED, "not recording")
        return self.recorder

    # Images

    def add_images(self, uploads: Sequence[ImageUpload]) -> List[str]:
        self._require(Step.IMAGES, event=ImagesChanged(()))
        images, errors = stage_images(self.state.images, uploads, self.previews, max_images=self.max_images)
        self._dispatch(ImagesChanged(images))
        return errors

    def remove_image(self, image_id: str) -> SessionState:
        self._require(Step.IMAGES, event=ImagesChanged(()))
        return self._dispatch(ImagesChanged(remove_image(self.state.images, image_id, self.previews)))

    def set_primary(self, image_id: str) -> SessionState:
        return self._dispatch(ImagesChanged(set_primary(self.state.images, image_id)))

    def skip_images(self) -> SessionState:
        return self._dispatch(SkipImages())

    def continue_to_voice(self) -> SessionState:
        return self._dispatch(ContinueToVoice())

    def back_to_images(self) -> SessionState:
        state = self._dispatch(BackToImages())
        self.cancel_recording()
        return state

    # Processing

    async def submit_recording(self, clip: AudioClip) -> SessionState:
        """Transcribe, encode staged images, extract, then validate"""
        self._dispatch(ProcessingStarted())
        epoch = self._epoch
        logger.info("Session %s: processing %s (%d bytes)", self.id, clip.filename, len(clip.data))

        self._dispatch(StepRunning("transcribe"))
        try:
            text = await self._transcriber(clip.data, clip.mime_type)
            if not text or not text.strip():
                raise NoSpeechError()
        except Exception as e:
            return self._fail(epoch, "transcribe", e, "Transcription failed")
        if self._is_stale(epoch):
            return self.state
        self._dispatch(TranscriptReceived(text.strip()))

        self._dispatch(StepRunning("images"))
        encoded = encode_images(self.state.images)
        if encoded:
            count = len(encoded)
            output = f"{count} image{'s' if count != 1 else ''} processed"
        else:
            output = "No images to process"
        self._dispatch(StepCompleted("images", output))

        self._dispatch(StepRunning("extract"))
        try:
            fresh = await self._extractor(self.state.transcript, encoded, self.context)
        except Exception as e:
            return self._fail(epoch, "extract", e, "Extraction failed")
        if self._is_stale(epoch):
            return self.state

        state = self._dispatch(ExtractionSucceeded(fresh))
        logger.info("Session %s: extraction settled in %s", self.id, state.step.value)
        return state

    def _is_stale(self, epoch: int) -> bool:
        if epoch != self._epoch:
            logger.info("Session %s: discarding result of an abandoned attempt", self.id)
            return True
        return False

    def _fail(self, epoch: int, step_id: str, exc: Exception, prefix: str) -> SessionState:
        if self._is_stale(epoch):
            return self.state

        if isinstance(exc, NoSpeechError):
            step_error, message = "No speech detected", exc.message
        elif isinstance(exc, AIServiceError):
            step_error, message = exc.message, f"{prefix}: {exc.message}"
        else:
            logger.exception("Session %s: unexpected failure in %s", self.id, step_id, exc_info=exc)
            step_error, message = str(exc) or UNEXPECTED_MESSAGE, UNEXPECTED_MESSAGE

        category = getattr(exc, "category", ErrorCategory.UNEXPECTED)
        logger.warning("Session %s: %s failed: %s", self.id, step_id, step_error)
        return self._dispatch(StepFailed(step_id, step_error, message, category))

    # Missing fields

    def apply_manual(self, values: Mapping[str, Any]) -> SessionState:
        return self._dispatch(ManualInputsApplied(dict(values)))

    def record_more(self) -> SessionState:
        return self._dispatch(RecordMore())

    def apply_anyway(self) -> SessionState:
        return self._dispatch(ApplyAnyway())

    # Exits and resets

    def retry(self) -> SessionState:
        self._dispatch(Retry())
        self._epoch += 1
        return self.state

    def start_over(self) -> SessionState:
        images = self.state.images
        self._dispatch(StartOver())
        self.cancel_recording()
        self._epoch += 1
        release_all(images, self.previews)
        return self.state

    def apply(self) -> Handoff:
        """Hand the finished record and staged images to the item form.

        Image previews are not released here; the receiver owns them. If the
        receiver raises, the session stays complete so the user can retry.
        """
        next_state = reduce(self.state, Applied())
        data = self.state.extracted or ExtractedFormData()
        images = self.state.images
        result = None
        if self._on_complete is not None:
            result = self._on_complete(data, images)

        self.state = next_state
        self._epoch += 1
        return Handoff(data=data, images=images, result=result)

    def close(self) -> None:
        """Abandon the session and release everything it still owns"""
        if self.closed:
            return
        self.closed = True
        self._epoch += 1
        self.cancel_recording()
        release_all(self.state.images, self.previews)
        self.state = initial_state()
