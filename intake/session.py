"""State machine for the "add item by voice" flow.

The whole session is one immutable ``SessionState`` value and every user or
pipeline action is an event. ``reduce(state, event)`` returns the next state
or raises ``InvalidTransition``. Side effects (remote calls, releasing image
previews, handing data to the item form) are done by the driver in
``pipeline.py``, never here.

    images -> voice -> processing -> missing_fields | complete
    missing_fields -> supplemental_voice -> processing -> ...
    missing_fields -> complete                (apply anyway, or manual fill)
    processing -> error -> voice              (try again, images kept)
    any -> images                             (start over)
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple, Type

from .errors import ErrorCategory
from .hints import troubleshooting_tip
from .images import TempImage
from .merge import apply_manual, merge_extraction
from .models import ExtractedFormData
from .validation import ExtractionValidation, is_blank, validate


class Step(str, Enum):
    IMAGES = "images"
    VOICE = "voice"
    PROCESSING = "processing"
    MISSING_FIELDS = "missing_fields"
    SUPPLEMENTAL_VOICE = "supplemental_voice"
    COMPLETE = "complete"
    ERROR = "error"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ProcessingStep:
    id: str
    label: str
    status: StepStatus = StepStatus.PENDING
    output: Optional[str] = None
    error: Optional[str] = None


PROCESSING_STEPS = (
    ("transcribe", "Transcribing audio"),
    ("images", "Processing images"),
    ("extract", "Extracting item details"),
)

SUPPLEMENT_SEPARATOR = "\n\nAdditional details: "


def fresh_processing_steps() -> Tuple[ProcessingStep, ...]:
    return tuple(ProcessingStep(id=step_id, label=label) for step_id, label in PROCESSING_STEPS)


@dataclass(frozen=True)
class SessionState:
    step: Step = Step.IMAGES
    images: Tuple[TempImage, ...] = ()
    transcript: Optional[str] = None
    extracted: Optional[ExtractedFormData] = None
    validation: Optional[ExtractionValidation] = None
    manual_inputs: Mapping[str, Any] = field(default_factory=dict)
    processing_steps: Tuple[ProcessingStep, ...] = ()
    supplemental: bool = False
    error: Optional[str] = None
    error_category: Optional[ErrorCategory] = None


def initial_state() -> SessionState:
    return SessionState()


class InvalidTransition(Exception):
    def __init__(self, step: Step, event: Any):
        self.step = step
        self.event = event
        super().__init__(f"{type(event).__name__} is not allowed while in {step.value}")


# Events

@dataclass(frozen=True)
class ImagesChanged:
    images: Tuple[TempImage, ...]


@dataclass(frozen=True)
class SkipImages:
    pass


@dataclass(frozen=True)
class ContinueToVoice:
    pass


@dataclass(frozen=True)
class BackToImages:
    pass


@dataclass(frozen=True)
class ProcessingStarted:
    pass


@dataclass(frozen=True)
class StepRunning:
    step_id: str


@dataclass(frozen=True)
class StepCompleted:
    step_id: str
    output: Optional[str] = None


@dataclass(frozen=True)
class StepFailed:
    step_id: str
    error: str
    message: str
    category: Optional[ErrorCategory] = None


@dataclass(frozen=True)
class TranscriptReceived:
    text: str


@dataclass(frozen=True)
class ExtractionSucceeded:
    data: ExtractedFormData


@dataclass(frozen=True)
class ManualInputsApplied:
    values: Mapping[str, Any]


@dataclass(frozen=True)
class RecordMore:
    pass


@dataclass(frozen=True)
class ApplyAnyway:
    pass


@dataclass(frozen=True)
class Retry:
    pass


@dataclass(frozen=True)
class StartOver:
    pass


@dataclass(frozen=True)
class Applied:
    pass


# Handlers

def _update_step(state: SessionState, step_id: str, **changes) -> SessionState:
    steps = tuple(
        replace(s, **changes) if s.id == step_id else s
        for s in state.processing_steps
    )
    return replace(state, processing_steps=steps)


def _settle(state: SessionState, data: ExtractedFormData) -> SessionState:
    validation = validate(data)
    return replace(
        state,
        extracted=data,
        validation=validation,
        supplemental=False,
        step=Step.COMPLETE if validation.is_complete else Step.MISSING_FIELDS,
    )


def _images_changed(state, event):
    return replace(state, images=tuple(event.images))


def _to_voice(state, event):
    return replace(state, step=Step.VOICE)


def _to_images(state, event):
    return replace(state, step=Step.IMAGES)


def _processing_started(state, event):
    if state.step is Step.SUPPLEMENTAL_VOICE:
        return replace(
            state,
            step=Step.PROCESSING,
            processing_steps=fresh_processing_steps(),
            supplemental=True,
            error=None,
            error_category=None,
        )
    # A first recording starts from nothing but the staged images
    return SessionState(
        step=Step.PROCESSING,
        images=state.images,
        processing_steps=fresh_processing_steps(),
    )


def _step_running(state, event):
    return _update_step(state, event.step_id, status=StepStatus.RUNNING)


def _step_completed(state, event):
    return _update_step(state, event.step_id, status=StepStatus.COMPLETED, output=event.output)


def _step_failed(state, event):
    state = _update_step(state, event.step_id, status=StepStatus.FAILED, error=event.error)
    return replace(
        state,
        step=Step.ERROR,
        supplemental=False,
        error=event.message,
        error_category=event.category,
    )


def _transcript_received(state, event):
    if state.supplemental and state.transcript:
        transcript = f"{state.transcript}{SUPPLEMENT_SEPARATOR}{event.text}"
    else:
        transcript = event.text
    state = _update_step(state, "transcribe", status=StepStatus.COMPLETED, output=event.text)
    return replace(state, transcript=transcript)


def _extraction_succeeded(state, event):
    fresh = event.data
    count = len(fresh.present())
    state = _update_step(
        state, "extract",
        status=StepStatus.COMPLETED,
        output=f"{count} field{'s' if count != 1 else ''} extracted",
    )

    if state.supplemental and state.extracted is not None:
        data = merge_extraction(state.extracted, fresh)
    else:
        data = fresh
    if state.manual_inputs:
        data = apply_manual(data, state.manual_inputs)
    return _settle(state, data)


def _manual_inputs_applied(state, event):
    missing = state.validation.missing_required if state.validation else ()
    accepted = {
        key: value
        for key, value in event.values.items()
        if key in missing and not is_blank(value) and not (isinstance(value, str) and not value.strip())
    }
    manual = {**state.manual_inputs, **accepted}
    data = apply_manual(state.extracted or ExtractedFormData(), manual)
    return _settle(replace(state, manual_inputs=manual), data)


def _record_more(state, event):
    return replace(state, step=Step.SUPPLEMENTAL_VOICE)


def _apply_anyway(state, event):
    return replace(state, step=Step.COMPLETE)


def _retry(state, event):
    return SessionState(step=Step.VOICE, images=state.images)


def _reset(state, event):
    return initial_state()


ALL_STEPS = frozenset(Step)

TRANSITIONS: Dict[Type, Tuple[FrozenSet[Step], Callable[[SessionState, Any], SessionState]]] = {
    ImagesChanged: (frozenset({Step.IMAGES}), _images_changed),
    SkipImages: (frozenset({Step.IMAGES}), _to_voice),
    ContinueToVoice: (frozenset({Step.IMAGES}), _to_voice),
    BackToImages: (frozenset({Step.VOICE}), _to_images),
    ProcessingStarted: (frozenset({Step.VOICE, Step.SUPPLEMENTAL_VOICE}), _processing_started),
    StepRunning: (frozenset({Step.PROCESSING}), _step_running),
    StepCompleted: (frozenset({Step.PROCESSING}), _step_completed),
    StepFailed: (frozenset({Step.PROCESSING}), _step_failed),
    TranscriptReceived: (frozenset({Step.PROCESSING}), _transcript_received),
    ExtractionSucceeded: (frozenset({Step.PROCESSING}), _extraction_succeeded),
    ManualInputsApplied: (frozenset({Step.MISSING_FIELDS}), _manual_inputs_applied),
    RecordMore: (frozenset({Step.MISSING_FIELDS}), _record_more),
    ApplyAnyway: (frozenset({Step.MISSING_FIELDS}), _apply_anyway),
    Retry: (frozenset({Step.ERROR}), _retry),
    StartOver: (ALL_STEPS, _reset),
    Applied: (frozenset({Step.COMPLETE}), _reset),
}


def reduce(state: SessionState, event: Any) -> SessionState:
    try:
        allowed, handler = TRANSITIONS[type(event)]
    except KeyError:
        raise TypeError(f"Unknown session event: {event!r}") from None
    if state.step not in allowed:
        raise InvalidTransition(state.step, event)
    return handler(state, event)


def describe(state: SessionState) -> dict:
    """JSON-friendly view of a session for the UI"""
    return {
        "step": state.step.value,
        "images": [img.summary() for img in state.images],
        "transcript": state.transcript,
        "extracted": state.extracted.model_dump(exclude_none=True) if state.extracted else None,
        "validation": state.validation.as_dict() if state.validation else None,
        "manual_inputs": dict(state.manual_inputs),
        "processing_steps": [
            {
                "id": s.id,
                "label": s.label,
                "status": s.status.value,
                "output": s.output,
                "error": s.error,
            }
            for s in state.processing_steps
        ],
        "error": state.error,
        "tip": troubleshooting_tip(state.error, state.error_category) if state.step is Step.ERROR else None,
    }
