# regionscribe/generation/orchestrator.py
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

from regionscribe.generation.demux import (DemuxResult, InputState, STOP_SUFFIX, region_marker, region_boundary,
                                            split_stop_note)
from regionscribe.generation.errors import CancelledByUser, InferenceError, ValidationError
from regionscribe.inference.interface import InferenceClient, InferenceStream, GenerationParams
from regionscribe.utils.logger import TRACE_LEVEL_NUM

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationInput:
    """One unit of work: a region raster, or the whole image when no region was saved."""
    raster: bytes = field(repr=False)
    region_id: Optional[str] = None


# --- Job events ---
# Every event names the input it belongs to, so a consumer never needs to parse
# the text to know where a chunk goes.

@dataclass(frozen=True)
class JobEvent:
    job_id: str
    index: int


@dataclass(frozen=True)
class InputStarted(JobEvent):
    pass


@dataclass(frozen=True)
class ChunkReceived(JobEvent):
    chunk: str
    cumulative_text: str


@dataclass(frozen=True)
class InputCompleted(JobEvent):
    pass


@dataclass(frozen=True)
class JobCancelled(JobEvent):
    cumulative_text: str


@dataclass(frozen=True)
class JobFailed(JobEvent):
    error: InferenceError


@dataclass(frozen=True)
class JobFinished(JobEvent):
    cumulative_text: str
    states: Tuple[InputState, ...]


class GenerationJob:
    """
    Handle for one run of "Generate" over an ordered list of inputs.

    Iterating the job performs the work, one inference call at a time, and yields
    JobEvents. cancel() is safe to call from any thread while it runs.
    """

    def __init__(self, client: InferenceClient, inputs: Sequence[GenerationInput], params: GenerationParams):
        self.id = uuid.uuid4().hex
        self.client = client
        self.inputs = tuple(inputs)
        self.params = params

        self.states: List[InputState] = [InputState.QUEUED] * len(self.inputs)
        self.texts: List[str] = [""] * len(self.inputs)
        self.cumulative_text = ""
        self.is_complete = False
        self.was_cancelled = False
        self.error: Optional[InferenceError] = None

        self._cancel_event = threading.Event()
        self._lock = threading.Lock()
        self._current_stream: Optional[InferenceStream] = None
        self._started = False

    def cancel(self) -> bool:
        """
        Stops the job: aborts only the in-flight call and skips the inputs still queued.

        Returns False when there is nothing to stop.
        """
        with self._lock:
            if self.is_complete or self._cancel_event.is_set():
                return False
            self._cancel_event.set()
            stream = self._current_stream
        logger.info(f"Stopping generation job {self.id[:8]}...")
        if stream is not None:
            stream.cancel()
        return True

    def view(self) -> DemuxResult:
        """
        Per-input state and text as recorded from the stream events.

        Text a model writes never moves a chunk to another input here, even when
        it looks like a region marker.
        """
        texts = []
        stop_note = None
        for text in self.texts:
            if self.was_cancelled:
                text, note = split_stop_note(text)
                stop_note = stop_note or note
            texts.append(text.strip())
        return DemuxResult(tuple(self.states), tuple(texts), stop_note)

    def run(self) -> "GenerationJob":
        """Runs the job to the end, discarding the events."""
        for _ in self:
            pass
        return self

    def __iter__(self) -> Iterator[JobEvent]:
        with self._lock:
            if self._started:
                raise RuntimeError(f"Generation job {self.id} has already been started.")
            self._started = True
        return self._events()

    def _events(self) -> Iterator[JobEvent]:
        start_time = time.perf_counter()
        index = 0
        logger.info(f"Processing {len(self.inputs)} input(s) with model '{self.params.model}'...")
        try:
            for index, item in enumerate(self.inputs):
                self.states[index] = InputState.GENERATING
                yield InputStarted(self.id, index)
                if self._cancel_event.is_set():
                    raise CancelledByUser("Generation stopped by user")

                logger.info(f"Processing region {index + 1}/{len(self.inputs)}")
                stream = self.client.generate(item.raster, self.params)
                with self._lock:
                    self._current_stream = stream
                    cancelled_meanwhile = self._cancel_event.is_set()
                if cancelled_meanwhile:
                    stream.cancel()

                for chunk in stream:
                    if not chunk:
                        continue
                    self._append(index, chunk)
                    logger.log(TRACE_LEVEL_NUM, f"Region {index + 1} chunk: {chunk!r}")
                    yield ChunkReceived(self.id, index, chunk, self.cumulative_text)

                with self._lock:
                    self._current_stream = None
                self.states[index] = InputState.COMPLETE
                yield InputCompleted(self.id, index)

                if index < len(self.inputs) - 1:
                    self._append_boundary(index + 1)
        except CancelledByUser:
            logger.info(f"Generation was stopped by user during region {index + 1}.")
            self.was_cancelled = True
            self.cumulative_text += STOP_SUFFIX
            self.texts[index] += STOP_SUFFIX
            yield JobCancelled(self.id, index, self.cumulative_text)
        except InferenceError as e:
            logger.error(f"Generation failed on region {index + 1}: {e}")
            self.error = e
            yield JobFailed(self.id, index, e)
        except Exception as e:
            logger.exception(f"An unexpected error occurred while generating region {index + 1}.")
            self.error = InferenceError(f"Unexpected error: {e}")
            yield JobFailed(self.id, index, self.error)
        finally:
            with self._lock:
                stream = self._current_stream
                self._current_stream = None
            # the consumer closed the generator mid-stream
            if stream is not None and not self.is_complete:
                stream.cancel()
            self._finalize()

        logger.info(f"Generation complete in {time.perf_counter() - start_time:.2f}s, "
                    f"{len(self.cumulative_text)} characters.")
        yield JobFinished(self.id, index, self.cumulative_text, tuple(self.states))

    def _append(self, index: int, chunk: str):
        if not self.cumulative_text and index == 0:
            self.cumulative_text = region_marker(1)
        self.cumulative_text += chunk
        self.texts[index] += chunk

    def _append_boundary(self, next_index: int):
        if not self.cumulative_text:
            # keeps "Region 1:" ahead of "Region 2:" even if the first input produced nothing
            self.cumulative_text = region_marker(1)
        self.cumulative_text += region_boundary(next_index + 1)

    def _finalize(self):
        with self._lock:
            self.states = [InputState.COMPLETE] * len(self.inputs)
            self.is_complete = True


class GenerationOrchestrator:
    """Validates a generation request and hands back a job that runs it."""

    def __init__(self, client: InferenceClient):
        self.client = client

    def start(self, inputs: Sequence[GenerationInput], params: GenerationParams) -> GenerationJob:
        if not params.model:
            raise ValidationError("no model selected")
        if not inputs:
            raise ValidationError("no image or region selected")
        job = GenerationJob(self.client, inputs, params)
        logger.info(f"Created generation job {job.id[:8]} for {len(job.inputs)} input(s).")
        return job
