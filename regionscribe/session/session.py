# regionscribe/session/session.py
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from regionscribe.config.config import config
from regionscribe.generation.demux import DemuxResult, demultiplex
from regionscribe.generation.errors import RegionScribeError, ValidationError, ImageNotReadyError
from regionscribe.generation.orchestrator import (GenerationOrchestrator, GenerationJob, GenerationInput,
                                                  ChunkReceived, JobCancelled, JobFailed, JobFinished)
from regionscribe.inference.interface import InferenceClient, GenerationParams
from regionscribe.regions.geometry import Rect, Size, RegionGeometry, to_natural
from regionscribe.regions.rasterizer import SourceImage, rasterize, rasterize_whole
from regionscribe.regions.store import Region, RegionStore

logger = logging.getLogger(__name__)

GENERATION_FAILED_MESSAGE = "Failed to generate text from image. Please try again."
SETUP_HELP = ("First time setup:\n"
              "1. Install Ollama from https://ollama.com\n"
              "2. Pull a vision model, for example: ollama pull granite3.2-vision\n"
              "3. Start the server with: ollama serve\n"
              "4. Check that base_url in config.ini points at it, then press Refresh.")
UNAVAILABLE_MESSAGE = ("Ollama service is not running or cannot be reached. "
                       "Please start Ollama and refresh.\n\n" + SETUP_HELP)
NO_MODELS_MESSAGE = ("Failed to connect to Ollama. Please check if Ollama is running and accessible.\n\n"
                     + SETUP_HELP)


@dataclass
class SessionCallbacks:
    """
    Notifications for the presentation layer. Called from whichever thread made the
    change, generation updates come from the worker thread.
    """
    on_regions_changed: Optional[Callable[[List[Region]], None]] = None
    on_crop_preview_changed: Optional[Callable[[Optional[bytes]], None]] = None
    on_generation_progress: Optional[Callable[[str], None]] = None
    on_job_state_changed: Optional[Callable[[DemuxResult], None]] = None
    on_error_changed: Optional[Callable[[Optional[str]], None]] = None
    on_models_changed: Optional[Callable[[List[str]], None]] = None
    on_images_changed: Optional[Callable[[List[SourceImage], int], None]] = None
    on_generating_changed: Optional[Callable[[bool], None]] = None


class GenerationWorker(threading.Thread):
    def __init__(self, session: "Session", job: GenerationJob):
        super().__init__(daemon=True, name="GenerationWorker")
        self.session = session
        self.job = job

    def run(self):
        logger.debug("Generation thread started.")
        try:
            for event in self.job:
                self.session._handle_event(self.job, event)
        except Exception:
            logger.exception("An unexpected error occurred in the generation loop.")
            self.session._report(GENERATION_FAILED_MESSAGE)
        finally:
            self.session._job_done(self.job)
        logger.debug("Generation thread stopped.")


class Session:
    """
    State of one user session: the uploaded images, the regions of the active
    image, the generation job and its output text.

    At most one job runs at a time; the text it produced stays editable and
    exportable after it ends.
    """

    def __init__(self, client: InferenceClient, callbacks: Optional[SessionCallbacks] = None):
        self.client = client
        self.orchestrator = GenerationOrchestrator(client)
        self.callbacks = callbacks or SessionCallbacks()

        self.images: List[SourceImage] = []
        self.selected_index = -1
        self.store = RegionStore()
        self.crop_preview: Optional[bytes] = None

        self.models: List[str] = []
        self.model = config.model
        self.endpoint_available: Optional[bool] = None

        self.job: Optional[GenerationJob] = None
        self.job_view: Optional[DemuxResult] = None
        self.output_text = ""
        self.error: Optional[str] = None

        self._worker: Optional[GenerationWorker] = None
        self._lock = threading.RLock()

    # --- notifications ---

    def _notify(self, name, *args):
        callback = getattr(self.callbacks, name)
        if callback is not None:
            callback(*args)

    def _report(self, message: Optional[str]):
        # one notice at a time, the newest replaces the previous
        self.error = message
        if message:
            logger.warning(f"Notice: {message}")
        self._notify('on_error_changed', message)

    def dismiss_error(self):
        self._report(None)

    # --- endpoint ---

    def check_availability(self) -> bool:
        self.endpoint_available = self.client.check_availability()
        if not self.endpoint_available:
            self._report(UNAVAILABLE_MESSAGE)
        return self.endpoint_available

    def refresh_models(self) -> List[str]:
        try:
            models = self.client.list_models()
        except RegionScribeError as e:
            logger.error(f"Failed to fetch models: {e}")
            models = []
            self.endpoint_available = False
            self._report(NO_MODELS_MESSAGE)
        else:
            self.endpoint_available = True
            if self.error in (UNAVAILABLE_MESSAGE, NO_MODELS_MESSAGE):
                self.dismiss_error()
        if not models:
            logger.info("No models found.")
        self.models = models
        if self.model not in models:
            self.model = models[0] if models else ""
        self._notify('on_models_changed', list(models))
        return models

    def select_model(self, model: str):
        self.model = model
        config.model = model

    # --- images ---

    @property
    def active_image(self) -> Optional[SourceImage]:
        if 0 <= self.selected_index < len(self.images):
            return self.images[self.selected_index]
        return None

    def add_images(self, paths: Iterable[str]) -> int:
        new_images = [SourceImage(path=p) for p in paths]
        if not new_images:
            return self.selected_index
        first_new = len(self.images)
        self.images.extend(new_images)
        logger.info(f"Added {len(new_images)} image(s).")
        return self.select_image(first_new)

    def add_image(self, image: SourceImage) -> int:
        self.images.append(image)
        return self.select_image(len(self.images) - 1)

    def select_image(self, index: int) -> int:
        if not 0 <= index < len(self.images):
            raise IndexError(f"No image at index {index}")
        self.selected_index = index
        self._set_store(self.store.reset_all())
        try:
            self.images[index].load()
        except ImageNotReadyError as e:
            self._report(str(e))
        self._notify('on_images_changed', list(self.images), index)
        return index

    # --- regions ---

    def _set_store(self, store: RegionStore, preview_from_last: bool = False):
        self.store = store
        self._notify('on_regions_changed', list(store))
        if store.is_empty:
            self._set_preview(None)
        elif preview_from_last:
            self._set_preview(store.last.raster)

    def _set_preview(self, raster: Optional[bytes]):
        if raster is self.crop_preview:
            return
        self.crop_preview = raster
        self._notify('on_crop_preview_changed', raster)

    def save_region(self, display_rect: Rect, display_size: Optional[Size] = None) -> Optional[Region]:
        """
        Captures a selection made on the displayed image.

        display_size is the size the image is rendered at; None means the rectangle
        is already in natural pixels.
        """
        source = self.active_image
        if source is None:
            self._report("Please upload an image first.")
            return None
        try:
            _ensure_ready(source)
            natural_size = source.natural_size
            natural_rect = to_natural(display_rect, display_size or natural_size, natural_size)
            raster = rasterize(source, natural_rect)
        except ImageNotReadyError as e:
            self._report(str(e))
            return None
        except ValueError as e:
            logger.warning(f"Ignoring selection: {e}")
            return None

        region = Region(geometry=RegionGeometry(natural_rect, natural_size), raster=raster)
        self._set_store(self.store.add(region))
        self._set_preview(raster)
        logger.info(f"Saved region {len(self.store)} at {natural_rect}.")
        return region

    def delete_region(self, region_id: str):
        self._set_store(self.store.remove(region_id), preview_from_last=True)

    def reset_regions(self):
        self._set_store(self.store.reset_all())

    # --- generation ---

    @property
    def is_generating(self) -> bool:
        return self.job is not None and not self.job.is_complete

    def build_params(self) -> GenerationParams:
        return GenerationParams(
            model=self.model,
            prompt=config.prompt,
            temperature=config.temperature,
            context_length=config.context_length,
            seed=config.seed,
        )

    def build_inputs(self) -> List[GenerationInput]:
        source = self.active_image
        if source is None:
            return []
        if not self.store.is_empty:
            return [GenerationInput(raster=r.raster, region_id=r.id) for r in self.store]
        _ensure_ready(source)
        return [GenerationInput(raster=rasterize_whole(source))]

    def generate(self, params: Optional[GenerationParams] = None) -> Optional[GenerationJob]:
        with self._lock:
            try:
                if self.is_generating:
                    raise ValidationError("generation already in progress")
                params = params or self.build_params()
                if not params.model:
                    raise ValidationError("no model selected")
                job = self.orchestrator.start(self.build_inputs(), params)
            except ValidationError as e:
                self._report(_validation_message(e))
                return None
            except ImageNotReadyError as e:
                self._report(str(e))
                return None

            self.dismiss_error()
            self.job = job
            self.job_view = job.view()
            self._set_output(job.cumulative_text)
            self._notify('on_job_state_changed', self.job_view)
            self._notify('on_generating_changed', True)
            self._worker = GenerationWorker(self, job)
            self._worker.start()
            return job

    def stop(self) -> bool:
        job = self.job
        if job is None:
            return False
        return job.cancel()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Blocks until the running job has finished. Returns False on timeout."""
        worker = self._worker
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    def _handle_event(self, job: GenerationJob, event):
        if isinstance(event, (ChunkReceived, JobCancelled)):
            self._set_output(event.cumulative_text)
        elif isinstance(event, JobFailed):
            self._report(GENERATION_FAILED_MESSAGE)
        elif isinstance(event, JobFinished):
            self._set_output(event.cumulative_text)

        view = job.view()
        self.job_view = view
        self._notify('on_job_state_changed', view)

    def _job_done(self, job: GenerationJob):
        with self._lock:
            if self.job is not job:
                return
            self._worker = None
        self._notify('on_generating_changed', False)

    # --- output ---

    def _set_output(self, text: str):
        self.output_text = text
        self._notify('on_generation_progress', text)

    def set_output_text(self, text: str):
        """Stores the user's edits of the generated text."""
        self.output_text = text
        job = self.job
        if job is not None and job.is_complete:
            # rebuilt from the markers left in the edited text
            self.job_view = demultiplex(text, len(job.inputs), finished=True)
            self._notify('on_job_state_changed', self.job_view)

    def clear_output(self):
        logger.info("Text cleared by user.")
        self._set_output("")

    def export_text(self, path: Optional[str] = None) -> str:
        path = path or config.export_filename
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.output_text)
        logger.info(f"Exported {len(self.output_text)} characters to {path}.")
        return path


def _ensure_ready(source: SourceImage):
    if source.decode_error is not None:
        raise source.decode_error
    if not source.is_ready:
        raise ImageNotReadyError(f"Image '{source.name}' is still loading.")

def _validation_message(error: ValidationError) -> str:
    messages = {
        "no model selected": "Please select a model first.",
        "no image or region selected": "Please upload an image first.",
        "generation already in progress": "Generation is already running. Stop it before starting a new one.",
    }
    return messages.get(str(error), str(error))
