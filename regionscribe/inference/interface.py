# regionscribe/inference/interface.py
import abc
import threading
from dataclasses import dataclass
from typing import Iterator, List

from regionscribe.generation.errors import CancelledByUser


@dataclass(frozen=True)
class GenerationParams:
    """Everything a generation request needs besides the image itself."""
    model: str
    prompt: str
    temperature: float = 0.2
    context_length: int = 8192
    seed: int = 42


class InferenceStream(abc.ABC):
    """
    The incremental text of a single inference call.

    Iterating yields text chunks as they arrive. cancel() may be called from any
    thread; the iterator then raises CancelledByUser instead of yielding more.
    """

    def __init__(self):
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self):
        self._cancelled.set()
        self._abort()

    def _abort(self):
        """Interrupts a blocking read. Providers holding a connection close it here."""

    @abc.abstractmethod
    def _chunks(self) -> Iterator[str]:
        raise NotImplementedError

    def __iter__(self) -> Iterator[str]:
        if self.cancelled:
            raise CancelledByUser("Generation stopped by user")
        try:
            for chunk in self._chunks():
                if self.cancelled:
                    raise CancelledByUser("Generation stopped by user")
                yield chunk
        except CancelledByUser:
            raise
        except Exception as e:
            # a connection closed under a blocking read surfaces as whatever the transport raises
            if self.cancelled:
                raise CancelledByUser("Generation stopped by user") from e
            raise
        if self.cancelled:
            raise CancelledByUser("Generation stopped by user")


class InferenceClient(abc.ABC):
    """
    Abstract base class for a vision-capable text generation endpoint.

    Any class implementing this interface can be used by the session and the
    GenerationOrchestrator, so the backend can be swapped without touching them.
    """

    @property
    @abc.abstractmethod
    def NAME(self) -> str:
        """A user-friendly name for this provider."""
        raise NotImplementedError

    @abc.abstractmethod
    def check_availability(self) -> bool:
        """Returns True when the endpoint answers. Never raises."""
        raise NotImplementedError

    @abc.abstractmethod
    def list_models(self) -> List[str]:
        """
        Lists the model identifiers the endpoint can serve.

        Returns:
            The model names; an empty list is a valid answer.

        Raises:
            InferenceError: if the endpoint cannot be queried.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def generate(self, image: bytes, params: GenerationParams) -> InferenceStream:
        """
        Starts one generation for a single encoded image.

        Args:
            image: An encoded still image (JPEG).
            params: Model, prompt and sampling parameters.

        Returns:
            A cancellable stream of text chunks. The request itself is only made
            once the stream is iterated.
        """
        raise NotImplementedError
