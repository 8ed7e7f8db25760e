# regionscribe/inference/providers/dummy/provider.py
import logging
from typing import Iterator, List

from regionscribe.inference.interface import InferenceClient, InferenceStream, GenerationParams

logger = logging.getLogger(__name__)

MOCK_TEXT = ("Lorem ipsum dolor sit amet,\n"
             "consectetur adipiscing elit.\n"
             "Sed do eiusmod tempor incididunt ut labore.")


class DummyStream(InferenceStream):
    def __init__(self, text: str, delay: float):
        super().__init__()
        self._text = text
        self._delay = delay

    def _chunks(self) -> Iterator[str]:
        words = self._text.split(' ')
        for i, word in enumerate(words):
            # returns early as soon as cancel() fires
            if self._cancelled.wait(self._delay):
                return
            yield word if i == len(words) - 1 else word + ' '


class DummyClient(InferenceClient):
    """
    A stand-in endpoint that streams a fixed text word by word.

    Lets the whole capture and generation flow run without an Ollama server.
    """
    NAME = "Dummy (Developer Template)"

    def __init__(self, text: str = MOCK_TEXT, delay: float = 0.05, models=None):
        self.text = text
        self.delay = delay
        self.models = list(models) if models is not None else ["dummy-vision"]

    def check_availability(self) -> bool:
        return True

    def list_models(self) -> List[str]:
        return list(self.models)

    def generate(self, image: bytes, params: GenerationParams) -> DummyStream:
        logger.info(f"{self.NAME} received an image of {len(image)} bytes. Streaming mock text.")
        return DummyStream(self.text, self.delay)
