import os
import sys
import pathlib
import tempfile
import threading

import pytest
from PIL import Image

# Ensure the project root is on sys.path for test imports
ROOT_PATH = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT_PATH) not in sys.path:
    sys.path.insert(0, str(ROOT_PATH))

# the settings singleton writes config.ini into the working directory on import
os.chdir(tempfile.mkdtemp(prefix="regionscribe-tests-"))


from regionscribe.generation.errors import InferenceError  # noqa: E402
from regionscribe.inference.interface import InferenceClient, InferenceStream  # noqa: E402


class ScriptedStream(InferenceStream):
    def __init__(self, chunks, error=None, client=None):
        super().__init__()
        self.chunks = list(chunks)
        self.error = error
        self.client = client

    def _chunks(self):
        self.client.active_streams += 1
        self.client.max_active_streams = max(self.client.max_active_streams, self.client.active_streams)
        try:
            for chunk in self.chunks:
                yield chunk
            if self.error is not None:
                raise self.error
        finally:
            self.client.active_streams -= 1


class ScriptedClient(InferenceClient):
    """Answers the n-th generate call with the n-th script: a list of chunks, optionally followed by an error."""
    NAME = "Scripted"

    def __init__(self, scripts, models=("m",), available=True):
        self.scripts = list(scripts)
        self.models = list(models)
        self.available = available
        self.calls = []
        self.streams = []
        self.active_streams = 0
        self.max_active_streams = 0

    def check_availability(self):
        return self.available

    def list_models(self):
        if not self.available:
            raise InferenceError("connection refused")
        return list(self.models)

    def generate(self, image, params):
        self.calls.append((image, params))
        script = self.scripts[len(self.calls) - 1]
        chunks, error = (script, None) if isinstance(script, list) else script
        stream = ScriptedStream(chunks, error, client=self)
        self.streams.append(stream)
        return stream


class BlockingStream(InferenceStream):
    """Yields its chunks, then blocks like a stalled model until cancelled."""

    def __init__(self, chunks):
        super().__init__()
        self.chunks = list(chunks)
        self.started = threading.Event()

    def _chunks(self):
        for chunk in self.chunks:
            yield chunk
        self.started.set()
        self._cancelled.wait(5)


@pytest.fixture
def scripted_client():
    return ScriptedClient


@pytest.fixture
def blocking_stream():
    return BlockingStream


@pytest.fixture
def sample_image():
    """A 200x100 image, left half red, right half blue."""
    image = Image.new('RGB', (200, 100), (0, 0, 255))
    image.paste((255, 0, 0), (0, 0, 100, 100))
    return image
