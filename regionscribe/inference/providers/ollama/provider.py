# regionscribe/inference/providers/ollama/provider.py
import base64
import json
import logging
import threading
import time
from typing import Iterator, List, Optional

import requests

from regionscribe.config.config import config
from regionscribe.generation.errors import InferenceError
from regionscribe.inference.interface import InferenceClient, InferenceStream, GenerationParams

logger = logging.getLogger(__name__)


class OllamaStream(InferenceStream):
    def __init__(self, session: requests.Session, url: str, payload: dict, connect_timeout: float):
        super().__init__()
        self._session = session
        self._url = url
        self._payload = payload
        self._connect_timeout = connect_timeout
        self._response: Optional[requests.Response] = None
        self._lock = threading.Lock()

    def _abort(self):
        with self._lock:
            if self._response is not None:
                logger.info("Aborting ongoing request.")
                self._response.close()

    def _chunks(self) -> Iterator[str]:
        start_time = time.perf_counter()
        try:
            # no read timeout: a slow model keeps the stream open until done or cancelled
            response = self._session.post(self._url, json=self._payload, stream=True,
                                          timeout=(self._connect_timeout, None))
        except requests.RequestException as e:
            raise InferenceError(f"Request to {self._url} failed: {e}") from e

        with self._lock:
            self._response = response
        try:
            if self.cancelled:
                return
            if not response.ok:
                raise InferenceError(f"HTTP error! status: {response.status_code}, message: {response.text}")
            logger.debug(f"Response headers received in {time.perf_counter() - start_time:.2f}s. Streaming...")

            received = 0
            for line in response.iter_lines():
                if not line.strip():
                    continue
                try:
                    data = json.loads(line)
                except ValueError as e:
                    raise InferenceError(f"Malformed line in generation stream: {line[:200]!r}") from e
                if data.get('error'):
                    raise InferenceError(f"Ollama API error: {data['error']}")
                received += 1
                if data.get('response'):
                    yield data['response']
                if data.get('done'):
                    logger.debug(f"Generation done in {time.perf_counter() - start_time:.2f}s.")
                    return
            if not received and not self.cancelled:
                raise InferenceError("No valid response received from Ollama")
        except requests.RequestException as e:
            raise InferenceError(f"Generation stream failed: {e}") from e
        finally:
            with self._lock:
                self._response = None
            response.close()


class OllamaClient(InferenceClient):
    """
    Talks to an Ollama server over its HTTP API.

    /tags lists the installed models, /generate streams newline-delimited JSON
    objects whose 'response' field carries the next piece of text.
    """
    NAME = "Ollama"

    def __init__(self, base_url: Optional[str] = None, session: Optional[requests.Session] = None,
                 connect_timeout: Optional[float] = None):
        self.base_url = (base_url or config.base_url).rstrip('/')
        self.connect_timeout = connect_timeout if connect_timeout is not None else config.connect_timeout
        self._session = session or requests.Session()
        self._session.headers.update({'Content-Type': 'application/json'})

    def check_availability(self) -> bool:
        logger.info(f"Checking Ollama status at {self.base_url}...")
        try:
            self.list_models()
        except InferenceError as e:
            logger.error(f"Ollama service not running or connection issue: {e}")
            return False
        logger.info("Ollama is running.")
        return True

    def list_models(self) -> List[str]:
        try:
            response = self._session.get(f"{self.base_url}/tags", timeout=self.connect_timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise InferenceError(f"Failed to connect to Ollama: {e}") from e

        models = [m['name'] for m in data.get('models') or [] if m.get('name')]
        logger.info(f"Found {len(models)} models: {', '.join(models) or '-'}")
        return models

    def generate(self, image: bytes, params: GenerationParams) -> OllamaStream:
        payload = {
            'model': params.model,
            'prompt': params.prompt,
            'images': [base64.b64encode(image).decode('ascii')],
            'stream': True,
            'options': {
                'temperature': params.temperature,
                'num_ctx': params.context_length,
                'seed': params.seed,
            },
        }
        logger.info(f"Generating with model '{params.model}' (image {len(image) // 1024} KB, "
                    f"temperature={params.temperature}, num_ctx={params.context_length}, seed={params.seed})")
        return OllamaStream(self._session, f"{self.base_url}/generate", payload, self.connect_timeout)
