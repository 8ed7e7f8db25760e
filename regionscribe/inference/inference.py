# regionscribe/inference/inference.py
import logging

from regionscribe.config.config import config
from regionscribe.inference.interface import InferenceClient
from regionscribe.inference.providers.dummy.provider import DummyClient
from regionscribe.inference.providers.ollama.provider import OllamaClient

logger = logging.getLogger(__name__)

available_providers = {
    OllamaClient.NAME: OllamaClient,
    "Dummy": DummyClient,
}


def create_client(name: str = None) -> InferenceClient:
    name = name or config.inference_provider
    provider_cls = available_providers.get(name)
    if provider_cls is None:
        logger.warning(f"Unknown inference provider '{name}' in config, defaulting to {OllamaClient.NAME}.")
        provider_cls = OllamaClient
    logger.info(f"Using inference provider: {provider_cls.NAME}")
    return provider_cls()
