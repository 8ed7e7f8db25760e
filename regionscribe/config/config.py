# regionscribe/config/config.py
import configparser
import logging

logger = logging.getLogger(__name__)

APP_NAME = "RegionScribe"
APP_VERSION = "v.0.1.0"
CONFIG_FILE = 'config.ini'

DEFAULT_PROMPT = ("Analyze the image and extract all visible text. Format your response as plain text, "
                  "preserving the layout as seen in the image.")

TEMPERATURE_RANGE = (0.0, 1.0)
CONTEXT_LENGTH_RANGE = (2048, 32768)


class Config:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        self._load()

    def _load(self):
        config = configparser.ConfigParser(interpolation=None)

        # Step 1: Set hardcoded defaults
        defaults = {
            'Settings': {
                'base_url': 'http://localhost:11434/api',
                'inference_provider': 'Ollama',
                'model': '',
                'prompt': DEFAULT_PROMPT,
                'connect_timeout': '10',
                'jpeg_quality': '90',
                'export_filename': 'extracted_text.txt'
            },
            'Generation': {
                'temperature': '0.2',
                'context_length': '8192',
                'seed': '42'
            }
        }
        config.read_dict(defaults)

        # Step 2: Load from config.ini, creating it if it doesn't exist
        try:
            if not config.read(CONFIG_FILE, encoding='utf-8'):
                with open(CONFIG_FILE, 'w', encoding='utf-8') as configfile:
                    config.write(configfile)
                logger.info("config.ini not found, created with default settings.")
            else:
                logger.info("Loaded settings from config.ini.")
        except (configparser.Error, OSError) as e:
            logger.warning(f"Warning: Could not read config.ini. Using defaults. Error: {e}")
            config = configparser.ConfigParser(interpolation=None)
            config.read_dict(defaults)

        try:
            self._apply(config)
        except ValueError as e:
            logger.warning(f"Invalid value in config.ini, falling back to defaults. Error: {e}")
            fallback = configparser.ConfigParser(interpolation=None)
            fallback.read_dict(defaults)
            self._apply(fallback)

    def _apply(self, config):
        self.base_url = config.get('Settings', 'base_url').rstrip('/')
        self.inference_provider = config.get('Settings', 'inference_provider')
        self.model = config.get('Settings', 'model')
        self.prompt = config.get('Settings', 'prompt')
        self.connect_timeout = config.getfloat('Settings', 'connect_timeout')
        self.jpeg_quality = config.getint('Settings', 'jpeg_quality')
        self.export_filename = config.get('Settings', 'export_filename')
        self.temperature = _clamp(config.getfloat('Generation', 'temperature'), *TEMPERATURE_RANGE)
        self.context_length = int(_clamp(config.getint('Generation', 'context_length'), *CONTEXT_LENGTH_RANGE))
        self.seed = config.getint('Generation', 'seed')

    def save(self):
        config = configparser.ConfigParser(interpolation=None)
        config['Settings'] = {
            'base_url': self.base_url,
            'inference_provider': self.inference_provider,
            'model': self.model,
            'prompt': self.prompt,
            'connect_timeout': str(self.connect_timeout),
            'jpeg_quality': str(self.jpeg_quality),
            'export_filename': self.export_filename
        }
        config['Generation'] = {
            'temperature': str(self.temperature),
            'context_length': str(self.context_length),
            'seed': str(self.seed)
        }
        with open(CONFIG_FILE, 'w', encoding='utf-8') as configfile:
            config.write(configfile)
        logger.info("Settings saved to config.ini.")


def _clamp(value, low, high):
    return max(low, min(high, value))


# The singleton instance
config = Config()
