"""Project-wide constants for Reco."""

from pathlib import Path

PROJECT_NAME = "reco"
PROJECT_DISPLAY_NAME = "Reco Extranjería"
PROJECT_DESCRIPTION = "Metered immigration Q&A assistant with live search augmentation"
PROJECT_VERSION = "0.1.0"

# Data directories
DATA_DIR = Path.home() / f".{PROJECT_NAME}"
CONFIG_FILE = DATA_DIR / "config.toml"
MEMORY_DB = DATA_DIR / "reco.db"

# Model defaults
DEFAULT_MODEL = "gpt-4.1"
DEFAULT_MAX_OUTPUT_TOKENS = 500
DEFAULT_TEMPERATURE = 0.7

# Billing defaults (minor units are USD cents)
DEFAULT_MARGIN_MULTIPLIER = 1.15
DEFAULT_EXCHANGE_RATE = 0.92
DEFAULT_INITIAL_CREDITS = 300
DEFAULT_MESSAGE_QUOTA = 100

# Conversation defaults
MAX_CONTEXT_MESSAGES = 20
CONVERSATION_TIMEOUT_SECONDS = 30 * 60

# Search defaults
SEARCH_CACHE_TTL_SECONDS = 24 * 60 * 60
SEARCH_MAX_TOKENS = 500
SEARCH_TEMPERATURE = 0.1
SEARCH_PRICE_PER_MTOK_USD = 1.0
MAX_SOURCES = 5

DEFAULT_FOCUS_SITES = [
    "extranjeria.mitramiss.gob.es",
    "sede.administracion.gob.es",
    "boe.es",
    "sepe.es",
    "interior.gob.es",
    "inclusion.gob.es",
    "inem.es",
]

# Fixed reply when the model gateway cannot produce an answer
FALLBACK_ANSWER = (
    "Lo siento, tengo dificultades técnicas en este momento. "
    "Por favor, intenta de nuevo en unos minutos o contacta con un "
    "profesional para consultas urgentes."
)

# Credential patterns redacted from every log line
SENSITIVE_PATTERNS = [
    r"sk-[a-zA-Z0-9\-]{20,}",          # OpenAI keys (including sk-proj-...)
    r"pplx-[a-zA-Z0-9]{20,}",          # Perplexity keys
    r"Bearer\s+[a-zA-Z0-9\-_\.]{20,}",  # Authorization headers
    r"eyJ[a-zA-Z0-9\-_]{20,}\.[a-zA-Z0-9\-_]+\.[a-zA-Z0-9\-_]+",  # JWTs (service role keys)
]
