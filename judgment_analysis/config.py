"""
Judgment Analysis Configuration Module
Centralized configuration for the extraction, chunking and analysis pipeline.
"""

import os
from pathlib import Path

import yaml

# Debug Mode Configuration
DEBUG_MODE = os.environ.get('DEBUG', 'false').lower() == 'true'

# Offline mode swaps the live Ollama backend for the deterministic local generator
OFFLINE_MODE = os.environ.get('OFFLINE_MODE', 'false').lower() == 'true'

# Application Paths
APP_NAME = "JudgmentAnalysis"
APPDATA_DIR = Path(
    os.environ.get(
        'JUDGMENT_ANALYSIS_HOME',
        Path(os.environ.get('APPDATA', os.path.expanduser('~/.config'))) / APP_NAME,
    )
)
LOGS_DIR = APPDATA_DIR / "logs"

# Ensure directories exist
for directory in [APPDATA_DIR, LOGS_DIR]:
    directory.mkdir(parents=True, exist_ok=True)

# Logging
LOG_FILE = LOGS_DIR / "processing.log"
DEBUG_FLOW_FILE = LOGS_DIR / "debug_flow.txt"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Extraction
MIN_TEXT_LENGTH = 50  # Characters per page below which a PDF is treated as scanned
OCR_DPI = 300
OCR_LANGUAGE = "eng"
OCR_TEMP_PREFIX = "judgment-ocr-"

# Chunking (all sizes in characters)
MAX_CHUNK_SIZE = 1000
MIN_CHUNK_SIZE = 200
OVERLAP_SIZE = 100
SENTENCE_SEARCH_WINDOW = 200  # Tail of a window searched for a sentence break

# Step pipeline
MAX_CHUNKS_PER_STEP = 20
STEP_TEMPERATURE = 0.3
STEP_TOKEN_BUDGET = 4000

# Retry policy for generation calls
RETRY_MAX_ATTEMPTS = 3  # First call plus two retries
RETRY_BASE_DELAY_SECONDS = 1.0
RETRY_BACKOFF_MULTIPLIER = 2.0
RETRY_MAX_DELAY_SECONDS = 30.0

# Offline generator
OFFLINE_PREVIEW_CHARS = 500

# AI Model Configuration
OLLAMA_API_BASE = os.environ.get('OLLAMA_API_BASE', "http://localhost:11434")
OLLAMA_MODEL_NAME = os.environ.get('OLLAMA_MODEL_NAME', "mistral:7b-instruct")
OLLAMA_TIMEOUT_SECONDS = int(os.environ.get('OLLAMA_TIMEOUT_SECONDS', '300'))
OLLAMA_HEALTH_TIMEOUT_SECONDS = 5

# --- Model Configuration System ---
MODEL_CONFIG_FILE = Path(__file__).parent / "data" / "models.yaml"
MODEL_CONFIGS = {}

_FALLBACK_MODEL_CONFIG = {
    'context_window': 4096,
    'max_output_tokens': STEP_TOKEN_BUDGET,
}


def load_model_configs():
    """Loads model configurations from data/models.yaml."""
    global MODEL_CONFIGS
    try:
        with open(MODEL_CONFIG_FILE, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
            MODEL_CONFIGS = data.get('models', {}) or {}
        if DEBUG_MODE and MODEL_CONFIGS:
            from judgment_analysis.logging_config import debug_log
            debug_log(f"[Config] Loaded {len(MODEL_CONFIGS)} model configurations from {MODEL_CONFIG_FILE}")
    except FileNotFoundError:
        if DEBUG_MODE:
            from judgment_analysis.logging_config import debug_log
            debug_log(f"[Config] WARNING: Model config file not found at {MODEL_CONFIG_FILE}. Using fallback values.")
        MODEL_CONFIGS = {}
    except yaml.YAMLError as e:
        from judgment_analysis.logging_config import debug_log
        debug_log(f"[Config] ERROR: Failed to parse model config file: {e}")
        MODEL_CONFIGS = {}


def get_model_config(model_name: str) -> dict:
    """
    Returns the generation settings for a specific model, with fallbacks.

    Args:
        model_name: The Ollama model tag (e.g., 'mistral:7b-instruct').

    Returns:
        A dictionary with context_window and max_output_tokens.
    """
    if not MODEL_CONFIGS:
        load_model_configs()

    # 1. Exact model tag
    if model_name in MODEL_CONFIGS:
        return {**_FALLBACK_MODEL_CONFIG, **MODEL_CONFIGS[model_name]}

    # 2. Base name match (user has 'mistral:7b-instruct-q4', config has 'mistral:7b-instruct')
    base_name = model_name.split(':')[0]
    for name, config in MODEL_CONFIGS.items():
        if name.split(':')[0] == base_name:
            if DEBUG_MODE:
                from judgment_analysis.logging_config import debug_log
                debug_log(f"[Config] Found partial match for '{model_name}': using config for '{name}'.")
            return {**_FALLBACK_MODEL_CONFIG, **config}

    # 3. Default model
    if OLLAMA_MODEL_NAME in MODEL_CONFIGS:
        return {**_FALLBACK_MODEL_CONFIG, **MODEL_CONFIGS[OLLAMA_MODEL_NAME]}

    # 4. Hard-coded values
    return dict(_FALLBACK_MODEL_CONFIG)


# Load configs on module import
load_model_configs()
