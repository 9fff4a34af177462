import os

# Upper bound on the script a user may submit; enforced by the editor form.
MAX_SCRIPT_CHARACTERS = 1875


class Config:
    """Base configuration shared across environments."""

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me")
    WTF_CSRF_TIME_LIMIT = None
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    MAX_SCRIPT_CHARACTERS = MAX_SCRIPT_CHARACTERS
    OLLAMA_BASE_URL = os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
    OLLAMA_MODEL = os.environ.get("OLLAMA_MODEL", "llama3")
    GENERATION_TIMEOUT_SECONDS = float(os.environ.get("GENERATION_TIMEOUT_SECONDS", "300"))
    GENERATION_MAX_RETRIES = int(os.environ.get("GENERATION_MAX_RETRIES", "3"))
    GENERATION_BACKOFF_SECONDS = float(os.environ.get("GENERATION_BACKOFF_SECONDS", "1.0"))


class TestConfig(Config):
    TESTING = True
    WTF_CSRF_ENABLED = False
