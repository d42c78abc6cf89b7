"""Configuration management for SellFast (ENV-only)."""

import os
import secrets
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables from .env, if present
load_dotenv()

DEFAULT_MODELS = {
    "google": "gemini-2.5-flash",
    "openai": "gpt-4o-mini",
}


def env_bool(name: str, default: bool = False) -> bool:
    """Convert environment variable to boolean."""
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


def env_number(name: str, default, cast=int):
    """Fetch a numeric environment variable or raise a ValueError with guidance."""
    val = os.getenv(name)
    if val is None or val.strip() == "":
        return default
    try:
        return cast(val.strip())
    except ValueError:
        raise ValueError(
            f"Invalid value for {name}: {val!r} (expected a {cast.__name__}).\n"
            f"Fix {name}=... in your .env file and re-run."
        ) from None


@dataclass
class Config:
    """Configuration object for the SellFast application."""
    llm_provider: str
    llm_model: str
    temperature: float
    timeout: int
    currency: str
    history_file: str
    secret_key: str
    host: str
    port: int
    debug: bool

    def validate_api_key(self) -> tuple[str, str]:
        """Validate and return (api_key, provider) where provider is 'openai' or 'google'.

        Provider selection logic:
        - If self.llm_provider is 'openai' or 'google', require the matching key.
        - If 'auto' (default), prefer GOOGLE/GEMINI if present; otherwise OPENAI_API_KEY.
        """
        provider_pref = (self.llm_provider or "auto").strip().lower()

        def missing_key_err() -> ValueError:
            return ValueError(
                "Missing API key in environment.\n"
                "Set one of:\n"
                "- GOOGLE_API_KEY or GEMINI_API_KEY (for Google Gemini models)\n"
                "- OPENAI_API_KEY (for OpenAI GPT models)\n"
                "You can also control selection via LLM_PROVIDER=google|openai (default: auto)."
            )

        if provider_pref in {"openai", "oai", "gpt"}:
            openai_key = os.getenv("OPENAI_API_KEY")
            if openai_key:
                return openai_key, "openai"
            raise missing_key_err()

        if provider_pref in {"google", "gemini"}:
            google_key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
            if google_key:
                return google_key, "google"
            raise missing_key_err()

        if provider_pref != "auto":
            raise ValueError(f"Unsupported LLM_PROVIDER '{self.llm_provider}' (use google, openai or auto).")

        # auto
        google_key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
        if google_key:
            return google_key, "google"
        openai_key = os.getenv("OPENAI_API_KEY")
        if openai_key:
            return openai_key, "openai"
        raise missing_key_err()

    def model_for(self, provider: str) -> str:
        """Return the configured model, or the provider default when LLM_MODEL is unset."""
        return (self.llm_model or "").strip() or DEFAULT_MODELS[provider]

    def log_config(self) -> None:
        """Log the effective configuration (ENV-driven)."""
        print("[config] Effective configuration:\n"
              f"  llm_provider={self.llm_provider}\n  llm_model={self.llm_model or '(default)'}\n"
              f"  temperature={self.temperature}\n  timeout={self.timeout}s\n"
              f"  currency={self.currency}\n  history_file={self.history_file}\n"
              f"  server={self.host}:{self.port} debug={self.debug}")


def build_config() -> Config:
    """Build configuration strictly from environment variables (.env)."""
    # LLM selection
    llm_provider = (os.getenv("LLM_PROVIDER") or "auto").strip().lower()
    llm_model = (os.getenv("LLM_MODEL") or "").strip()
    temperature = env_number("LLM_TEMPERATURE", 0.7, float)
    timeout = env_number("LLM_TIMEOUT", 60)

    # Listing + storage
    currency = (os.getenv("SELLFAST_CURRENCY") or "IDR").strip().upper()
    history_file = os.getenv("SELLFAST_HISTORY_FILE", "sellfast_storage.json")

    # Web server
    secret_key = os.getenv("SELLFAST_SECRET_KEY") or secrets.token_hex(16)
    host = os.getenv("SELLFAST_HOST", "127.0.0.1")
    port = env_number("SELLFAST_PORT", 5000)
    debug = env_bool("SELLFAST_DEBUG", False)

    return Config(
        llm_provider=llm_provider,
        llm_model=llm_model,
        temperature=temperature,
        timeout=timeout,
        currency=currency,
        history_file=history_file,
        secret_key=secret_key,
        host=host,
        port=port,
        debug=debug,
    )
