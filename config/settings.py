# config/settings.py
import os
import sys
from dotenv import load_dotenv
from pydantic import ValidationError, Field
from pydantic_settings import BaseSettings
from util.enums import Environment


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(..., validation_alias="APP_ENV")
    REDIS_URL: str = Field(..., validation_alias="REDIS_URL")
    REDIS_HEALTH_CHECK_SECONDS: int = Field(
        default=30, validation_alias="REDIS_HEALTH_CHECK_SECONDS"
    )
    PERSISTENCE_TTL_SECONDS: int = Field(
        default=7 * 24 * 3600, validation_alias="PERSISTENCE_TTL_SECONDS"
    )
    CATALOG_PATH: str | None = Field(default=None, validation_alias="CATALOG_PATH")

    # CORS & Limits
    ALLOWED_ORIGIN: str = Field(
        default="http://localhost:3000", validation_alias="ALLOWED_ORIGIN"
    )
    RATE_LIMIT_TIMES: int = Field(default=30, validation_alias="RATE_LIMIT_TIMES")
    RATE_LIMIT_SECONDS: int = Field(default=60, validation_alias="RATE_LIMIT_SECONDS")
    TRUST_PROXY: bool = Field(default=False, validation_alias="TRUST_PROXY")

    # LLM provider
    LLM_PROVIDER: str = Field(default="openai", validation_alias="LLM_PROVIDER")
    LLM_API_URL: str = Field(
        default="https://api.openai.com/v1/chat/completions",
        validation_alias="LLM_API_URL",
    )
    LLM_API_KEY: str = Field(default="", validation_alias="LLM_API_KEY")
    LLM_MODEL: str = Field(default="gpt-4o", validation_alias="LLM_MODEL")
    ANTHROPIC_VERSION: str = Field(
        default="2023-06-01", validation_alias="ANTHROPIC_VERSION"
    )
    LLM_TEMPERATURE: float = Field(default=0.3, validation_alias="LLM_TEMPERATURE")
    LLM_MAX_TOKENS: int = Field(default=2000, validation_alias="LLM_MAX_TOKENS")
    LLM_TIMEOUT_SECONDS: float = Field(
        default=25.0, validation_alias="LLM_TIMEOUT_SECONDS"
    )
    LLM_MAX_ATTEMPTS: int = Field(default=3, validation_alias="LLM_MAX_ATTEMPTS")

    # Embedding Engine
    EMBEDDING_MODEL_NAME: str = "sentence-transformers/all-MiniLM-L6-v2"

    # Retrieval
    RRF_K: int = Field(default=60, validation_alias="RRF_K")
    KEYWORD_WEIGHT: float = Field(default=0.4, validation_alias="KEYWORD_WEIGHT")
    VECTOR_WEIGHT: float = Field(default=0.6, validation_alias="VECTOR_WEIGHT")
    VECTOR_THRESHOLD: float = Field(default=0.5, validation_alias="VECTOR_THRESHOLD")
    DYNAMIC_WEIGHTS: bool = Field(default=False, validation_alias="DYNAMIC_WEIGHTS")
    ALPHA_CACHE_MAX: int = Field(default=50, validation_alias="ALPHA_CACHE_MAX")
    ALPHA_CACHE_TTL_SECONDS: float = Field(
        default=300.0, validation_alias="ALPHA_CACHE_TTL_SECONDS"
    )

    # Ranking & scoring
    TEMPORAL_DECAY_FACTOR: float = Field(
        default=0.95, validation_alias="TEMPORAL_DECAY_FACTOR"
    )
    BASELINE_CONFIDENCE: float = Field(
        default=0.5, validation_alias="BASELINE_CONFIDENCE"
    )
    UNCERTAINTY_PENALTY: float = Field(
        default=0.1, validation_alias="UNCERTAINTY_PENALTY"
    )
    CALIBRATION_PATH: str | None = Field(
        default=None, validation_alias="CALIBRATION_PATH"
    )

    # Orchestration
    CONTEXT_TOKEN_LIMIT: int = Field(default=4000, validation_alias="CONTEXT_TOKEN_LIMIT")
    CONFIDENCE_THRESHOLD: float = Field(
        default=0.6, validation_alias="CONFIDENCE_THRESHOLD"
    )
    BATCH_PARALLEL_LIMIT: int = Field(default=3, validation_alias="BATCH_PARALLEL_LIMIT")
    EVIDENCE_MIN_QUALITY: float = Field(
        default=0.3, validation_alias="EVIDENCE_MIN_QUALITY"
    )
    EVIDENCE_MAX_ITEMS: int = Field(default=15, validation_alias="EVIDENCE_MAX_ITEMS")

    # Logging knobs
    LOGGER_NAME: str = "finex-matrix"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="app.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")

    # Prompts
    IMPACT_SYSTEM_PROMPT: str = (
        "You are a financial impact-assessment specialist. Assess the Scenario→Asset impact "
        "and output a JSON object matching this schema:\n"
        "{\n"
        '  "impactScore": integer between -5 and 5,\n'
        '  "rationale": string of at most 200 characters,\n'
        '  "evidence": [{"id": "<card or chunk id>", "relevance": number between 0 and 1}] (max 5 items),\n'
        '  "confidence": number between 0 and 1\n'
        "}\n"
        "\n"
        "RULES:\n"
        "- Negative scores mean the scenario hurts the asset, positive scores mean it helps.\n"
        "- Cite only evidence ids that appear in the prompt.\n"
        "- Return *only* the JSON object. No code fences, no extra prose.\n"
        "- Be objective and analytical.\n"
    )


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"❌ Settings initialization failed: {e}", file=sys.stderr)
    sys.exit(1)
