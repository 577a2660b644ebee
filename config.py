"""
Configuration module for Bedrock Team.
Handles all environment variables, model specifications, persona model routing,
execution limits and the output-quality heuristics.
"""

import os
from dataclasses import dataclass
from typing import List, Dict, Any, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class AWSConfig:
    """AWS-specific configuration"""
    region: str = os.getenv("AWS_REGION", "us-east-1")
    access_key_id: str = os.getenv("AWS_ACCESS_KEY_ID", "")
    secret_access_key: str = os.getenv("AWS_SECRET_ACCESS_KEY", "")
    session_token: str = os.getenv("AWS_SESSION_TOKEN", "")
    profile_name: str = os.getenv("AWS_PROFILE", "")

    def has_explicit_credentials(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)

    def has_session_token(self) -> bool:
        return bool(self.session_token)

    def has_profile(self) -> bool:
        return bool(self.profile_name)


@dataclass
class ModelConfig:
    """Model-specific configuration.

    Deep-reasoning personas (Architect, Debugger) run on ``deep_model_id``;
    the code-generation and analysis personas run on ``fast_model_id``.
    """
    model_id: str = os.getenv("BEDROCK_MODEL_ID", "us.anthropic.claude-sonnet-4-5-20250929-v1:0")
    deep_model_id: str = os.getenv("DEEP_MODEL_ID", "us.anthropic.claude-opus-4-5-20251101-v1:0")
    fast_model_id: str = os.getenv("FAST_MODEL_ID", "us.anthropic.claude-sonnet-4-5-20250929-v1:0")
    max_tokens: int = int(os.getenv("MAX_TOKENS", "4096"))
    temperature: Optional[float] = float(os.getenv("TEMPERATURE", "0.6")) if os.getenv("TEMPERATURE", "0.6") else None
    top_p: Optional[float] = float(os.getenv("TOP_P", "0.7")) if os.getenv("TOP_P", "0.7") else None
    throughput_mode: str = os.getenv("THROUGHPUT_MODE", "cross-region")


@dataclass
class AppConfig:
    """Application-specific configuration"""
    title: str = "Bedrock Team"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    # Staging root for generated code; cleared at the start of every run
    output_directory: str = os.getenv("OUTPUT_DIRECTORY", "./output")
    # Web server only: keep each request's run-* staging directory after its stream ends
    keep_run_directories: bool = os.getenv("KEEP_RUN_DIRECTORIES", "false").lower() == "true"
    # Wall-clock limit per execution attempt (benchmarks can be slow)
    execution_timeout: int = int(os.getenv("EXECUTION_TIMEOUT", "600"))
    max_output_bytes: int = int(os.getenv("MAX_OUTPUT_BYTES", "1000000"))
    # Prompt budget for a single agent call (~4 chars per token)
    context_token_budget: int = int(os.getenv("CONTEXT_TOKEN_BUDGET", "24000"))
    # Mental evolution loop (Tester/Debugger iterations before real execution)
    max_evolution_cycles: int = int(os.getenv("MAX_EVOLUTION_CYCLES", "3"))
    # Execution debug loop escalation knobs
    deep_review_after: int = int(os.getenv("DEEP_REVIEW_AFTER", "5"))
    rearchitect_threshold: int = int(os.getenv("REARCHITECT_THRESHOLD", "15"))
    rearchitect_interval: int = int(os.getenv("REARCHITECT_INTERVAL", "10"))
    thrash_window: int = int(os.getenv("THRASH_WINDOW", "5"))
    persistence_threshold: int = int(os.getenv("PERSISTENCE_THRESHOLD", "5"))
    # Stream model responses token-by-token (false = whole-response mode)
    stream_responses: bool = os.getenv("STREAM_RESPONSES", "true").lower() == "true"
    # Stream recovery settings
    stream_max_retries: int = int(os.getenv("STREAM_MAX_RETRIES", "3"))
    stream_retry_backoff: float = float(os.getenv("STREAM_RETRY_BACKOFF", "2"))


@dataclass
class QualityThresholds:
    """Heuristics used to judge whether a cleanly-exiting program produced sane output.

    These are tuning choices, not universal truths; override per run when the
    workload needs different tolerances.
    """
    nan_min_count: int = int(os.getenv("QUALITY_NAN_MIN_COUNT", "2"))
    inf_min_count: int = int(os.getenv("QUALITY_INF_MIN_COUNT", "2"))
    min_accuracy_samples: int = 3
    accuracy_window: int = 4
    min_average_accuracy: float = float(os.getenv("QUALITY_MIN_ACCURACY", "0.5"))
    min_test_accuracy_samples: int = 2
    test_accuracy_floor: float = 0.1
    train_test_gap: float = 0.2
    min_speedup: float = float(os.getenv("QUALITY_MIN_SPEEDUP", "1.0"))
    min_loss_samples: int = 5
    stuck_loss_ratio: float = 0.95
    max_zero_accuracy_readings: int = 5


# ============================================================
# Model Specifications -- Anthropic Claude on Bedrock
# ============================================================
AVAILABLE_MODELS: List[Dict[str, Any]] = [
    {
        "id": "us.anthropic.claude-opus-4-5-20251101-v1:0",
        "base_id": "anthropic.claude-opus-4-5-20251101-v1:0",
        "name": "Claude Opus 4.5",
        "context_window": 200000,
        "max_output_tokens": 64000,
        "requires_profile": True,
    },
    {
        "id": "us.anthropic.claude-sonnet-4-5-20250929-v1:0",
        "base_id": "anthropic.claude-sonnet-4-5-20250929-v1:0",
        "name": "Claude Sonnet 4.5",
        "context_window": 200000,
        "max_output_tokens": 64000,
        "requires_profile": True,
    },
    {
        "id": "us.anthropic.claude-haiku-4-5-20251001-v1:0",
        "base_id": "anthropic.claude-haiku-4-5-20251001-v1:0",
        "name": "Claude Haiku 4.5",
        "context_window": 200000,
        "max_output_tokens": 64000,
        "requires_profile": True,
    },
    {
        "id": "anthropic.claude-3-5-sonnet-20241022-v2:0",
        "base_id": "anthropic.claude-3-5-sonnet-20241022-v2:0",
        "name": "Claude 3.5 Sonnet v2",
        "context_window": 200000,
        "max_output_tokens": 8192,
        "requires_profile": False,
    },
]


# Create global config instances
aws_config = AWSConfig()
model_config = ModelConfig()
app_config = AppConfig()


def get_model_by_id(model_id: str) -> Optional[Dict[str, Any]]:
    """Get model configuration by ID"""
    for model in AVAILABLE_MODELS:
        if model["id"] == model_id or model.get("base_id") == model_id:
            return model
    return None


def get_model_name(model_id: str) -> str:
    """Get the display name for a model ID"""
    model = get_model_by_id(model_id)
    return model["name"] if model else model_id


def get_model_config(model_id: str) -> Dict[str, Any]:
    """Get the full configuration for a model. For unknown model IDs returns a minimal
    fallback dict. Callers should use .get(key, sensible_default) for any key they need."""
    model = get_model_by_id(model_id)
    if model:
        return model
    return {
        "id": model_id,
        "base_id": model_id,
        "name": model_id,
        "context_window": 200000,
        "max_output_tokens": 4096,
        "requires_profile": False,
    }


def get_max_output_tokens(model_id: str) -> int:
    return get_model_config(model_id).get("max_output_tokens", 4096)


def requires_inference_profile(model_id: str) -> bool:
    return get_model_config(model_id).get("requires_profile", False)


def get_persona_model(role: str, models: Optional[ModelConfig] = None) -> str:
    """Resolve the backing model for a persona role.

    ``<ROLE>_MODEL_ID`` in the environment wins; otherwise Architect and Debugger
    get the deep model and everyone else the fast one.
    """
    cfg = models or model_config
    override = os.getenv(f"{role.upper()}_MODEL_ID", "").strip()
    if override:
        return override
    if role in ("architect", "debugger"):
        return cfg.deep_model_id
    return cfg.fast_model_id


def get_credentials_info() -> str:
    if aws_config.has_profile():
        return f"Using AWS profile: {aws_config.profile_name}"
    elif aws_config.has_explicit_credentials():
        if aws_config.has_session_token():
            return "Using temporary credentials (with session token)"
        return "Using explicit credentials"
    return "Using default AWS credential chain"
