"""
Configuration Management for BugTrace

Loads configuration from ~/.bugtrace/config.json and environment variables.
"""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field
from typing import List

# Default config paths
CONFIG_DIR = Path.home() / ".bugtrace"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"
FEEDBACK_PATH = CONFIG_DIR / "feedback.json"

DEFAULT_SOURCES = ["stackoverflow", "github", "mdn"]


@dataclass
class CollectorConfig:
    """Collector server and signal buffer configuration"""
    host: str = "127.0.0.1"
    port: int = 8765
    buffer_capacity: int = 200


@dataclass
class CaptureConfig:
    """Capture agent configuration"""
    scan_delay: float = 2.0  # seconds after load before the header/cookie check
    slow_operation_ms: float = 1000.0
    slow_load_ms: float = 5000.0
    request_timeout: float = 10.0


@dataclass
class LLMConfig:
    """LLM provider configuration for the assistant knowledge source"""
    provider: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"


@dataclass
class SuggestionConfig:
    """Suggestion aggregator configuration"""
    sources: List[str] = field(default_factory=lambda: list(DEFAULT_SOURCES))
    max_results: int = 10
    timeout: float = 10.0
    sort: str = ""  # "", "relevance" or "votes"
    github_token: str = ""
    stackexchange_key: str = ""


@dataclass
class FeedbackConfig:
    """Feedback log configuration"""
    capacity: int = 1000
    path: str = str(FEEDBACK_PATH)


@dataclass
class BugTraceConfig:
    """Main BugTrace configuration"""
    collector: CollectorConfig = field(default_factory=CollectorConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    suggestions: SuggestionConfig = field(default_factory=SuggestionConfig)
    feedback: FeedbackConfig = field(default_factory=FeedbackConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_collector_config(data: dict) -> CollectorConfig:
    """Parse collector section from config dict"""
    collector_data = data.get("collector", {})
    return CollectorConfig(
        host=collector_data.get("host", "127.0.0.1"),
        port=collector_data.get("port", 8765),
        buffer_capacity=collector_data.get("buffer_capacity", 200),
    )


def _parse_capture_config(data: dict) -> CaptureConfig:
    """Parse capture section from config dict"""
    capture_data = data.get("capture", {})
    return CaptureConfig(
        scan_delay=capture_data.get("scan_delay", 2.0),
        slow_operation_ms=capture_data.get("slow_operation_ms", 1000.0),
        slow_load_ms=capture_data.get("slow_load_ms", 5000.0),
        request_timeout=capture_data.get("request_timeout", 10.0),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "anthropic"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", "claude-sonnet-4-20250514"),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o-mini"),
    )


def _parse_suggestion_config(data: dict) -> SuggestionConfig:
    """Parse suggestions section from config dict.

    A comma separated string is accepted for ``sources`` as well as a list.
    """
    suggestion_data = data.get("suggestions", {})
    sources = suggestion_data.get("sources", DEFAULT_SOURCES)
    if isinstance(sources, str):
        sources = [s.strip() for s in sources.split(",") if s.strip()]
    return SuggestionConfig(
        sources=list(sources),
        max_results=suggestion_data.get("max_results", 10),
        timeout=suggestion_data.get("timeout", 10.0),
        sort=suggestion_data.get("sort", ""),
        github_token=suggestion_data.get("github_token", ""),
        stackexchange_key=suggestion_data.get("stackexchange_key", ""),
    )


def _parse_feedback_config(data: dict) -> FeedbackConfig:
    """Parse feedback section from config dict"""
    feedback_data = data.get("feedback", {})
    return FeedbackConfig(
        capacity=feedback_data.get("capacity", 1000),
        path=feedback_data.get("path", str(FEEDBACK_PATH)),
    )


def load_config() -> BugTraceConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.bugtrace/config.json)
    3. Default values
    """
    config = BugTraceConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.collector = _parse_collector_config(data)
            config.capture = _parse_capture_config(data)
            config.llm = _parse_llm_config(data)
            config.suggestions = _parse_suggestion_config(data)
            config.feedback = _parse_feedback_config(data)
        except (json.JSONDecodeError, IOError) as e:
            print(f"[Config] Warning: Failed to load config file: {e}")

    # Environment variable overrides
    if os.getenv("BUGTRACE_HOST"):
        config.collector.host = os.getenv("BUGTRACE_HOST")
    if os.getenv("BUGTRACE_PORT"):
        config.collector.port = int(os.getenv("BUGTRACE_PORT"))
    if os.getenv("BUGTRACE_BUFFER_CAPACITY"):
        config.collector.buffer_capacity = int(os.getenv("BUGTRACE_BUFFER_CAPACITY"))
    if os.getenv("BUGTRACE_SCAN_DELAY"):
        config.capture.scan_delay = float(os.getenv("BUGTRACE_SCAN_DELAY"))
    if os.getenv("BUGTRACE_SOURCES"):
        config.suggestions.sources = [
            s.strip() for s in os.getenv("BUGTRACE_SOURCES").split(",") if s.strip()
        ]
    if os.getenv("BUGTRACE_MAX_RESULTS"):
        config.suggestions.max_results = int(os.getenv("BUGTRACE_MAX_RESULTS"))
    if os.getenv("BUGTRACE_FEEDBACK_PATH"):
        config.feedback.path = os.getenv("BUGTRACE_FEEDBACK_PATH")

    # Secret-bearing overrides (tracked so save_config never persists them)
    _env_secret_map = {
        "GITHUB_TOKEN": (config.suggestions, "github_token"),
        "STACKEXCHANGE_KEY": (config.suggestions, "stackexchange_key"),
        "ANTHROPIC_API_KEY": (config.llm, "anthropic_api_key"),
        "ANTHROPIC_MODEL": (config.llm, "anthropic_model"),
        "OPENAI_API_KEY": (config.llm, "openai_api_key"),
        "OPENAI_MODEL": (config.llm, "openai_model"),
        "BUGTRACE_LLM_PROVIDER": (config.llm, "provider"),
    }
    for env_var, (section, attr) in _env_secret_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(section, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: BugTraceConfig) -> None:
    """Save configuration to file.

    Secret fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())
    _secret_fields = {
        "anthropic_api_key", "openai_api_key", "github_token", "stackexchange_key",
    }

    def _secret(attr: str, value: str) -> str:
        if attr in _secret_fields and attr in env_sourced:
            return ""
        return value

    data = {
        "collector": {
            "host": config.collector.host,
            "port": config.collector.port,
            "buffer_capacity": config.collector.buffer_capacity,
        },
        "capture": {
            "scan_delay": config.capture.scan_delay,
            "slow_operation_ms": config.capture.slow_operation_ms,
            "slow_load_ms": config.capture.slow_load_ms,
            "request_timeout": config.capture.request_timeout,
        },
        "llm": {
            "provider": config.llm.provider,
            "anthropic_api_key": _secret("anthropic_api_key", config.llm.anthropic_api_key),
            "anthropic_model": config.llm.anthropic_model,
            "openai_api_key": _secret("openai_api_key", config.llm.openai_api_key),
            "openai_model": config.llm.openai_model,
        },
        "suggestions": {
            "sources": config.suggestions.sources,
            "max_results": config.suggestions.max_results,
            "timeout": config.suggestions.timeout,
            "sort": config.suggestions.sort,
            "github_token": _secret("github_token", config.suggestions.github_token),
            "stackexchange_key": _secret("stackexchange_key", config.suggestions.stackexchange_key),
        },
        "feedback": {
            "capacity": config.feedback.capacity,
            "path": config.feedback.path,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
