"""
Centralized Configuration Module

Provides a single source of truth for all system configuration parameters.
Loads settings from environment variables with sensible defaults and validation.
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional
from urllib.parse import urlparse
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


CONTENT_MODES = ('paragraphs', 'body')
KAFKA_MODES = ('auto', 'ingest', 'query')


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


@dataclass
class Config:
    """
    Centralized configuration for the news article agent.

    All configuration parameters are loaded from environment variables
    with sensible defaults. Validation is performed on initialization.
    """

    # Ollama Settings
    ollama_base_url: str = field(default="http://localhost:11434")
    ollama_timeout: int = field(default=60)
    embedding_model: str = field(default="nomic-embed-text")
    embedding_dimension: int = field(default=768)
    chat_model: str = field(default="llama3.1:latest")
    chat_temperature: float = field(default=0.3)

    # Article Extraction Settings
    article_timeout: int = field(default=30)
    article_max_retries: int = field(default=3)
    article_content_mode: str = field(default="paragraphs")
    max_content_chars: int = field(default=10000)

    # Retrieval Settings
    top_k_default: int = field(default=3)

    # Storage
    faiss_index_path: str = field(default="data/embeddings/articles.index")
    auto_persist: bool = field(default=True)

    # Kafka Settings
    kafka_broker: str = field(default="localhost:9092")
    kafka_username: str = field(default="")
    kafka_password: str = field(default="")
    kafka_topic_name: str = field(default="news-articles")
    kafka_group_id_prefix: str = field(default="news-agent-")
    kafka_mode: str = field(default="auto")
    kafka_max_attempts: int = field(default=3)
    kafka_retry_backoff: float = field(default=1.0)
    kafka_dead_letter_topic: str = field(default="")

    # HTTP Server Settings
    host: str = field(default="0.0.0.0")
    port: int = field(default=3000)
    store_linked_articles: bool = field(default=False)

    def __post_init__(self):
        """Load configuration from environment and validate."""
        self._load_from_environment()
        self._validate()

    def _load_from_environment(self):
        """Load configuration from environment variables."""
        # Ollama Settings
        self.ollama_base_url = self._get_env_str('OLLAMA_BASE_URL', self.ollama_base_url)
        self.ollama_timeout = self._get_env_int('OLLAMA_TIMEOUT', self.ollama_timeout)
        self.embedding_model = self._get_env_str('EMBEDDING_MODEL', self.embedding_model)
        self.embedding_dimension = self._get_env_int('EMBEDDING_DIMENSION', self.embedding_dimension)
        self.chat_model = self._get_env_str('CHAT_MODEL', self.chat_model)
        self.chat_temperature = self._get_env_float('CHAT_TEMPERATURE', self.chat_temperature)

        # Article Extraction Settings
        self.article_timeout = self._get_env_int('ARTICLE_TIMEOUT', self.article_timeout)
        self.article_max_retries = self._get_env_int('ARTICLE_MAX_RETRIES', self.article_max_retries)
        self.article_content_mode = self._get_env_str('ARTICLE_CONTENT_MODE', self.article_content_mode)
        self.max_content_chars = self._get_env_int('MAX_CONTENT_CHARS', self.max_content_chars)

        self.top_k_default = self._get_env_int('TOP_K_DEFAULT', self.top_k_default)

        # Storage
        self.faiss_index_path = self._get_env_path('FAISS_INDEX_PATH', self.faiss_index_path)
        self.auto_persist = self._get_env_bool('AUTO_PERSIST', self.auto_persist)

        # Kafka Settings
        self.kafka_broker = self._get_env_str('KAFKA_BROKER', self.kafka_broker)
        self.kafka_username = self._get_env_str('KAFKA_USERNAME', self.kafka_username)
        self.kafka_password = self._get_env_str('KAFKA_PASSWORD', self.kafka_password)
        self.kafka_topic_name = self._get_env_str('KAFKA_TOPIC_NAME', self.kafka_topic_name)
        self.kafka_group_id_prefix = self._get_env_str('KAFKA_GROUP_ID_PREFIX', self.kafka_group_id_prefix)
        self.kafka_mode = self._get_env_str('KAFKA_MODE', self.kafka_mode)
        self.kafka_max_attempts = self._get_env_int('KAFKA_MAX_ATTEMPTS', self.kafka_max_attempts)
        self.kafka_retry_backoff = self._get_env_float('KAFKA_RETRY_BACKOFF', self.kafka_retry_backoff)
        self.kafka_dead_letter_topic = self._get_env_str('KAFKA_DEAD_LETTER_TOPIC', self.kafka_dead_letter_topic)

        # HTTP Server Settings
        self.host = self._get_env_str('HOST', self.host)
        self.port = self._get_env_int('PORT', self.port)
        self.store_linked_articles = self._get_env_bool('STORE_LINKED_ARTICLES', self.store_linked_articles)

    def _get_env_str(self, key: str, default: str) -> str:
        """Get string value from environment."""
        value = os.getenv(key, default)
        if isinstance(value, str):
            value = value.strip()
        return value

    def _get_env_int(self, key: str, default: int) -> int:
        """Get integer value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return int(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid integer value for {key}: '{value}'"
            )

    def _get_env_float(self, key: str, default: float) -> float:
        """Get float value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return float(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid float value for {key}: '{value}'"
            )

    def _get_env_bool(self, key: str, default: bool) -> bool:
        """Get boolean value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        value = value.lower().strip()
        if value in ('true', '1', 'yes', 'on'):
            return True
        elif value in ('false', '0', 'no', 'off'):
            return False
        else:
            return default

    def _get_env_path(self, key: str, default: str) -> str:
        """Get path value from environment with expansion."""
        value = os.getenv(key, default)
        if isinstance(value, str):
            value = value.strip()
            # Expand ~ to home directory
            value = os.path.expanduser(value)
        return value

    def _validate(self):
        """Validate configuration parameters."""
        # Validate non-empty strings
        for field_name in ('embedding_model', 'chat_model', 'kafka_topic_name'):
            if not getattr(self, field_name):
                raise ConfigValidationError(f"{field_name} cannot be empty")

        # Validate positive integers
        positive_int_fields = [
            ('embedding_dimension', self.embedding_dimension),
            ('article_max_retries', self.article_max_retries),
            ('max_content_chars', self.max_content_chars),
            ('top_k_default', self.top_k_default),
            ('kafka_max_attempts', self.kafka_max_attempts),
        ]

        for field_name, value in positive_int_fields:
            if value <= 0:
                raise ConfigValidationError(
                    f"{field_name} must be positive, got {value}"
                )

        # Validate timeouts (at least 1 second)
        if self.ollama_timeout < 1:
            raise ConfigValidationError(
                f"ollama_timeout must be at least 1, got {self.ollama_timeout}"
            )
        if self.article_timeout < 1:
            raise ConfigValidationError(
                f"article_timeout must be at least 1, got {self.article_timeout}"
            )

        if not 0.0 <= self.chat_temperature <= 1.0:
            raise ConfigValidationError(
                f"chat_temperature must be between 0 and 1, got {self.chat_temperature}"
            )
        if self.kafka_retry_backoff < 0:
            raise ConfigValidationError(
                f"kafka_retry_backoff cannot be negative, got {self.kafka_retry_backoff}"
            )
        if not 0 < self.port < 65536:
            raise ConfigValidationError(f"port out of range: {self.port}")

        if self.article_content_mode not in CONTENT_MODES:
            raise ConfigValidationError(
                f"article_content_mode must be one of {CONTENT_MODES}, "
                f"got '{self.article_content_mode}'"
            )
        if self.kafka_mode not in KAFKA_MODES:
            raise ConfigValidationError(
                f"kafka_mode must be one of {KAFKA_MODES}, got '{self.kafka_mode}'"
            )

        # Validate URL format
        parsed = urlparse(self.ollama_base_url)
        if not all([parsed.scheme, parsed.netloc]):
            raise ConfigValidationError(
                f"Invalid URL for ollama_base_url: {self.ollama_base_url}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def __repr__(self) -> str:
        """String representation of configuration (credentials masked)."""
        items = []
        for key, value in self.to_dict().items():
            if key == 'kafka_password' and value:
                value = '***'
            items.append(f"{key}={value!r}")
        return f"Config({', '.join(items)})"

    def update(self, **kwargs):
        """
        Update configuration values with validation.

        Args:
            **kwargs: Configuration parameters to update

        Raises:
            ConfigValidationError: If validation fails
        """
        # Store original values for rollback
        original_values = {}

        try:
            for key, value in kwargs.items():
                if not hasattr(self, key):
                    raise ConfigValidationError(f"Unknown configuration parameter: {key}")
                original_values[key] = getattr(self, key)
                setattr(self, key, value)

            self._validate()

        except Exception:
            # Rollback on validation failure
            for key, value in original_values.items():
                setattr(self, key, value)
            raise

    def get_kafka_config(self) -> Dict[str, Any]:
        """Get Kafka-related configuration."""
        return {
            'broker': self.kafka_broker,
            'username': self.kafka_username,
            'topic': self.kafka_topic_name,
            'group_id_prefix': self.kafka_group_id_prefix,
            'mode': self.kafka_mode,
            'max_attempts': self.kafka_max_attempts,
            'retry_backoff': self.kafka_retry_backoff,
            'dead_letter_topic': self.kafka_dead_letter_topic,
        }


# Singleton instance
_config_instance: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance (singleton pattern).

    Returns:
        Config: Global configuration instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def reset_config():
    """Reset the global configuration instance."""
    global _config_instance
    _config_instance = None
