"""Configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars.
Each concern has its own settings class and env prefix; they are nested
into :class:`InboxWatchConfig`.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings

from .errors import ConfigurationError
from .models import Account


class ImapConfig(BaseSettings):
    """IMAP server and sync-window settings shared by every account."""

    model_config = {"env_prefix": "IMAP_"}

    host: str = Field(default="imap.gmail.com", description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port")
    secure: bool = Field(default=True, description="Use an implicit TLS connection")
    mailbox: str = Field(default="INBOX", description="Folder to sync and watch")
    backfill_days: int = Field(
        default=30,
        description="Trailing window, in days, searched by the initial backfill",
    )
    poll_interval_seconds: float = Field(
        default=60.0,
        description="Seconds between incremental sync ticks",
    )
    incremental_window_seconds: float = Field(
        default=60.0,
        description="Trailing window searched on each incremental tick",
    )


class AccountsConfig(BaseSettings):
    """Ordered account addresses and matching credentials.

    Both are comma-separated strings; position *i* of ``passwords`` belongs
    to position *i* of ``accounts``.
    """

    model_config = {"env_prefix": "EMAIL_"}

    accounts: str = Field(default="", description="Comma-separated mailbox addresses")
    passwords: SecretStr = Field(
        default=SecretStr(""),
        description="Comma-separated credentials, same order as accounts",
    )

    def build_accounts(self, imap: ImapConfig) -> list[Account]:
        """Pair addresses with credentials.

        Raises :class:`ConfigurationError` when no account is configured or
        the two lists differ in length.
        """
        addresses = _split(self.accounts)
        passwords = _split(self.passwords.get_secret_value())

        if not addresses:
            raise ConfigurationError("No email accounts configured")
        if len(addresses) != len(passwords):
            raise ConfigurationError(
                f"Email accounts and passwords count mismatch "
                f"({len(addresses)} accounts, {len(passwords)} passwords)"
            )

        return [
            Account(
                address=address,
                password=SecretStr(password),
                host=imap.host,
                port=imap.port,
                use_ssl=imap.secure,
            )
            for address, password in zip(addresses, passwords, strict=True)
        ]


class ElasticsearchConfig(BaseSettings):
    """Search index settings."""

    model_config = {"env_prefix": "ELASTICSEARCH_"}

    url: str = Field(default="http://localhost:9200", description="Elasticsearch node URL")
    index: str = Field(default="emails", description="Index holding message documents")
    request_timeout: float = Field(default=30.0, description="Per-request timeout in seconds")


class QdrantConfig(BaseSettings):
    """Vector lookup service settings."""

    model_config = {"env_prefix": "QDRANT_"}

    url: str = Field(default="http://localhost:6333", description="Qdrant REST base URL")
    collection: str = Field(default="email-vectors", description="Collection name")
    vector_size: int = Field(default=1536, description="Embedding dimension")
    timeout_seconds: float = Field(default=10.0, description="HTTP request timeout")


class OpenAIConfig(BaseSettings):
    """Classifier, reply generator and embedding provider settings.

    With no ``api_key`` the classifier degrades to the default category and
    embeddings fall back to the local hash embedding.
    """

    model_config = {"env_prefix": "OPENAI_"}

    api_key: SecretStr | None = Field(default=None, description="API key")
    base_url: str = Field(default="https://api.openai.com/v1", description="API base URL")
    chat_model: str = Field(default="gpt-3.5-turbo", description="Chat completion model")
    embedding_model: str = Field(
        default="text-embedding-ada-002",
        description="Embedding model",
    )
    timeout_seconds: float = Field(default=30.0, description="Default HTTP timeout")
    reply_timeout_seconds: float = Field(
        default=15.0,
        description="Timeout for reply generation calls",
    )


class SlackConfig(BaseSettings):
    """Chat-notification sink settings."""

    model_config = {"env_prefix": "SLACK_"}

    webhook_url: str = Field(default="", description="Incoming webhook URL (empty disables)")
    timeout_seconds: float = Field(default=5.0, description="Send timeout")


class WebhookConfig(BaseSettings):
    """Outbound webhook sink settings."""

    model_config = {"env_prefix": "WEBHOOK_"}

    url: str = Field(default="", description="Webhook URL (empty disables)")
    timeout_seconds: float = Field(default=10.0, description="Single-message timeout")
    batch_timeout_seconds: float = Field(default=15.0, description="Base batch timeout")
    source: str = Field(
        default="reachinbox-email-aggregator",
        description="metadata.source value in every envelope",
    )
    version: str = Field(default="1.0.0", description="metadata.version value")


class LiveUpdatesConfig(BaseSettings):
    """Live-update channel settings."""

    model_config = {"env_prefix": "LIVE_UPDATES_"}

    backend: Literal["memory", "kafka"] = Field(
        default="memory",
        description="In-process fan-out hub or a Kafka topic",
    )
    topic: str = Field(default="email-updates", description="Topic name")
    subscriber_queue_size: int = Field(
        default=100,
        description="Per-subscriber buffer for the in-process hub",
    )
    kafka_bootstrap_servers: str = Field(
        default="localhost:9092",
        description="Comma-separated Kafka bootstrap servers",
    )
    kafka_compression: str = Field(default="gzip", description="Producer compression codec")


class RetryConfig(BaseSettings):
    """Per-account reconnect policy driven by Tenacity.

    ``max_attempts = 0`` disables reconnecting: a dropped session stays
    disconnected.
    """

    model_config = {"env_prefix": "RECONNECT_"}

    max_attempts: int = Field(default=0, description="Reconnect attempts (0 disables)")
    initial_wait_seconds: float = Field(default=1.0, description="Initial backoff wait")
    max_wait_seconds: float = Field(default=60.0, description="Maximum backoff wait")
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class InboxWatchConfig(BaseSettings):
    """Root configuration for the ingestion process.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "INBOXWATCH_"}

    service_name: str = Field(default="inboxwatch", description="Service name in logs and health")
    health_port: int = Field(default=8080, description="Port for the health endpoints")
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=True, description="JSON log lines (false: console)")
    batch_delay_seconds: float = Field(
        default=0.1,
        description="Pause between classifier calls in batch mode",
    )
    seed_training_data: bool = Field(
        default=True,
        description="Store the default reply templates at startup",
    )

    imap: ImapConfig = Field(default_factory=ImapConfig)
    email: AccountsConfig = Field(default_factory=AccountsConfig)
    elasticsearch: ElasticsearchConfig = Field(default_factory=ElasticsearchConfig)
    qdrant: QdrantConfig = Field(default_factory=QdrantConfig)
    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    live_updates: LiveUpdatesConfig = Field(default_factory=LiveUpdatesConfig)
    reconnect: RetryConfig = Field(default_factory=RetryConfig)


def _split(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]
