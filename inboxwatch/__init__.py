"""inboxwatch: multi-account IMAP ingestion with classification and notifications.

Public API re-exported here for convenience::

    from inboxwatch import IngestionSupervisor, MessagePipeline, Message
"""

from .classifier import ClassificationGateway
from .config import (
    AccountsConfig,
    ElasticsearchConfig,
    ImapConfig,
    InboxWatchConfig,
    LiveUpdatesConfig,
    OpenAIConfig,
    QdrantConfig,
    RetryConfig,
    SlackConfig,
    WebhookConfig,
)
from .connection import AccountConnectionManager
from .embeddings import FallbackEmbedder, hash_embedding
from .errors import AccountStartError, ConfigurationError, InboxWatchError, TransportError
from .health import create_health_app
from .imap_client import AsyncImapClient, FetchedEmail
from .interface import (
    ChatSink,
    EmailStore,
    Embedder,
    LanguageModel,
    LiveUpdatePublisher,
    VectorIndex,
    WebhookSink,
)
from .live_updates import InMemoryLiveUpdates, KafkaLiveUpdates, create_live_updates
from .llm import OpenAIClient
from .logging import component_logger, setup_logging
from .models import (
    Account,
    AttachmentInfo,
    CategorizationResult,
    Category,
    HealthStatus,
    LiveUpdateEvent,
    Message,
    NotificationOutcome,
    SearchResult,
    SessionState,
    SupervisorStatus,
    TrainingMatch,
    VectorMatch,
)
from .normalizer import MessageNormalizer
from .notifier import NotificationFanout
from .pipeline import MessagePipeline
from .retry import with_retry
from .service import InboxWatchService
from .shutdown import install_signal_handlers
from .slack import SlackChatSink
from .store import ElasticsearchStore
from .supervisor import IngestionSupervisor
from .training import TrainingLibrary
from .vector_store import QdrantVectorIndex
from .webhook import HttpWebhookSink

__all__ = [
    "Account",
    "AccountConnectionManager",
    "AccountStartError",
    "AccountsConfig",
    "AsyncImapClient",
    "AttachmentInfo",
    "CategorizationResult",
    "Category",
    "ChatSink",
    "ClassificationGateway",
    "ConfigurationError",
    "ElasticsearchConfig",
    "ElasticsearchStore",
    "EmailStore",
    "Embedder",
    "FallbackEmbedder",
    "FetchedEmail",
    "HealthStatus",
    "HttpWebhookSink",
    "ImapConfig",
    "InMemoryLiveUpdates",
    "InboxWatchConfig",
    "InboxWatchError",
    "InboxWatchService",
    "IngestionSupervisor",
    "KafkaLiveUpdates",
    "LanguageModel",
    "LiveUpdateEvent",
    "LiveUpdatePublisher",
    "LiveUpdatesConfig",
    "Message",
    "MessageNormalizer",
    "MessagePipeline",
    "NotificationFanout",
    "NotificationOutcome",
    "OpenAIClient",
    "OpenAIConfig",
    "QdrantConfig",
    "QdrantVectorIndex",
    "RetryConfig",
    "SearchResult",
    "SessionState",
    "SlackChatSink",
    "SlackConfig",
    "SupervisorStatus",
    "TrainingLibrary",
    "TrainingMatch",
    "TransportError",
    "VectorIndex",
    "VectorMatch",
    "WebhookConfig",
    "WebhookSink",
    "component_logger",
    "create_health_app",
    "create_live_updates",
    "hash_embedding",
    "install_signal_handlers",
    "setup_logging",
    "with_retry",
]
