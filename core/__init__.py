# Core module - shared components for all topics
# Contains: models, errors, config, storage, change_detector, ledger, scheduler, notifier, dispatcher, runner

from .errors import (
    ErrorKind,
    WatcherError,
    FetchError,
    ExtractError,
    StateIOError,
    NotificationError,
    ConfigError,
)
from .models import ListingRecord, FeedTarget, LedgerEntry, RunOutcome
from .config import AppConfig, load_config, build_config
from .storage import TopicStateStore
from .change_detector import diff, select_for_notification
from .ledger import load_ledger, record_outcome, get_entry, clear_ledger
from .scheduler import select_topic
from .notifier import NotifierSink, TelegramNotifier, DryRunNotifier, create_notifier
from .dispatcher import NotificationDispatcher
from .runner import TopicRunner

__all__ = [
    'ErrorKind',
    'WatcherError',
    'FetchError',
    'ExtractError',
    'StateIOError',
    'NotificationError',
    'ConfigError',
    'ListingRecord',
    'FeedTarget',
    'LedgerEntry',
    'RunOutcome',
    'AppConfig',
    'load_config',
    'build_config',
    'TopicStateStore',
    'diff',
    'select_for_notification',
    'load_ledger',
    'record_outcome',
    'get_entry',
    'clear_ledger',
    'select_topic',
    'NotifierSink',
    'TelegramNotifier',
    'DryRunNotifier',
    'create_notifier',
    'NotificationDispatcher',
    'TopicRunner',
]
