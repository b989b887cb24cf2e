"""
Dependency injection container for the quest backend.
Shared clients are created on first use, so importing engine modules never touches the network,
and the wired QuestService is built once per process.
"""

import logging
import os
import threading
from dataclasses import dataclass
from typing import List

import redis
from google.cloud import firestore
from redis.backoff import ExponentialBackoff
from redis.retry import Retry

from firebase_init import initialize_firebase
from models import Quest, Urgency

# --- Environment variables ---
OPENWEATHER_API_KEY = os.environ.get("OPENWEATHER_API_KEY")
WEATHER_API_TIMEOUT = float(os.environ.get("WEATHER_API_TIMEOUT", "5"))
QUEST_NOTIFICATION_THRESHOLD = Urgency(os.environ.get("QUEST_NOTIFICATION_THRESHOLD", "HIGH").upper())
REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/0')

# --- Firestore ---
_db = None


def get_db():
    """Lazily creates the Firestore client (uses GOOGLE_APPLICATION_CREDENTIALS)."""
    global _db
    if _db is None:
        initialize_firebase()
        _db = firestore.Client()
    return _db


# --- Redis Connection Pool with Retry Logic ---
_redis_local = threading.local()


def get_redis_connection():
    """
    Get a thread-safe Redis connection from the pool with retry logic.
    Returns None when Redis is unreachable; callers skip caching and locking in that case.
    """
    if not hasattr(_redis_local, 'connection'):
        try:
            retry = Retry(ExponentialBackoff(), retries=3)
            connection_pool = redis.ConnectionPool.from_url(
                REDIS_URL,
                decode_responses=True,
                retry=retry,
                max_connections=20,
                health_check_interval=30,
                socket_connect_timeout=5,
                socket_timeout=10
            )
            _redis_local.connection = redis.Redis(connection_pool=connection_pool)
            _redis_local.connection.ping()
            logging.info("Redis connection pool initialized successfully")
        except redis.exceptions.ConnectionError as e:
            logging.error(f"Failed to connect to Redis: {e}")
            _redis_local.connection = None
        except Exception as e:
            logging.error(f"Unexpected error initializing Redis: {e}")
            _redis_local.connection = None

    return _redis_local.connection


# --- Quest service wiring ---
@dataclass
class QuestService:
    """Everything the HTTP and task layers need to run the quest engine."""
    engine: object
    lifecycle: object
    store: object
    adapter: object


class DeferredNotificationDispatcher:
    """Hands newly created quests to the Celery worker so callers do not wait on the sinks."""

    def dispatch(self, quests: List[Quest]) -> None:
        from tasks import dispatch_urgent_quests_task  # Local import to avoid circular dependencies
        dispatch_urgent_quests_task.delay([quest.to_dict() for quest in quests])


def queue_points_award(quest: Quest) -> None:
    from tasks import award_quest_points_task  # Local import to avoid circular dependencies
    award_quest_points_task.delay(quest.userId, quest.id, quest.totalPoints)


_quest_service = None
_quest_service_lock = threading.Lock()


def get_quest_service() -> QuestService:
    global _quest_service
    with _quest_service_lock:
        if _quest_service is None:
            _quest_service = build_quest_service()
    return _quest_service


def build_quest_service() -> QuestService:
    from environment_adapter import EnvironmentalAdapter
    from profile_service import fetch_user_profile
    from quest_generator import QuestEngine
    from quest_lifecycle import QuestLifecycleManager
    from quest_store import FirestoreQuestStore

    store = FirestoreQuestStore(get_db())
    adapter = EnvironmentalAdapter(api_key=OPENWEATHER_API_KEY, timeout=WEATHER_API_TIMEOUT)
    lifecycle = QuestLifecycleManager(store, on_completed=queue_points_award)
    engine = QuestEngine(
        snapshot_provider=adapter.get_snapshot,
        profile_provider=fetch_user_profile,
        store=store,
        dispatcher=DeferredNotificationDispatcher(),
        lifecycle=lifecycle,
    )
    logging.info("Quest service initialized.")
    return QuestService(engine=engine, lifecycle=lifecycle, store=store, adapter=adapter)
