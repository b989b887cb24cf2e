# FILE: tasks.py

import logging
from google.cloud import firestore
from dotenv import load_dotenv

from celery_worker import celery_app
from logging_config import setup_logging
from dependencies import get_db, get_quest_service, get_redis_connection, QUEST_NOTIFICATION_THRESHOLD
from models import Location, Quest
from profile_service import profile_from_document
from quest_generator import QuestGenerationError
from quest_lifecycle import expire_if_overdue
from quest_notifications import NotificationDispatcher
from api.notifications import send_push_notification, create_in_app_notification
from timezone_utils import utc_now

# --- SETUP & CONFIG ---
setup_logging()
load_dotenv()

SCHEDULER_LOCK_KEY = "lock:scheduled_quest_generation"
SCHEDULER_LOCK_TTL = 55 * 60  # seconds; released early when the run finishes


@celery_app.task(name="generate_quests_for_user_task")
def generate_quests_for_user_task(user_id, lat, lng):
    """On-demand refresh, e.g. after a significant weather change."""
    try:
        quests = get_quest_service().engine.generate_quests(user_id, Location(lat=lat, lng=lng))
        return [quest.id for quest in quests]
    except QuestGenerationError as e:
        logging.error(f"On-demand quest generation failed for user {user_id}: {e}")
        return []


@celery_app.task(name="scheduled_quest_generation_task")
def scheduled_quest_generation():
    """Generates quests for every user with a stored location and notifications enabled."""
    redis_client = get_redis_connection()
    # nx=True means set only if the key does not exist.
    if redis_client and not redis_client.set(SCHEDULER_LOCK_KEY, "running", ex=SCHEDULER_LOCK_TTL, nx=True):
        logging.warning("Scheduled quest generation is already in progress. Exiting.")
        return 0

    processed, failed = 0, 0
    try:
        engine = get_quest_service().engine
        for user_doc in get_db().collection('users').stream():
            try:
                profile = profile_from_document(user_doc.id, user_doc.to_dict())
                if not profile.location or not profile.notifications:
                    continue
                engine.generate_quests(profile.id, profile.location)
                processed += 1
            except QuestGenerationError:
                failed += 1
            except Exception as e:
                failed += 1
                logging.error(f"Skipping user {user_doc.id} during scheduled generation: {e}", exc_info=True)
        logging.info(f"Scheduled quest generation complete: {processed} user(s) processed, {failed} failed.")
        return processed
    finally:
        # Always release the lock when done
        if redis_client:
            redis_client.delete(SCHEDULER_LOCK_KEY)


@celery_app.task(name="dispatch_urgent_quests_task")
def dispatch_urgent_quests_task(quest_dicts):
    quests = [Quest.model_validate(data) for data in quest_dicts]
    dispatcher = NotificationDispatcher(
        push_sink=send_push_notification,
        in_app_sink=create_in_app_notification,
        threshold=QUEST_NOTIFICATION_THRESHOLD,
    )
    dispatcher.dispatch(quests)


@celery_app.task(name="award_quest_points_task")
def award_quest_points_task(user_id, quest_id, amount):
    """Credits a completed quest's totalPoints to the user's score."""
    try:
        user_ref = get_db().collection('users').document(user_id)
        user_ref.update({
            'totalPoints': firestore.Increment(amount),
            'completedQuestIds': firestore.ArrayUnion([quest_id]),
        })
        logging.info(f"Awarded {amount} points to {user_id} for quest {quest_id}")
    except Exception as e:
        logging.error(f"Failed to award points to {user_id} for quest {quest_id}: {e}")


@celery_app.task(name="expire_overdue_quests_task")
def expire_overdue_quests():
    store = get_quest_service().store
    now = utc_now()
    expired = 0
    for quest in store.list_all_open():
        if expire_if_overdue(quest, now):
            store.save(quest)
            expired += 1
    logging.info(f"Expiry sweep complete: {expired} quest(s) expired.")
    return expired
