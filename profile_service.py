import json
import logging
from typing import Optional

from dependencies import get_db, get_redis_connection
from models import Location, SkillTier, UserProfile

PROFILE_CACHE_TTL = 300  # seconds


def get_profile_cache_key(user_id):
    """Generates the standard Redis key for a quest profile."""
    return f"quest_profile:{user_id}"


def _notifications_enabled(preferences: dict) -> bool:
    notifications = preferences.get('notifications', True)
    if isinstance(notifications, dict):
        return bool(notifications.get('push', True) or notifications.get('inApp', True))
    return bool(notifications)


def profile_from_document(user_id: str, data: dict) -> UserProfile:
    """
    Builds a UserProfile from a `users` document. Accepts both the flat fields written by
    onboarding (hasAC, hasSolarPanels, difficulty) and the nested homeInfo.features layout.
    """
    features = (data.get('homeInfo') or {}).get('features') or {}
    preferences = data.get('preferences') or {}
    coordinates = data.get('location') or ((data.get('personalInfo') or {}).get('address') or {}).get('coordinates')

    difficulty = data.get('difficulty', SkillTier.MEDIUM.value)
    if difficulty not in {tier.value for tier in SkillTier}:
        logging.warning(f"Unknown difficulty '{difficulty}' for user {user_id}, defaulting to medium.")
        difficulty = SkillTier.MEDIUM.value

    return UserProfile(
        id=user_id,
        hasAC=bool(data.get('hasAC', True)),
        hasSolarPanels=bool(data.get('hasSolarPanels', features.get('hasSolarPanels', False))),
        difficulty=difficulty,
        notifications=_notifications_enabled(preferences),
        location=Location(lat=coordinates['lat'], lng=coordinates['lng']) if coordinates else None,
    )


def fetch_user_profile(user_id: str, db=None, redis_client=None) -> UserProfile:
    """
    Fetches a user's profile, with Redis caching. Never raises: a missing document or any
    store failure yields UserProfile.default(user_id).
    """
    try:
        redis_client = redis_client if redis_client is not None else get_redis_connection()
        cache_key = get_profile_cache_key(user_id)
        if redis_client:
            cached = redis_client.get(cache_key)
            if cached:
                return UserProfile.model_validate(json.loads(cached))

        db = db if db is not None else get_db()
        user_doc = db.collection('users').document(user_id).get()
        if not user_doc.exists:
            logging.info(f"No profile document for user {user_id}. Using default profile.")
            return UserProfile.default(user_id)

        profile = profile_from_document(user_id, user_doc.to_dict())
        if redis_client:
            redis_client.set(cache_key, profile.model_dump_json(), ex=PROFILE_CACHE_TTL)
        return profile
    except Exception as e:
        logging.warning(f"Error fetching profile for user {user_id}, using default profile. Error: {e}")
        return UserProfile.default(user_id)


def invalidate_profile_cache(user_id: str, redis_client=None) -> Optional[int]:
    """Deletes a user's cached profile, e.g. after onboarding updates it."""
    redis_client = redis_client if redis_client is not None else get_redis_connection()
    if redis_client and user_id:
        return redis_client.delete(get_profile_cache_key(user_id))
    return None
