# FILE: api/notifications.py

import logging
from firebase_admin import messaging
from google.cloud import firestore

from dependencies import get_db

NOTIFICATIONS_COLLECTION = 'notifications'


def send_push_notification(notification):
    """
    Sends an urgent-quest push notification to the user's device.

    Args:
        notification (dict): Message built by quest_notifications.build_notification().
    """
    user_id = notification['userId']
    user_doc = get_db().collection('users').document(user_id).get()

    if not user_doc.exists:
        logging.warning(f"Attempted to send notification to non-existent user: {user_id}")
        return

    fcm_token = user_doc.to_dict().get('fcmToken')
    if not fcm_token:
        logging.info(f"User {user_id} does not have an FCM token. Skipping notification.")
        return

    # FCM data values must be strings
    safe_data = {k: str(v) for k, v in (notification.get('data') or {}).items() if v is not None}
    safe_data['type'] = notification['type']
    safe_data['title'] = notification['title']
    safe_data['body'] = notification['body']

    message = messaging.Message(
        data=safe_data,
        token=fcm_token,
        android=messaging.AndroidConfig(priority=notification.get('priority', 'high')),
    )
    response = messaging.send(message)
    logging.info(f"Successfully sent notification to user {user_id}. Response: {response}")


def create_in_app_notification(notification):
    """Stores the notification so the app can list it in the user's inbox."""
    record = dict(notification)
    record.update({'createdAt': firestore.SERVER_TIMESTAMP, 'read': False})
    get_db().collection(NOTIFICATIONS_COLLECTION).add(record)
    logging.info(f"Created in-app notification for user {notification['userId']}.")
