"""
Firebase Admin SDK bootstrap shared by the API process, the Celery worker and the FCM push sink.
"""

import logging
import os

import firebase_admin
from firebase_admin import credentials

_firebase_initialized = False


def initialize_firebase():
    """
    Set up the default Firebase app once per process.

    Credentials are Application Default Credentials (GOOGLE_APPLICATION_CREDENTIALS);
    FIREBASE_PROJECT_ID, when set, pins the project instead of inferring it from them.

    Returns:
        bool: Whether the SDK can be used. Failures are logged, not raised, so the
        engine keeps working without push notifications.
    """
    global _firebase_initialized
    if _firebase_initialized:
        return True

    try:
        if firebase_admin._apps:
            logging.debug("Default Firebase app already present.")
        else:
            project_id = os.environ.get('FIREBASE_PROJECT_ID')
            options = {'projectId': project_id} if project_id else None
            firebase_admin.initialize_app(credentials.ApplicationDefault(), options)
            logging.info(f"Firebase Admin SDK initialized (project: {project_id or 'from credentials'}).")
        _firebase_initialized = True
    except Exception as e:
        logging.error(f"Firebase Admin SDK unavailable, push notifications disabled: {e}")
    return _firebase_initialized
