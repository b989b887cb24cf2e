import os
from celery import Celery
from celery.schedules import crontab
from dotenv import load_dotenv

from firebase_init import initialize_firebase

# --- CELERY WORKER INITIALIZATION ---

# 1. Load environment variables. This MUST happen before anything else.
load_dotenv()

# 2. Initialize Firebase Admin SDK in the parent process; forked workers inherit it.
initialize_firebase()

# 3. Create the Celery app instance.
celery_app = Celery('tasks',
                    broker=os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0'),
                    include=['tasks'])

celery_app.conf.update(
    task_track_started=True,
    timezone='UTC',
    beat_schedule={
        # Refresh every user's quests at the top of each hour.
        'hourly-quest-generation': {
            'task': 'scheduled_quest_generation_task',
            'schedule': crontab(minute=0),
        },
        'expire-overdue-quests': {
            'task': 'expire_overdue_quests_task',
            'schedule': crontab(minute='*/15'),
        },
    },
)
