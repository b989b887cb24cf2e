import logging
from typing import Callable, Iterable, List

from models import Quest, Urgency

URGENT_QUEST_NOTIFICATION = 'URGENT_QUEST'


def build_notification(quest: Quest) -> dict:
    """Builds the message shared by the push and in-app sinks for one urgent quest."""
    return {
        "userId": quest.userId,
        "type": URGENT_QUEST_NOTIFICATION,
        "title": f"⚡ {quest.title}",
        "body": quest.description,
        "data": {
            "questId": quest.id,
            "urgency": quest.urgency.value,
            "points": quest.totalPoints,
            "expires": quest.validUntil.isoformat() if quest.validUntil else None,
        },
        "priority": "high",
        "sound": "urgent_quest.mp3",
    }


class NotificationDispatcher:
    """
    Emits urgent quests to two independent sinks. A failing sink is logged and never
    stops the other one, or the next quest.

    Args:
        push_sink: Sends a push-style message built by build_notification()
        in_app_sink: Persists the same message as an in-app notification record
        threshold: Lowest urgency that is dispatched
    """

    def __init__(self, push_sink: Callable[[dict], None], in_app_sink: Callable[[dict], None],
                 threshold: Urgency = Urgency.HIGH):
        self.push_sink = push_sink
        self.in_app_sink = in_app_sink
        self.threshold = threshold

    def select_urgent(self, quests: Iterable[Quest]) -> List[Quest]:
        return [quest for quest in quests if quest.urgency.rank >= self.threshold.rank]

    def dispatch(self, quests: Iterable[Quest]) -> None:
        urgent = self.select_urgent(quests)
        if not urgent:
            return
        failures = 0
        for quest in urgent:
            notification = build_notification(quest)
            for sink_name, sink in (("push", self.push_sink), ("in-app", self.in_app_sink)):
                try:
                    sink(notification)
                except Exception as e:
                    failures += 1
                    logging.error(f"Failed to send {sink_name} notification for quest {quest.id}. Error: {e}", exc_info=True)
        logging.info(f"Dispatched {len(urgent)} urgent quest notification(s) with {failures} sink failure(s).")
