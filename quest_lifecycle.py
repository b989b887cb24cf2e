"""
Quest lifecycle: accept, objective completion, skip and expiry.

    ACTIVE --accept--> ACCEPTED
    ACTIVE/ACCEPTED/IN_PROGRESS --completeObjective--> IN_PROGRESS, or COMPLETED once every objective is done
    ACTIVE/ACCEPTED/IN_PROGRESS --skip--> SKIPPED
    ACTIVE/ACCEPTED/IN_PROGRESS --past validUntil--> EXPIRED
"""

import datetime
import logging
from typing import Callable, Iterable, List, Optional

from models import Quest, QuestStatus
from timezone_utils import utc_now

ACTION_ACCEPT = "accept"
ACTION_COMPLETE_OBJECTIVE = "completeObjective"
ACTION_SKIP = "skip"
QUEST_ACTIONS = (ACTION_ACCEPT, ACTION_COMPLETE_OBJECTIVE, ACTION_SKIP)


class QuestActionError(Exception):
    """A quest action was requested with missing or invalid parameters."""
    error_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class QuestNotFoundError(QuestActionError):
    error_code = "QUEST_NOT_FOUND"
    status_code = 404


class QuestStateError(QuestActionError):
    """The action is not allowed from the quest's current status."""
    error_code = "INVALID_QUEST_STATE"
    status_code = 409


def compute_progress(quest: Quest) -> float:
    if not quest.objectives:
        return 0.0
    completed = sum(1 for objective in quest.objectives if objective.completed)
    return 100 * completed / len(quest.objectives)


def _require_open(quest: Quest, action: str) -> None:
    if not quest.is_open:
        raise QuestStateError(
            f"Cannot {action} quest {quest.id} in status {quest.status.value}.",
            details={"questId": quest.id, "status": quest.status.value},
        )


def accept_quest(quest: Quest, now: datetime.datetime) -> Quest:
    if quest.status in (QuestStatus.ACCEPTED, QuestStatus.IN_PROGRESS):
        return quest
    _require_open(quest, ACTION_ACCEPT)
    quest.status = QuestStatus.ACCEPTED
    quest.acceptedAt = now
    return quest


def complete_objective(quest: Quest, objective_index, now: datetime.datetime) -> Quest:
    """Marks one objective done and recomputes progress and status. Repeating it is a no-op."""
    if objective_index is None:
        raise QuestActionError("objectiveIndex is required for completeObjective.")
    if isinstance(objective_index, bool) or not isinstance(objective_index, int):
        raise QuestActionError("objectiveIndex must be an integer.", details={"objectiveIndex": objective_index})
    if not 0 <= objective_index < len(quest.objectives):
        raise QuestActionError(
            f"objectiveIndex {objective_index} is out of range for quest {quest.id}.",
            details={"objectiveIndex": objective_index, "objectiveCount": len(quest.objectives)},
        )

    objective = quest.objectives[objective_index]
    if objective.completed:
        return quest
    _require_open(quest, ACTION_COMPLETE_OBJECTIVE)

    objective.completed = True
    objective.completedAt = now
    if quest.acceptedAt is None:
        quest.acceptedAt = now
    quest.progress = compute_progress(quest)
    if all(o.completed for o in quest.objectives):
        quest.status = QuestStatus.COMPLETED
        quest.completedAt = now
    else:
        quest.status = QuestStatus.IN_PROGRESS
    return quest


def skip_quest(quest: Quest, now: datetime.datetime) -> Quest:
    if quest.status == QuestStatus.SKIPPED:
        return quest
    _require_open(quest, ACTION_SKIP)
    quest.status = QuestStatus.SKIPPED
    quest.closedAt = now
    return quest


def expire_if_overdue(quest: Quest, now: datetime.datetime) -> bool:
    if not quest.is_open or not quest.is_overdue(now):
        return False
    quest.status = QuestStatus.EXPIRED
    quest.closedAt = now
    return True


def expire_overdue(quests: Iterable[Quest], now: datetime.datetime) -> List[Quest]:
    """Moves open quests past validUntil to EXPIRED. Returns the quests that changed."""
    return [quest for quest in quests if expire_if_overdue(quest, now)]


class QuestLifecycleManager:
    """
    Applies user actions to stored quests.

    Args:
        store: Quest store (see quest_store)
        clock: Returns the current aware UTC datetime
        on_completed: Called once with a quest when it reaches COMPLETED (e.g. to award points)
    """

    def __init__(self, store, clock: Callable = utc_now, on_completed: Optional[Callable[[Quest], None]] = None):
        self.store = store
        self.clock = clock
        self.on_completed = on_completed

    def apply_quest_action(self, quest_id: str, action: str, objective_index=None) -> Quest:
        if not quest_id:
            raise QuestActionError("questId is required.")
        if action not in QUEST_ACTIONS:
            raise QuestActionError(f"Unknown quest action '{action}'.", details={"allowed": list(QUEST_ACTIONS)})

        quest = self.store.get(quest_id)
        if quest is None:
            raise QuestNotFoundError(f"Quest {quest_id} not found.")

        now = self.clock()
        if expire_if_overdue(quest, now):
            self.store.save(quest)
            logging.info(f"Quest {quest_id} expired at {quest.validUntil} before '{action}' could be applied.")

        was_completed = quest.status == QuestStatus.COMPLETED
        if action == ACTION_ACCEPT:
            accept_quest(quest, now)
        elif action == ACTION_COMPLETE_OBJECTIVE:
            complete_objective(quest, objective_index, now)
        else:
            skip_quest(quest, now)
        self.store.save(quest)
        logging.info(f"Applied '{action}' to quest {quest_id}: status={quest.status.value}, progress={quest.progress:.2f}")

        if quest.status == QuestStatus.COMPLETED and not was_completed and self.on_completed:
            try:
                self.on_completed(quest)
            except Exception as e:
                logging.error(f"Completion hook failed for quest {quest_id}: {e}", exc_info=True)
        return quest

    def sweep_expired(self, user_id: str) -> List[Quest]:
        expired = expire_overdue(self.store.list_open(user_id), self.clock())
        for quest in expired:
            self.store.save(quest)
        if expired:
            logging.info(f"Expired {len(expired)} overdue quest(s) for user {user_id}.")
        return expired
