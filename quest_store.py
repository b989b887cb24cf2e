"""
Quest storage owned by the caller of the engine.

Both stores keep the active-quest index (dedup key -> quest id) consistent at the merge boundary:
merge() re-checks every candidate's key against the user's open quests atomically, so two
overlapping generation cycles cannot both insert a quest of the same kind.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional

from google.cloud import firestore

from models import OPEN_STATUSES, Quest

QUESTS_COLLECTION = 'quests'


def build_active_index(quests: Iterable[Quest]) -> Dict[str, str]:
    """Maps each open quest's dedup key to its id."""
    return {quest.dedup_key: quest.id for quest in quests if quest.is_open}


class InMemoryQuestStore:
    """Process-local store, used by tests and single-process deployments."""

    def __init__(self):
        self._quests: Dict[str, Quest] = {}
        self._lock = threading.RLock()

    def get(self, quest_id: str) -> Optional[Quest]:
        with self._lock:
            quest = self._quests.get(quest_id)
            return quest.model_copy(deep=True) if quest else None

    def save(self, quest: Quest) -> None:
        with self._lock:
            self._quests[quest.id] = quest.model_copy(deep=True)

    def list_for_user(self, user_id: str) -> List[Quest]:
        with self._lock:
            return [q.model_copy(deep=True) for q in self._quests.values() if q.userId == user_id]

    def list_open(self, user_id: str) -> List[Quest]:
        return [quest for quest in self.list_for_user(user_id) if quest.is_open]

    def list_all_open(self) -> List[Quest]:
        with self._lock:
            return [q.model_copy(deep=True) for q in self._quests.values() if q.is_open]

    def active_index(self, user_id: str) -> Dict[str, str]:
        return build_active_index(self.list_open(user_id))

    def merge(self, user_id: str, quests: Iterable[Quest]) -> List[Quest]:
        """Inserts the quests whose dedup key is not already held. Returns the inserted ones."""
        with self._lock:
            held = self.active_index(user_id)
            inserted = []
            for quest in quests:
                if quest.dedup_key in held:
                    logging.info(f"Skipping quest '{quest.dedup_key}' for {user_id}: already active as {held[quest.dedup_key]}.")
                    continue
                self.save(quest)
                held[quest.dedup_key] = quest.id
                inserted.append(quest)
            return inserted


def _to_document(quest: Quest) -> dict:
    document = quest.to_dict()
    document['dedupKey'] = quest.dedup_key
    return document


@firestore.transactional
def merge_quests_transaction(transaction, collection_ref, open_query, quests):
    """Atomically inserts quests whose dedup key is not held by one of the user's open quests."""
    held = {doc.to_dict().get('dedupKey') for doc in open_query.stream(transaction=transaction)}
    inserted = []
    for quest in quests:
        if quest.dedup_key in held:
            logging.info(f"Transaction: skipping quest '{quest.dedup_key}', already active.")
            continue
        transaction.set(collection_ref.document(quest.id), _to_document(quest))
        held.add(quest.dedup_key)
        inserted.append(quest)
    logging.info(f"Transaction: inserted {len(inserted)} new quest(s).")
    return inserted


class FirestoreQuestStore:
    """Stores quests as documents in the `quests` collection, keyed by quest id."""

    def __init__(self, db, collection: str = QUESTS_COLLECTION):
        self.db = db
        self.collection = collection

    def _collection_ref(self):
        return self.db.collection(self.collection)

    def _open_query(self, user_id: str):
        return self._collection_ref().where(
            filter=firestore.FieldFilter('userId', '==', user_id)
        ).where(
            filter=firestore.FieldFilter('status', 'in', [status.value for status in OPEN_STATUSES])
        )

    def get(self, quest_id: str) -> Optional[Quest]:
        doc = self._collection_ref().document(quest_id).get()
        if not doc.exists:
            return None
        return Quest.model_validate(doc.to_dict())

    def save(self, quest: Quest) -> None:
        self._collection_ref().document(quest.id).set(_to_document(quest))

    def list_open(self, user_id: str) -> List[Quest]:
        return [Quest.model_validate(doc.to_dict()) for doc in self._open_query(user_id).stream()]

    def list_all_open(self) -> List[Quest]:
        query = self._collection_ref().where(
            filter=firestore.FieldFilter('status', 'in', [status.value for status in OPEN_STATUSES])
        )
        return [Quest.model_validate(doc.to_dict()) for doc in query.stream()]

    def active_index(self, user_id: str) -> Dict[str, str]:
        return build_active_index(self.list_open(user_id))

    def merge(self, user_id: str, quests: Iterable[Quest]) -> List[Quest]:
        transaction = self.db.transaction()
        return merge_quests_transaction(transaction, self._collection_ref(), self._open_query(user_id), list(quests))
