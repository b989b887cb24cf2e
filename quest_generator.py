import argparse
import datetime
import json
import logging
import os
import random
import time
import uuid
from collections.abc import Mapping
from typing import Callable, Iterable, List, Optional, Sequence

from dotenv import load_dotenv

from environment_adapter import EnvironmentalAdapter
from models import EnvironmentalSnapshot, Location, Objective, Quest, SkillTier, Urgency, UserProfile
from quest_lifecycle import QuestLifecycleManager
from quest_rules import RULE_CATALOG, QuestCandidate, RuleGroup, render_candidates
from timezone_utils import utc_now

DEFAULT_OBJECTIVE_DURATION = 60  # minutes
MAX_DIFFICULTY_SCORE = 100


class QuestGenerationError(Exception):
    """Synthesis failed unexpectedly; callers get no quests rather than a partial list."""

    def __init__(self, message: str):
        super().__init__(message)
        self.quests: List[Quest] = []


def generate_quest_id() -> str:
    return f"quest_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def estimate_duration(objectives: Sequence[Objective]) -> int:
    return max((objective.duration or DEFAULT_OBJECTIVE_DURATION for objective in objectives),
               default=DEFAULT_OBJECTIVE_DURATION)


def calculate_difficulty_score(objective_count: int, total_points: int, urgency: Urgency) -> float:
    score = objective_count * 10 + total_points / 10 + urgency.weight
    return min(score, MAX_DIFFICULTY_SCORE)


def generate_personalized_tips(category: str, profile: UserProfile) -> List[str]:
    tips = []
    if profile.hasAC and 'heat' in category:
        tips.append('💡 Your AC usage history shows you prefer 22°C. Try 25°C today for extra savings!')
    if profile.hasSolarPanels and category == 'sunny_day':
        tips.append('☀️ Perfect day to maximize your solar generation! Run heavy appliances now.')
    if profile.difficulty == SkillTier.BEGINNER:
        tips.append('🔰 New to energy saving? Start with the easiest objective and work your way up!')
    return tips


def build_quest(candidate: QuestCandidate, profile: UserProfile, now: datetime.datetime) -> Quest:
    """Attaches identity, timing, scoring and tips to a rendered rule."""
    objective_points = sum(objective.points for objective in candidate.objectives)
    total_points = objective_points + (candidate.combo.bonusPoints if candidate.combo else 0)
    return Quest(
        id=generate_quest_id(),
        userId=profile.id,
        title=candidate.title,
        description=candidate.description,
        type=candidate.quest_type,
        category=candidate.category,
        urgency=candidate.urgency,
        totalPoints=total_points,
        progress=0.0,
        objectives=candidate.objectives,
        createdAt=now,
        validUntil=now + candidate.valid_for if candidate.valid_for else None,
        weatherTrigger=candidate.weather_trigger,
        airQualityTrigger=candidate.air_quality_trigger,
        personalizedTips=generate_personalized_tips(candidate.category, profile),
        estimatedDuration=estimate_duration(candidate.objectives),
        difficultyScore=calculate_difficulty_score(len(candidate.objectives), total_points, candidate.urgency),
        combo=candidate.combo,
        specialReward=candidate.special_reward,
        bonus=candidate.bonus,
    )


def synthesize(snapshot: EnvironmentalSnapshot, profile: UserProfile, now: Optional[datetime.datetime] = None,
               catalog: Sequence[RuleGroup] = RULE_CATALOG) -> List[Quest]:
    """Evaluates the rule catalog against a snapshot and returns one quest per fired rule."""
    now = now or utc_now()
    return [build_quest(candidate, profile, now) for candidate in render_candidates(snapshot, catalog)]


def _held_keys(already_active) -> set:
    if not already_active:
        return set()
    if isinstance(already_active, Mapping):
        return set(already_active.keys())
    return {quest.dedup_key for quest in already_active if quest.is_open}


def remove_duplicate_quests(quests: Iterable[Quest], held_keys: Iterable[str] = ()) -> List[Quest]:
    """Keeps the first quest per dedup key, dropping keys that are already held."""
    seen = set(held_keys)
    unique = []
    for quest in quests:
        if quest.dedup_key in seen:
            continue
        seen.add(quest.dedup_key)
        unique.append(quest)
    return unique


def prioritize_quests(quests: Iterable[Quest]) -> List[Quest]:
    return sorted(quests, key=lambda quest: (-quest.urgency.rank, -quest.totalPoints))


def process_and_prioritize(candidates: Iterable[Quest], already_active=None) -> List[Quest]:
    """
    Deduplicates and orders a batch of freshly synthesized quests.

    Args:
        candidates: Quests in generation order
        already_active: Either the caller's active index (dedup key -> quest id) or its active quests

    Returns:
        list: Survivors sorted by urgency, then total points, both descending
    """
    return prioritize_quests(remove_duplicate_quests(candidates, _held_keys(already_active)))


class QuestEngine:
    """
    Runs one generation cycle for a user: snapshot -> rules -> dedup/prioritize -> merge -> notify.

    Args:
        snapshot_provider: location -> EnvironmentalSnapshot (must not raise, see EnvironmentalAdapter)
        profile_provider: user_id -> UserProfile
        store: Optional quest store; when given, expired quests are swept and new quests are merged into it
        dispatcher: Optional object with dispatch(quests) for newly created urgent quests
        clock: Returns the current aware UTC datetime
    """

    def __init__(self, snapshot_provider: Callable[[Location], EnvironmentalSnapshot],
                 profile_provider: Callable[[str], UserProfile], store=None, dispatcher=None,
                 clock: Callable = utc_now, lifecycle: Optional[QuestLifecycleManager] = None):
        self.snapshot_provider = snapshot_provider
        self.profile_provider = profile_provider
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock
        self.lifecycle = lifecycle or (QuestLifecycleManager(store, clock=clock) if store is not None else None)

    def generate_quests(self, user_id: str, location: Location) -> List[Quest]:
        profile = self._load_profile(user_id)
        try:
            snapshot = self.snapshot_provider(location)
            now = self.clock()
            already_active = {}
            if self.store is not None:
                self.lifecycle.sweep_expired(user_id)
                already_active = self.store.active_index(user_id)
            quests = process_and_prioritize(synthesize(snapshot, profile, now), already_active)
            if self.store is not None:
                quests = self.store.merge(user_id, quests)
        except Exception as e:
            logging.error(f"Quest generation failed for user {user_id}: {e}", exc_info=True)
            raise QuestGenerationError(f"Failed to generate quests for user {user_id}.") from e

        logging.info(f"Generated {len(quests)} new quest(s) for user {user_id}: {[q.category for q in quests]}")
        self._notify(profile, quests)
        return quests

    def _load_profile(self, user_id: str) -> UserProfile:
        try:
            profile = self.profile_provider(user_id)
        except Exception as e:
            logging.warning(f"Profile fetch failed for user {user_id}, using default profile. Error: {e}")
            profile = None
        if profile is None or profile.id != user_id:
            return UserProfile.default(user_id)
        return profile

    def _notify(self, profile: UserProfile, quests: List[Quest]) -> None:
        if not self.dispatcher or not quests or not profile.notifications:
            return
        try:
            self.dispatcher.dispatch(quests)
        except Exception as e:
            logging.error(f"Urgent quest dispatch failed for user {profile.id}: {e}", exc_info=True)


if __name__ == '__main__':
    from logging_config import setup_logging
    setup_logging()
    load_dotenv()

    parser = argparse.ArgumentParser(description='Generate environmental quests for one location.')
    parser.add_argument('--user-id', type=str, default='demo-user')
    parser.add_argument('--lat', type=float, required=True)
    parser.add_argument('--lng', type=float, required=True)
    parser.add_argument('--seed', type=int, default=None, help='Seed for synthetic fallback readings.')
    args = parser.parse_args()

    adapter = EnvironmentalAdapter(
        api_key=os.environ.get('OPENWEATHER_API_KEY'),
        rng=random.Random(args.seed),
    )
    engine = QuestEngine(adapter.get_snapshot, UserProfile.default)
    try:
        results = engine.generate_quests(args.user_id, Location(lat=args.lat, lng=args.lng))
        print(json.dumps([quest.to_dict() for quest in results], indent=2, ensure_ascii=False))
    except QuestGenerationError as e:
        print(f"[{datetime.datetime.now()}] Failure: {e} Check log file for details.")
