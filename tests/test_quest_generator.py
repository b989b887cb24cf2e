import datetime
import random
import re

import pytest

from conftest import NOON_UTC, FakeSession, RecordingSink, make_snapshot
from environment_adapter import EnvironmentalAdapter
from models import Quest, Rarity, SkillTier, Urgency, UserProfile
from quest_generator import (
    QuestEngine,
    QuestGenerationError,
    calculate_difficulty_score,
    estimate_duration,
    generate_personalized_tips,
    generate_quest_id,
    process_and_prioritize,
    synthesize,
)
from quest_notifications import NotificationDispatcher


def test_quest_id_format():
    assert re.fullmatch(r"quest_\d+_[0-9a-f]{9}", generate_quest_id())
    assert generate_quest_id() != generate_quest_id()


def test_difficulty_score_is_capped():
    assert calculate_difficulty_score(3, 80, Urgency.LOW) == 43.0
    assert calculate_difficulty_score(2, 220, Urgency.MEDIUM) == 57.0
    assert calculate_difficulty_score(3, 450, Urgency.EXTREME) == 100


def test_personalized_tips(profile):
    assert len(generate_personalized_tips("extreme_heat", profile)) == 1
    assert generate_personalized_tips("sunny_day", profile) == []

    solar_beginner = UserProfile(id="u", hasAC=False, hasSolarPanels=True, difficulty=SkillTier.BEGINNER)
    tips = generate_personalized_tips("sunny_day", solar_beginner)
    assert len(tips) == 2
    assert tips[0].startswith("☀️")
    assert tips[1].startswith("🔰")


def test_synthesize_heatwave(heatwave_snapshot, profile):
    quests = {q.category: q for q in synthesize(heatwave_snapshot, profile, NOON_UTC)}

    extreme = quests["extreme_heat"]
    assert extreme.totalPoints == 450
    assert extreme.estimatedDuration == 240
    assert extreme.difficultyScore == 100
    assert extreme.validUntil == NOON_UTC + datetime.timedelta(hours=6)
    assert extreme.weatherTrigger.severity == "EXTREME"
    assert extreme.personalizedTips

    emergency = quests["heatwave_emergency"]
    assert emergency.totalPoints == 600
    assert emergency.validUntil == NOON_UTC + datetime.timedelta(hours=2)
    assert emergency.specialReward == "Climate Champion Badge"

    daily = quests["daily_efficiency"]
    assert daily.validUntil is None
    assert daily.estimatedDuration == 60
    assert all(q.progress == 0 and q.userId == "user-1" for q in quests.values())


def test_combo_total_includes_bonus(profile):
    quests = {q.category: q for q in synthesize(make_snapshot(temperature=24.0, humidity=50.0, aqi=1), profile, NOON_UTC)}
    perfect = quests["perfect_conditions"]

    assert perfect.combo.rarity == Rarity.LEGENDARY
    assert perfect.objective_points == 750
    assert perfect.totalPoints == 1250


def test_estimate_duration_defaults_to_an_hour():
    assert estimate_duration([]) == 60


def test_process_and_prioritize_orders_by_urgency_then_points(heatwave_snapshot, profile):
    ordered = process_and_prioritize(synthesize(heatwave_snapshot, profile, NOON_UTC))

    assert [q.category for q in ordered] == [
        "heatwave_emergency", "extreme_heat", "sunny_day", "good_air_quality", "daily_efficiency",
    ]


def test_process_and_prioritize_keeps_first_of_each_key(profile):
    snapshot = make_snapshot()
    first = synthesize(snapshot, profile, NOON_UTC)
    second = synthesize(snapshot, profile, NOON_UTC)

    result = process_and_prioritize(first + second)

    assert len(result) == len(first)
    assert {q.id for q in result} == {q.id for q in first}


def test_process_and_prioritize_drops_held_keys(heatwave_snapshot, profile):
    quests = synthesize(heatwave_snapshot, profile, NOON_UTC)

    result = process_and_prioritize(quests, {"temperature_extreme_heat": "quest_1_abc"})
    assert "extreme_heat" not in [q.category for q in result]

    result = process_and_prioritize(quests, [quests[-1]])
    assert "daily_efficiency" not in [q.category for q in result]


def test_process_and_prioritize_is_stable_for_ties(profile):
    quests = synthesize(make_snapshot(), profile, NOON_UTC)
    tied = [q.model_copy(update={"category": f"tie_{i}", "urgency": Urgency.LOW, "totalPoints": 10})
            for i, q in enumerate(quests)]

    assert process_and_prioritize(tied) == tied


class TestQuestEngine:

    def make_engine(self, snapshot, profile_provider, store, clock, dispatcher=None):
        return QuestEngine(lambda location: snapshot, profile_provider, store=store, dispatcher=dispatcher,
                           clock=clock)

    def test_generates_and_stores(self, heatwave_snapshot, profile, store, clock, location):
        engine = self.make_engine(heatwave_snapshot, lambda uid: profile, store, clock)

        quests = engine.generate_quests("user-1", location)

        assert quests[0].category == "heatwave_emergency"
        assert {q.id for q in store.list_open("user-1")} == {q.id for q in quests}

    def test_second_cycle_does_not_duplicate(self, heatwave_snapshot, profile, store, clock, location):
        engine = self.make_engine(heatwave_snapshot, lambda uid: profile, store, clock)

        first = engine.generate_quests("user-1", location)
        second = engine.generate_quests("user-1", location)

        assert first
        assert second == []
        assert len(store.list_open("user-1")) == len(first)

    def test_expired_quests_release_their_key(self, heatwave_snapshot, profile, store, clock, location):
        engine = self.make_engine(heatwave_snapshot, lambda uid: profile, store, clock)
        engine.generate_quests("user-1", location)

        clock.advance(hours=3)
        again = engine.generate_quests("user-1", location)

        assert [q.category for q in again] == ["heatwave_emergency"]

    def test_profile_failure_falls_back_to_default(self, heatwave_snapshot, store, clock, location):
        def broken_profile(user_id):
            raise RuntimeError("profile store down")

        engine = self.make_engine(heatwave_snapshot, broken_profile, store, clock)
        quests = engine.generate_quests("user-9", location)

        extreme = next(q for q in quests if q.category == "extreme_heat")
        assert extreme.userId == "user-9"
        assert extreme.personalizedTips  # default profile has AC

    def test_internal_failure_raises_generation_error(self, profile, store, clock, location):
        def broken_snapshot(loc):
            raise ValueError("boom")

        engine = QuestEngine(broken_snapshot, lambda uid: profile, store=store, clock=clock)

        with pytest.raises(QuestGenerationError) as exc_info:
            engine.generate_quests("user-1", location)
        assert exc_info.value.quests == []
        assert store.list_open("user-1") == []

    def test_urgent_quests_are_dispatched(self, heatwave_snapshot, profile, store, clock, location):
        push, in_app = RecordingSink(), RecordingSink()
        dispatcher = NotificationDispatcher(push, in_app)
        engine = self.make_engine(heatwave_snapshot, lambda uid: profile, store, clock, dispatcher)

        engine.generate_quests("user-1", location)

        assert [m["data"]["questId"] for m in push.messages] == [m["data"]["questId"] for m in in_app.messages]
        assert len(push.messages) == 2
        assert push.messages[0]["title"] == "⚡ 🚨 Heatwave Emergency Protocol"

    def test_notifications_disabled_skips_dispatch(self, heatwave_snapshot, store, clock, location):
        push, in_app = RecordingSink(), RecordingSink()
        quiet = UserProfile(id="user-1", notifications=False)
        engine = self.make_engine(heatwave_snapshot, lambda uid: quiet, store, clock,
                                  NotificationDispatcher(push, in_app))

        assert engine.generate_quests("user-1", location)
        assert push.messages == []
        assert in_app.messages == []

    def test_dispatch_failure_does_not_fail_generation(self, heatwave_snapshot, profile, store, clock, location):
        class ExplodingDispatcher:
            def dispatch(self, quests):
                raise RuntimeError("broker down")

        engine = self.make_engine(heatwave_snapshot, lambda uid: profile, store, clock, ExplodingDispatcher())

        assert len(engine.generate_quests("user-1", location)) == 5

    def test_runs_without_a_store(self, heatwave_snapshot, profile, clock, location):
        engine = QuestEngine(lambda loc: heatwave_snapshot, lambda uid: profile, clock=clock)
        assert len(engine.generate_quests("user-1", location)) == 5


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
def test_provider_outage_still_yields_valid_quests(seed, clock, location):
    adapter = EnvironmentalAdapter(api_key="k", session=FakeSession(fail={"weather", "air"}),
                                   rng=random.Random(seed), clock=clock)
    engine = QuestEngine(adapter.get_snapshot, UserProfile.default, clock=clock)

    quests = engine.generate_quests("user-1", location)

    assert quests
    assert quests[-1].category == "daily_efficiency"
    for quest in quests:
        assert Quest.model_validate(quest.to_dict()).id == quest.id


def test_out_of_range_provider_reading_does_not_fail_generation(weather_payload, air_payload, clock, location):
    air_payload["list"][0]["components"]["pm2_5"] = -0.3
    adapter = EnvironmentalAdapter(api_key="k", session=FakeSession(weather=weather_payload, air=air_payload),
                                   rng=random.Random(5), clock=clock)

    quests = QuestEngine(adapter.get_snapshot, UserProfile.default, clock=clock).generate_quests("u", location)

    assert "rainy_day" in {q.category for q in quests}
