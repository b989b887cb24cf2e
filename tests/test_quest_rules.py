import datetime

import pytz

from conftest import make_snapshot
from models import QuestType, Rarity, Urgency
from quest_rules import (
    ConditionContext,
    QuestRule,
    RuleGroup,
    evaluate_catalog,
    render_candidates,
)


def categories(snapshot):
    return [candidate.category for candidate in render_candidates(snapshot)]


def by_category(snapshot):
    return {candidate.category: candidate for candidate in render_candidates(snapshot)}


def test_heatwave_fires_extreme_heat_and_emergency(heatwave_snapshot):
    found = by_category(heatwave_snapshot)

    assert found["extreme_heat"].urgency == Urgency.EXTREME
    assert found["heatwave_emergency"].urgency == Urgency.EXTREME
    assert found["heatwave_emergency"].quest_type == QuestType.EXTREME_WEATHER
    assert found["extreme_heat"].valid_for == datetime.timedelta(hours=6)
    assert found["heatwave_emergency"].valid_for == datetime.timedelta(hours=2)


def test_heatwave_scenario_full_set(heatwave_snapshot):
    assert categories(heatwave_snapshot) == [
        "extreme_heat", "heatwave_emergency", "good_air_quality", "sunny_day", "daily_efficiency",
    ]


def test_extreme_heat_between_35_and_40_is_high():
    found = by_category(make_snapshot(temperature=37.0, feelsLike=39.0))
    assert found["extreme_heat"].urgency == Urgency.HIGH
    assert "heatwave_emergency" not in found


def test_feels_like_alone_triggers_extreme_heat():
    found = by_category(make_snapshot(temperature=33.0, feelsLike=39.5))
    assert "extreme_heat" in found
    assert "high_heat" not in found


def test_temperature_axis_is_first_match():
    # 32°C would satisfy no other temperature rule, 25°C only optimal
    assert [c for c in categories(make_snapshot(temperature=32.0, feelsLike=33.0))
            if c in ("extreme_heat", "high_heat", "optimal_temp", "cold_weather")] == ["high_heat"]
    assert "optimal_temp" in categories(make_snapshot(temperature=25.0))
    assert "cold_weather" in categories(make_snapshot(temperature=12.0, feelsLike=10.0))


def test_temperature_gap_produces_no_temperature_quest():
    found = categories(make_snapshot(temperature=29.0, feelsLike=30.0))
    assert not {"extreme_heat", "high_heat", "optimal_temp", "cold_weather"} & set(found)


def test_poor_air_and_pollution_emergency():
    found = by_category(make_snapshot(aqi=5, pm2_5=180.0, pm10=220.0))

    assert found["poor_air_quality"].urgency == Urgency.HIGH
    assert found["air_pollution_emergency"].urgency == Urgency.EXTREME
    assert found["air_pollution_emergency"].air_quality_trigger.severity == "HAZARDOUS"
    assert "good_air_quality" not in found


def test_poor_air_from_pm_alone_is_medium():
    found = by_category(make_snapshot(aqi=3, pm2_5=60.0))
    assert found["poor_air_quality"].urgency == Urgency.MEDIUM
    assert "air_pollution_emergency" not in found


def test_weather_condition_is_case_insensitive():
    assert "rainy_day" in categories(make_snapshot(weatherCondition="RAIN"))
    storm = by_category(make_snapshot(weatherCondition="thunderstorm"))
    assert storm["rainy_day"].urgency == Urgency.HIGH


def test_clear_sky_at_night_is_not_a_sunny_day():
    night = make_snapshot(weatherCondition="Clear", timestamp=datetime.datetime(2024, 6, 1, 22, 0, tzinfo=pytz.utc))
    assert "sunny_day" not in categories(night)


def test_local_hour_uses_provider_offset():
    # 01:00 UTC is 06:30 at +05:30
    snapshot = make_snapshot(
        weatherCondition="Clear",
        timestamp=datetime.datetime(2024, 6, 1, 1, 0, tzinfo=pytz.utc),
        timezoneOffset=19800,
    )
    assert ConditionContext.from_snapshot(snapshot).local_hour == 6
    assert "sunny_day" in categories(snapshot)


def test_humidity_and_wind_are_independent_axes():
    found = categories(make_snapshot(humidity=85.0, windSpeed=7.5, weatherCondition="Rain"))
    assert {"high_humidity", "windy_day", "rainy_day"} <= set(found)


def test_triple_challenge_combo():
    found = by_category(make_snapshot(temperature=33.0, feelsLike=36.0, humidity=75.0, aqi=3, pm2_5=40.0,
                                      weatherCondition="Haze"))
    triple = found["triple_challenge"]

    assert triple.urgency == Urgency.EXTREME
    assert triple.combo.rarity == Rarity.RARE
    assert triple.combo.bonusPoints == 200
    assert triple.special_reward == "Environmental Warrior Badge"


def test_perfect_conditions_combo():
    found = by_category(make_snapshot(temperature=24.0, humidity=50.0, aqi=1, pm2_5=5.0))
    perfect = found["perfect_conditions"]

    assert perfect.urgency == Urgency.HIGH
    assert perfect.combo.rarity == Rarity.LEGENDARY
    assert perfect.combo.bonusPoints == 500
    assert sum(o.points for o in perfect.objectives) == 750


def test_baseline_always_fires():
    assert categories(make_snapshot(temperature=29.0, humidity=50.0, aqi=3, weatherCondition="Mist"))[-1] == "daily_efficiency"


def test_description_is_rendered_from_readings():
    found = by_category(make_snapshot(aqi=4, pm2_5=70.3))
    assert found["poor_air_quality"].description == "Poor air quality detected! AQI: 4/5, PM2.5: 70.3μg/m³"


def test_custom_group_can_fire_every_match():
    always = QuestRule(category="a", quest_type=QuestType.HUMIDITY, title="A", description="",
                       condition=lambda ctx: True, urgency=Urgency.LOW, objectives=({"action": "x", "points": 1},))
    also = QuestRule(category="b", quest_type=QuestType.HUMIDITY, title="B", description="",
                     condition=lambda ctx: True, urgency=Urgency.LOW, objectives=({"action": "y", "points": 1},))
    ctx = ConditionContext.from_snapshot(make_snapshot())

    assert evaluate_catalog(ctx, [RuleGroup("all", (always, also), first_match=False)]) == [always, also]
    assert evaluate_catalog(ctx, [RuleGroup("first", (always, also))]) == [always]
