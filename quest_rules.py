"""
Rule catalog for environmental quests.

Each QuestRule pairs a condition over the current readings with the quest template it produces.
Rules are grouped by axis; within a first-match group only the first matching rule fires, and a
rule's follow-ups fire alongside it when their own condition also holds.
"""

import datetime
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

from models import (
    AirQualityTrigger,
    ComboInfo,
    EnvironmentalSnapshot,
    Objective,
    QuestType,
    Rarity,
    Urgency,
    WeatherTrigger,
)
from timezone_utils import get_local_hour

DAYLIGHT_START_HOUR = 6
DAYLIGHT_END_HOUR = 18


@dataclass(frozen=True)
class ConditionContext:
    """The readings a rule is evaluated against, plus the local hour at the reading's location."""
    snapshot: EnvironmentalSnapshot
    local_hour: int

    @classmethod
    def from_snapshot(cls, snapshot: EnvironmentalSnapshot) -> "ConditionContext":
        return cls(snapshot=snapshot, local_hour=get_local_hour(snapshot.timestamp, snapshot.timezoneOffset))

    @property
    def temperature(self) -> float:
        return self.snapshot.temperature

    @property
    def feels_like(self) -> Optional[float]:
        return self.snapshot.feelsLike

    @property
    def humidity(self) -> float:
        return self.snapshot.humidity

    @property
    def aqi(self) -> int:
        return self.snapshot.aqi

    @property
    def pm2_5(self) -> float:
        return self.snapshot.pm2_5

    @property
    def wind_speed(self) -> float:
        return self.snapshot.windSpeed

    @property
    def condition(self) -> str:
        return self.snapshot.weatherCondition.strip().lower()

    @property
    def is_daytime(self) -> bool:
        return DAYLIGHT_START_HOUR <= self.local_hour <= DAYLIGHT_END_HOUR

    def format_args(self) -> dict:
        return {
            "temperature": self.temperature,
            "feels_like": self.feels_like if self.feels_like is not None else self.temperature,
            "humidity": self.humidity,
            "aqi": self.aqi,
            "pm2_5": self.pm2_5,
            "pm10": self.snapshot.pm10,
            "wind_speed": self.wind_speed,
            "condition": self.snapshot.weatherCondition,
        }


@dataclass
class QuestCandidate:
    """A rule rendered against one context, before ids, timestamps and scoring are attached."""
    rule: "QuestRule"
    title: str
    description: str
    urgency: Urgency
    objectives: List[Objective]
    valid_for: Optional[datetime.timedelta] = None
    weather_trigger: Optional[WeatherTrigger] = None
    air_quality_trigger: Optional[AirQualityTrigger] = None
    combo: Optional[ComboInfo] = None
    special_reward: Optional[str] = None
    bonus: Optional[str] = None

    @property
    def category(self) -> str:
        return self.rule.category

    @property
    def quest_type(self) -> QuestType:
        return self.rule.quest_type


@dataclass(frozen=True)
class QuestRule:
    category: str
    quest_type: QuestType
    title: str
    description: str  # str.format template over ConditionContext.format_args()
    condition: Callable[[ConditionContext], bool]
    urgency: Union[Urgency, Callable[[ConditionContext], Urgency]]
    objectives: Tuple[dict, ...]
    valid_for: Optional[datetime.timedelta] = None
    weather_trigger: Optional[Callable[[ConditionContext], dict]] = None
    air_quality_trigger: Optional[Callable[[ConditionContext], dict]] = None
    combo: Optional[dict] = None
    special_reward: Optional[str] = None
    bonus: Optional[str] = None
    follow_ups: Tuple["QuestRule", ...] = ()

    def matches(self, ctx: ConditionContext) -> bool:
        return bool(self.condition(ctx))

    def resolve_urgency(self, ctx: ConditionContext) -> Urgency:
        if isinstance(self.urgency, Urgency):
            return self.urgency
        return self.urgency(ctx)

    def render(self, ctx: ConditionContext) -> QuestCandidate:
        args = ctx.format_args()
        return QuestCandidate(
            rule=self,
            title=self.title,
            description=self.description.format(**args),
            urgency=self.resolve_urgency(ctx),
            objectives=[Objective(**template) for template in self.objectives],
            valid_for=self.valid_for,
            weather_trigger=WeatherTrigger(**self.weather_trigger(ctx)) if self.weather_trigger else None,
            air_quality_trigger=AirQualityTrigger(**self.air_quality_trigger(ctx)) if self.air_quality_trigger else None,
            combo=ComboInfo(**self.combo) if self.combo else None,
            special_reward=self.special_reward,
            bonus=self.bonus,
        )


@dataclass(frozen=True)
class RuleGroup:
    name: str
    rules: Tuple[QuestRule, ...]
    first_match: bool = True


def _heat_severity(ctx):
    return "EXTREME" if ctx.temperature > 40 else "HIGH"


def _air_severity(ctx):
    return "HAZARDOUS" if ctx.aqi >= 5 else "UNHEALTHY"


def _air_trigger(ctx):
    return {"aqi": ctx.aqi, "pm2_5": ctx.pm2_5, "pm10": ctx.snapshot.pm10, "severity": _air_severity(ctx)}


# --- TEMPERATURE AXIS ---
HEATWAVE_EMERGENCY = QuestRule(
    category="heatwave_emergency",
    quest_type=QuestType.EXTREME_WEATHER,
    title="🚨 Heatwave Emergency Protocol",
    description="EXTREME HEAT: {temperature:.1f}°C! Emergency energy conservation needed.",
    condition=lambda ctx: ctx.temperature > 42,
    urgency=Urgency.EXTREME,
    objectives=(
        {"action": 'Switch to "Emergency Cool" mode - AC at 28°C with fans', "target": 28, "duration": 120,
         "points": 400, "tip": "Unlocks the Heatwave Hero Badge"},
        {"action": "Unplug non-essential appliances", "target": 3, "points": 200},
    ),
    valid_for=datetime.timedelta(hours=2),
    weather_trigger=lambda ctx: {"condition": "Temperature > 42°C", "value": ctx.temperature, "severity": "EXTREME"},
    special_reward="Climate Champion Badge",
)

EXTREME_HEAT = QuestRule(
    category="extreme_heat",
    quest_type=QuestType.TEMPERATURE,
    title="🔥 Beat the Extreme Heat!",
    description="Temperature is {temperature:.1f}°C! Optimize your cooling strategy to save energy.",
    condition=lambda ctx: ctx.temperature > 35 or (ctx.feels_like is not None and ctx.feels_like > 38),
    urgency=lambda ctx: Urgency.EXTREME if ctx.temperature > 40 else Urgency.HIGH,
    objectives=(
        {"action": "Set AC temperature to 26°C or higher", "target": 26, "duration": 240, "points": 200,
         "tip": "Every degree higher saves 6-8% energy", "energySaving": "15-20% cooling energy"},
        {"action": "Use ceiling fans with AC (raise AC temp by 2°C)", "target": 1, "points": 150,
         "tip": "Fans use 90% less energy than AC", "energySaving": "30-40% cooling cost"},
        {"action": "Close curtains/blinds during peak sun hours", "target": 1, "points": 100,
         "energySaving": "Reduce indoor heat by 3-5°C"},
    ),
    valid_for=datetime.timedelta(hours=6),
    weather_trigger=lambda ctx: {
        "condition": "Temperature: {temperature}°C, Feels like: {feels_like}°C".format(**ctx.format_args()),
        "value": ctx.temperature,
        "severity": _heat_severity(ctx),
    },
    follow_ups=(HEATWAVE_EMERGENCY,),
)

HIGH_HEAT = QuestRule(
    category="high_heat",
    quest_type=QuestType.TEMPERATURE,
    title="☀️ Smart Cooling Challenge",
    description="Hot day ahead: {temperature:.1f}°C. Time for smart energy choices!",
    condition=lambda ctx: 30 < ctx.temperature <= 35,
    urgency=Urgency.MEDIUM,
    objectives=(
        {"action": "Set AC to 24-25°C instead of lower", "target": 24, "duration": 180, "points": 120,
         "tip": "Each degree higher saves 6-8% energy"},
        {"action": "Pre-cool rooms before peak hours (11 AM - 4 PM)", "target": 1, "points": 100,
         "tip": "Cool early when grid load is lower"},
    ),
    weather_trigger=lambda ctx: {"condition": "Temperature > 30°C", "value": ctx.temperature},
)

OPTIMAL_TEMP = QuestRule(
    category="optimal_temp",
    quest_type=QuestType.TEMPERATURE,
    title="🌤️ Natural Comfort Zone",
    description="Perfect weather: {temperature:.1f}°C! Maximize natural comfort.",
    condition=lambda ctx: 22 <= ctx.temperature <= 28,
    urgency=Urgency.LOW,
    objectives=(
        {"action": "Turn off AC and use natural ventilation", "target": 1, "duration": 300, "points": 180,
         "tip": "Open windows for cross-ventilation"},
        {"action": "Use fans instead of AC if needed", "target": 1, "points": 100},
    ),
    weather_trigger=lambda ctx: {"condition": "Temperature 22-28°C", "value": ctx.temperature},
    bonus="Natural Living Bonus: +50 points",
)

COLD_WEATHER = QuestRule(
    category="cold_weather",
    quest_type=QuestType.TEMPERATURE,
    title="🧥 Cozy & Efficient",
    description="Cool day: {temperature:.1f}°C. Smart warming strategies!",
    condition=lambda ctx: ctx.temperature < 18,
    urgency=Urgency.MEDIUM,
    objectives=(
        {"action": "Layer up before using heaters", "target": 1, "points": 100,
         "tip": "Warm clothes can feel like +3-4°C"},
        {"action": "Use room heaters only in occupied rooms", "target": 1, "points": 120},
    ),
    weather_trigger=lambda ctx: {"condition": "Temperature < 18°C", "value": ctx.temperature},
)

# --- AIR QUALITY AXIS ---
AIR_POLLUTION_EMERGENCY = QuestRule(
    category="air_pollution_emergency",
    quest_type=QuestType.EXTREME_WEATHER,
    title="🚨 Air Pollution Emergency",
    description="HAZARDOUS air quality! AQI: {aqi}/5. Protect health while saving energy.",
    condition=lambda ctx: ctx.aqi == 5 or ctx.pm2_5 > 150,
    urgency=Urgency.EXTREME,
    objectives=(
        {"action": "Seal house - AC recirculation mode only", "target": 1, "duration": 480, "points": 300,
         "tip": "Prevents outdoor pollutants entering"},
        {"action": "Cancel outdoor activities - avoid additional ventilation load", "target": 1, "points": 200},
    ),
    air_quality_trigger=_air_trigger,
    special_reward="Air Guardian Badge",
)

POOR_AIR_QUALITY = QuestRule(
    category="poor_air_quality",
    quest_type=QuestType.AIR_QUALITY,
    title="😷 Air Quality Alert - Energy Action Needed",
    description="Poor air quality detected! AQI: {aqi}/5, PM2.5: {pm2_5:.1f}μg/m³",
    condition=lambda ctx: ctx.aqi >= 4 or ctx.pm2_5 > 55,
    urgency=lambda ctx: Urgency.HIGH if ctx.aqi == 5 else Urgency.MEDIUM,
    objectives=(
        {"action": "Keep windows closed, rely on AC with filters", "target": 1, "duration": 360, "points": 150,
         "tip": "AC filters help clean indoor air"},
        {"action": "Run air purifiers in bedrooms only (not whole house)", "target": 1, "points": 120,
         "tip": "Focus purification where you spend most time"},
        {"action": "Avoid outdoor drying - use efficient dryer settings", "target": 1, "points": 100},
    ),
    air_quality_trigger=_air_trigger,
    follow_ups=(AIR_POLLUTION_EMERGENCY,),
)

GOOD_AIR_QUALITY = QuestRule(
    category="good_air_quality",
    quest_type=QuestType.AIR_QUALITY,
    title="🌬️ Fresh Air Opportunity",
    description="Great air quality! AQI: {aqi}/5. Perfect for natural ventilation.",
    condition=lambda ctx: ctx.aqi <= 2,
    urgency=Urgency.MEDIUM,
    objectives=(
        {"action": "Open windows for natural ventilation (turn off AC)", "target": 1, "duration": 240,
         "points": 200, "tip": "Fresh air is free cooling!"},
        {"action": "Air-dry clothes outside instead of using dryer", "target": 1, "points": 150,
         "tip": "Sun and fresh air = zero energy drying"},
    ),
    air_quality_trigger=lambda ctx: {"aqi": ctx.aqi, "pm2_5": ctx.pm2_5, "pm10": ctx.snapshot.pm10, "severity": "GOOD"},
    bonus="Fresh Air Bonus: Clean energy choices!",
)

# --- WEATHER CONDITION AXIS ---
RAINY_DAY = QuestRule(
    category="rainy_day",
    quest_type=QuestType.WEATHER_CONDITION,
    title="🌧️ Rainy Day Energy Smart",
    description="Rain detected! Perfect opportunity for energy conservation.",
    condition=lambda ctx: ctx.condition in ("rain", "thunderstorm"),
    urgency=lambda ctx: Urgency.HIGH if ctx.condition == "thunderstorm" else Urgency.MEDIUM,
    objectives=(
        {"action": "Use natural light from windows (delay artificial lighting)", "target": 1, "duration": 300,
         "points": 120, "tip": "Rainy day light is often sufficient"},
        {"action": "Unplug outdoor equipment to prevent surge damage", "target": 1, "points": 100,
         "tip": "Protects appliances from power surges"},
        {"action": "Skip the dryer - hang clothes indoors near fan", "target": 1, "points": 150},
    ),
    weather_trigger=lambda ctx: {"condition": ctx.snapshot.weatherCondition, "value": 1},
)

SUNNY_DAY = QuestRule(
    category="sunny_day",
    quest_type=QuestType.WEATHER_CONDITION,
    title="☀️ Solar Power Day",
    description="Bright sunny day! Harness natural energy and light.",
    condition=lambda ctx: ctx.condition == "clear" and ctx.is_daytime,
    urgency=Urgency.MEDIUM,
    objectives=(
        {"action": "Turn off all artificial lights - use natural sunlight", "target": 1, "duration": 600,
         "points": 200, "tip": "Sunlight is 100% free and bright!"},
        {"action": "Solar dry your clothes instead of machine drying", "target": 1, "points": 180,
         "tip": "Sun drying is free and kills bacteria"},
        {"action": "Heat water using solar exposure (dark containers outside)", "target": 1, "points": 150},
    ),
    weather_trigger=lambda ctx: {"condition": "Sunny/Clear conditions", "value": 1},
    bonus="Solar Warrior Bonus: Living off the grid!",
)

CLOUDY_DAY = QuestRule(
    category="cloudy_day",
    quest_type=QuestType.WEATHER_CONDITION,
    title="☁️ Cloud Cover Advantage",
    description="Cloudy skies mean cooler temperatures. Smart energy choices!",
    condition=lambda ctx: ctx.condition == "clouds",
    urgency=Urgency.LOW,
    objectives=(
        {"action": "Reduce AC usage - clouds provide natural cooling", "target": 2, "duration": 240,
         "points": 140, "tip": "Clouds can reduce heat by 3-5°C"},
        {"action": "Open windows for cross-ventilation", "target": 1, "points": 100},
    ),
    weather_trigger=lambda ctx: {"condition": "Cloudy conditions", "value": 1},
)

# --- ORTHOGONAL AXES ---
HIGH_HUMIDITY = QuestRule(
    category="high_humidity",
    quest_type=QuestType.HUMIDITY,
    title="💧 Humidity Challenge",
    description="High humidity: {humidity:.0f}%! Smart dehumidification strategies.",
    condition=lambda ctx: ctx.humidity > 70,
    urgency=Urgency.MEDIUM,
    objectives=(
        {"action": 'Use AC "Dry" mode instead of "Cool" mode', "target": 1, "duration": 180, "points": 150,
         "tip": "Dry mode uses 30% less energy than cooling"},
        {"action": "Run exhaust fans in bathroom/kitchen after use", "target": 1, "points": 80,
         "tip": "Remove humidity at source"},
    ),
    weather_trigger=lambda ctx: {"condition": "High humidity > 70%", "value": ctx.humidity},
)

WINDY_DAY = QuestRule(
    category="windy_day",
    quest_type=QuestType.WEATHER_CONDITION,
    title="💨 Windy Day Cooling",
    description="Great wind: {wind_speed:.1f} m/s! Natural ventilation opportunity.",
    condition=lambda ctx: ctx.wind_speed > 5,
    urgency=Urgency.MEDIUM,
    objectives=(
        {"action": "Turn off AC - use cross-ventilation with open windows", "target": 1, "duration": 300,
         "points": 200, "tip": "Wind creates natural air conditioning"},
        {"action": "Position fans to work with wind direction", "target": 1, "points": 120},
    ),
    weather_trigger=lambda ctx: {"condition": "Wind speed > 5 m/s", "value": ctx.wind_speed},
    bonus="Wind Power Bonus: Nature's free cooling!",
)

# --- COMBOS ---
TRIPLE_CHALLENGE = QuestRule(
    category="triple_challenge",
    quest_type=QuestType.COMBO,
    title="🔥💧😷 Triple Environmental Challenge",
    description="Triple threat: Hot ({temperature:.1f}°C), Humid ({humidity:.0f}%), Poor Air (AQI: {aqi})",
    condition=lambda ctx: ctx.temperature > 32 and ctx.humidity > 65 and ctx.aqi >= 3,
    urgency=Urgency.EXTREME,
    objectives=(
        {"action": 'AC on "Dry" mode at 26°C with air recirculation', "target": 26, "duration": 240,
         "points": 300, "tip": "Handles heat, humidity, and air quality efficiently"},
        {"action": "Seal home and run minimal air purification", "target": 1, "points": 200,
         "tip": "One air purifier in main living area only"},
        {"action": "Avoid heat-generating appliances (oven, dryer)", "target": 3, "points": 150},
    ),
    combo={"conditions": ["high_temp", "high_humidity", "poor_air"], "rarity": Rarity.RARE, "bonusPoints": 200},
    special_reward="Environmental Warrior Badge",
)

PERFECT_CONDITIONS = QuestRule(
    category="perfect_conditions",
    quest_type=QuestType.COMBO,
    title="🌟 Perfect Weather Combo",
    description="Ideal conditions! Maximize natural comfort and minimize energy use.",
    condition=lambda ctx: 22 <= ctx.temperature <= 26 and ctx.humidity < 60 and ctx.aqi <= 2,
    # Elevated so the rare favourable window surfaces ahead of routine quests.
    urgency=Urgency.HIGH,
    objectives=(
        {"action": "Turn off all climate control - open windows", "target": 1, "duration": 480, "points": 400,
         "tip": "Zero Climate Control Day"},
        {"action": "Use only natural light during daytime", "target": 1, "points": 200},
        {"action": "Air-dry all laundry outside", "target": 1, "points": 150},
    ),
    combo={"conditions": ["perfect_temp", "low_humidity", "clean_air"], "rarity": Rarity.LEGENDARY, "bonusPoints": 500},
    special_reward="Nature Harmony Master Badge",
)

# --- BASELINE ---
DAILY_EFFICIENCY = QuestRule(
    category="daily_efficiency",
    quest_type=QuestType.COMBO,
    title="Daily Energy Efficiency Champion",
    description="Complete daily energy-saving actions for consistent impact.",
    condition=lambda ctx: True,
    urgency=Urgency.LOW,
    objectives=(
        {"action": "Switch to LED bulbs in frequently used areas", "points": 30,
         "tip": "LEDs use 75% less energy than incandescent bulbs", "energySaving": "0.2 kWh/day per bulb"},
        {"action": "Unplug devices when not in use", "points": 25,
         "tip": "Phantom loads can account for 5-10% of energy use"},
        {"action": "Use natural light during daytime", "points": 25,
         "tip": "Reduce artificial lighting during daylight hours"},
    ),
)

RULE_CATALOG: Tuple[RuleGroup, ...] = (
    RuleGroup("temperature", (EXTREME_HEAT, HIGH_HEAT, OPTIMAL_TEMP, COLD_WEATHER)),
    RuleGroup("air_quality", (POOR_AIR_QUALITY, GOOD_AIR_QUALITY)),
    RuleGroup("weather_condition", (RAINY_DAY, SUNNY_DAY, CLOUDY_DAY)),
    RuleGroup("humidity", (HIGH_HUMIDITY,)),
    RuleGroup("wind", (WINDY_DAY,)),
    RuleGroup("combo", (TRIPLE_CHALLENGE, PERFECT_CONDITIONS)),
    RuleGroup("baseline", (DAILY_EFFICIENCY,)),
)


def evaluate_catalog(ctx: ConditionContext, catalog: Sequence[RuleGroup] = RULE_CATALOG) -> List[QuestRule]:
    """Returns the rules that fire for ctx, in catalog order with follow-ups right after their parent."""
    fired = []
    for group in catalog:
        for rule in group.rules:
            if not rule.matches(ctx):
                continue
            fired.append(rule)
            fired.extend(follow_up for follow_up in rule.follow_ups if follow_up.matches(ctx))
            if group.first_match:
                break
    return fired


def render_candidates(snapshot: EnvironmentalSnapshot, catalog: Sequence[RuleGroup] = RULE_CATALOG) -> List[QuestCandidate]:
    ctx = ConditionContext.from_snapshot(snapshot)
    return [rule.render(ctx) for rule in evaluate_catalog(ctx, catalog)]
