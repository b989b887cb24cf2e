import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Urgency(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EXTREME = "EXTREME"

    @property
    def rank(self) -> int:
        return URGENCY_RANK[self]

    @property
    def weight(self) -> int:
        """Contribution of the urgency level to a quest's difficulty score."""
        return URGENCY_WEIGHT[self]


URGENCY_RANK = {Urgency.EXTREME: 4, Urgency.HIGH: 3, Urgency.MEDIUM: 2, Urgency.LOW: 1}
URGENCY_WEIGHT = {Urgency.EXTREME: 50, Urgency.HIGH: 30, Urgency.MEDIUM: 15, Urgency.LOW: 5}


class QuestType(str, Enum):
    TEMPERATURE = "temperature"
    AIR_QUALITY = "air_quality"
    HUMIDITY = "humidity"
    WEATHER_CONDITION = "weather_condition"
    EXTREME_WEATHER = "extreme_weather"
    COMBO = "combo"


class QuestStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"
    EXPIRED = "EXPIRED"


# Quests in these states hold their dedup key.
OPEN_STATUSES = frozenset({QuestStatus.ACTIVE, QuestStatus.ACCEPTED, QuestStatus.IN_PROGRESS})


class SkillTier(str, Enum):
    BEGINNER = "beginner"
    MEDIUM = "medium"
    ADVANCED = "advanced"


class Rarity(str, Enum):
    RARE = "RARE"
    LEGENDARY = "LEGENDARY"


# --- ENVIRONMENT & PROFILE ---
class Location(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class WeatherReading(BaseModel):
    temperature: float
    feelsLike: Optional[float] = None
    humidity: float = Field(ge=0, le=100)
    weatherCondition: str
    weatherDescription: Optional[str] = None
    windSpeed: float = Field(default=0.0, ge=0)
    timezoneOffset: Optional[int] = None  # seconds east of UTC
    city: Optional[str] = None


class AirQualityReading(BaseModel):
    aqi: int = Field(ge=1, le=5)
    pm2_5: float = Field(default=0.0, ge=0)
    pm10: float = Field(default=0.0, ge=0)


class EnvironmentalSnapshot(WeatherReading, AirQualityReading):
    """A single normalized reading of weather and air quality at one location."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime.datetime
    isSynthetic: bool = False

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


class UserProfile(BaseModel):
    id: str
    hasAC: bool = True
    hasSolarPanels: bool = False
    difficulty: SkillTier = SkillTier.MEDIUM
    notifications: bool = True
    location: Optional[Location] = None

    @classmethod
    def default(cls, user_id: str) -> "UserProfile":
        """Profile used whenever the profile store cannot supply one."""
        return cls(id=user_id)


# --- QUESTS ---
class Objective(BaseModel):
    action: str
    completed: bool = False
    points: int = Field(ge=0)
    tip: Optional[str] = None
    energySaving: Optional[str] = None
    duration: Optional[int] = None  # minutes
    target: Optional[float] = None
    completedAt: Optional[datetime.datetime] = None


class WeatherTrigger(BaseModel):
    condition: str
    value: Optional[float] = None
    severity: Optional[str] = None


class AirQualityTrigger(BaseModel):
    aqi: int
    pm2_5: float
    pm10: Optional[float] = None
    severity: Optional[str] = None


class ComboInfo(BaseModel):
    conditions: List[str]
    rarity: Rarity
    bonusPoints: int = Field(ge=0)


class Quest(BaseModel):
    id: str
    userId: str
    title: str
    description: str
    type: QuestType
    category: str
    urgency: Urgency
    totalPoints: int
    progress: float = 0.0
    objectives: List[Objective]
    status: QuestStatus = QuestStatus.ACTIVE
    createdAt: datetime.datetime
    validUntil: Optional[datetime.datetime] = None
    weatherTrigger: Optional[WeatherTrigger] = None
    airQualityTrigger: Optional[AirQualityTrigger] = None
    personalizedTips: List[str] = []
    estimatedDuration: int = 60
    difficultyScore: float = 0.0
    combo: Optional[ComboInfo] = None
    specialReward: Optional[str] = None
    bonus: Optional[str] = None
    acceptedAt: Optional[datetime.datetime] = None
    completedAt: Optional[datetime.datetime] = None
    closedAt: Optional[datetime.datetime] = None

    @model_validator(mode="after")
    def _check_validity_window(self):
        if self.validUntil is not None and self.validUntil <= self.createdAt:
            raise ValueError("validUntil must be strictly after createdAt")
        return self

    @property
    def dedup_key(self) -> str:
        return f"{self.type.value}_{self.category}"

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def objective_points(self) -> int:
        return sum(objective.points for objective in self.objectives)

    def is_overdue(self, now: datetime.datetime) -> bool:
        return self.validUntil is not None and now >= self.validUntil

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
