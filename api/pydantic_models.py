from pydantic import BaseModel, Field
from typing import Optional

from models import Location


# --- QUEST GENERATION ---
class GenerateQuestsRequest(BaseModel):
    userId: str = Field(min_length=1)
    location: Location


# --- QUEST ACTIONS ---
class QuestActionRequest(BaseModel):
    action: str
    objectiveIndex: Optional[int] = None
    questId: Optional[str] = None  # only read by PUT /quests, where the id is not in the path
