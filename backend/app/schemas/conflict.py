from pydantic import BaseModel
from typing import Literal, Optional, List

class SlotRef(BaseModel):
    timetable_id: Optional[str]
    day: str
    start_time: str
    end_time: str
    subject_code: str

class Conflict(BaseModel):
    id: str
    resource_type: Literal["classroom", "faculty"]
    resource_id: str
    description: str
    first: SlotRef
    second: SlotRef

    @property
    def cross_timetable(self) -> bool:
        return self.first.timetable_id != self.second.timetable_id

class ResolutionAction(BaseModel):
    action_type: Literal["move_slot", "change_room", "change_faculty"]
    description: str
    conflict_id: str
    parameters: dict  # e.g. {"classroom_id": "r1"}

class ConflictReport(BaseModel):
    has_conflicts: bool
    conflicts: List[Conflict]
    suggested_resolutions: List[ResolutionAction]
