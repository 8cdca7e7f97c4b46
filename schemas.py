"""
API Request / Response 模型
"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional


# ============ Allocation ============

class TeamAllocation(BaseModel):
    team_id: str
    subtask_ids: List[str] = Field(default_factory=list)


class TeamAllocationRequest(BaseModel):
    allocations: List[TeamAllocation]


class PairAllocation(BaseModel):
    pair_id: str
    subtask_ids: List[str] = Field(default_factory=list)


class PairAllocationRequest(BaseModel):
    allocations: List[PairAllocation]


class AllocationResponse(BaseModel):
    message: str
    count: int


# ============ Pairing ============

class PairCreate(BaseModel):
    team_a_id: str
    team_b_id: str


class PairCreateResponse(BaseModel):
    message: str
    pair_id: str


class PairTeam(BaseModel):
    id: str
    team_name: str


class PairSummary(BaseModel):
    id: str
    track: str
    track_id: Optional[str] = None
    team_a: PairTeam
    team_b: PairTeam
    created_at: datetime


class UnpairedTeam(BaseModel):
    id: str
    team_name: str
    track: str
    track_id: Optional[str] = None


class PairingValidation(BaseModel):
    odd_shortlist_count: bool
    unpaired_count: int


class PairingStateResponse(BaseModel):
    paired: List[PairSummary]
    unpaired_by_track: Dict[str, List[UnpairedTeam]]
    shortlisted_count: int
    paired_count: int
    validation: PairingValidation


class PairDeleteResponse(BaseModel):
    message: str
    reset_count: int


class SweepResponse(BaseModel):
    resolved_pairs: int


# ============ Selection ============

class OptionSelect(BaseModel):
    subtask_id: str


class OptionSetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    team_id: str
    round_id: str
    state: str
    options: List[str]
    selected: Optional[str] = None
    selected_at: Optional[datetime] = None
    assignment_mode: str
    pair_id: Optional[str] = None
    priority_team_id: Optional[str] = None
    paired_team_id: Optional[str] = None
    is_priority_team: Optional[bool] = None
    published_at: Optional[datetime] = None
    decision_deadline: Optional[datetime] = None
    auto_assigned: bool = False


class OptionSetEnvelope(BaseModel):
    option_set: Optional[OptionSetResponse] = None


class RoundSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    round_number: int
    is_active: bool
    role: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class AccessibleRoundsResponse(BaseModel):
    rounds: List[RoundSummary]


class HistoryEntry(BaseModel):
    round_number: int
    role: str
    state: str
    options: List[str]
    selected: Optional[str] = None
    selected_at: Optional[datetime] = None
    auto_assigned: bool = False
    pair_id: Optional[str] = None
    priority_team_id: Optional[str] = None
    is_priority_team: Optional[bool] = None


class HistoryResponse(BaseModel):
    history: List[HistoryEntry]
