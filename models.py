"""
資料模型

Track / Team / Round / Subtask：外部協作者維護的資料（本引擎只讀取）
Submission / Score：評分流程產生的分數（只用於優先權計算）
OptionSet：每個 (team, round) 的選項紀錄，本引擎的核心可變實體
Pairing / PairingMember：Round 2 建立的兩隊配對
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base


def generate_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """UTC 時間（naive），所有時間欄位統一使用"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AssignmentMode(str, enum.Enum):
    TEAM = "team"
    PAIR = "pair"


class ScoreStatus(str, enum.Enum):
    PENDING = "pending"
    SCORED = "scored"


class OptionSetState(str, enum.Enum):
    UNASSIGNED = "UNASSIGNED"
    OFFERED = "OFFERED"
    FINALIZED = "FINALIZED"


# Team 明確被授權（shortlist）的回合
team_round_access = Table(
    "team_round_access",
    Base.metadata,
    Column("team_id", String(36), ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
    Column("round_id", String(36), ForeignKey("rounds.id", ondelete="CASCADE"), primary_key=True),
)


class Track(Base):
    __tablename__ = "tracks"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(120), nullable=False, unique=True)
    description = Column(Text, default="")
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    teams = relationship("Team", back_populates="track")


class Team(Base):
    __tablename__ = "teams"

    id = Column(String(36), primary_key=True, default=generate_id)
    team_name = Column(String(120), nullable=False, unique=True)
    track_id = Column(String(36), ForeignKey("tracks.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    track = relationship("Track", back_populates="teams")
    rounds_accessible = relationship("Round", secondary=team_round_access, lazy="selectin")


class Round(Base):
    __tablename__ = "rounds"

    id = Column(String(36), primary_key=True, default=generate_id)
    round_number = Column(Integer, nullable=False, unique=True)
    is_active = Column(Boolean, default=False, nullable=False)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Subtask(Base):
    __tablename__ = "subtasks"

    id = Column(String(36), primary_key=True, default=generate_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    track_id = Column(String(36), ForeignKey("tracks.id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(String(36), primary_key=True, default=generate_id)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    round_id = Column(String(36), ForeignKey("rounds.id"), nullable=False, index=True)
    submitted_at = Column(DateTime, default=utcnow, nullable=False)


class Score(Base):
    __tablename__ = "scores"
    __table_args__ = (
        UniqueConstraint("judge_id", "submission_id", name="uq_score_judge_submission"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    judge_id = Column(String(36), nullable=False)
    submission_id = Column(String(36), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    score = Column(Float, nullable=True)
    status = Column(Enum(ScoreStatus), default=ScoreStatus.PENDING, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class OptionSet(Base):
    """
    每隊每回合的選項紀錄（原系統稱為 RoundOptions）

    不變量：
    - (team_id, round_id) 唯一
    - options 最多 2 個
    - selected_id 一旦設定，只能經由條件更新（WHERE selected_id IS NULL）寫入
    """
    __tablename__ = "option_sets"
    __table_args__ = (
        UniqueConstraint("team_id", "round_id", name="uq_option_set_team_round"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    round_id = Column(String(36), ForeignKey("rounds.id"), nullable=False, index=True)
    options = Column(JSON, nullable=False, default=list)
    selected_id = Column(String(36), ForeignKey("subtasks.id"), nullable=True)
    selected_at = Column(DateTime, nullable=True)

    assignment_mode = Column(Enum(AssignmentMode), default=AssignmentMode.TEAM, nullable=False)
    pair_id = Column(String(36), nullable=True, index=True)
    priority_team_id = Column(String(36), nullable=True)
    paired_team_id = Column(String(36), nullable=True)
    published_at = Column(DateTime, nullable=True)
    auto_assigned = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def state(self) -> OptionSetState:
        if self.selected_id is not None:
            return OptionSetState.FINALIZED
        if self.options:
            return OptionSetState.OFFERED
        return OptionSetState.UNASSIGNED

    @property
    def is_pair_mode(self) -> bool:
        return self.assignment_mode == AssignmentMode.PAIR


class Pairing(Base):
    """
    兩隊配對（只在 Round 2 建立）

    pair_key = 排序後的兩個 team id 以 ":" 串接，(A,B) 與 (B,A) 會碰撞
    """
    __tablename__ = "pairings"
    __table_args__ = (
        UniqueConstraint("round_anchor_id", "pair_key", name="uq_pairing_round_key"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    round_anchor_id = Column(String(36), ForeignKey("rounds.id"), nullable=False, index=True)
    track_id = Column(String(36), ForeignKey("tracks.id"), nullable=False)
    team_a_id = Column(String(36), ForeignKey("teams.id"), nullable=False)
    team_b_id = Column(String(36), ForeignKey("teams.id"), nullable=False)
    pair_key = Column(String(80), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    team_a = relationship("Team", foreign_keys=[team_a_id])
    team_b = relationship("Team", foreign_keys=[team_b_id])
    track = relationship("Track")
    members = relationship(
        "PairingMember",
        back_populates="pairing",
        cascade="all, delete-orphan",
    )

    @property
    def team_ids(self) -> list:
        return [self.team_a_id, self.team_b_id]


class PairingMember(Base):
    """一隊在同一個 anchor round 最多只能出現在一個配對中"""
    __tablename__ = "pairing_members"
    __table_args__ = (
        UniqueConstraint("round_anchor_id", "team_id", name="uq_pairing_member_round_team"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    pairing_id = Column(String(36), ForeignKey("pairings.id", ondelete="CASCADE"), nullable=False)
    round_anchor_id = Column(String(36), ForeignKey("rounds.id"), nullable=False)
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=False)

    pairing = relationship("Pairing", back_populates="members")
