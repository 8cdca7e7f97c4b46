"""
Team Round API Endpoints

職責：
1. 查詢隊伍可進入的回合
2. 查詢隊伍在某回合的選項（pair mode 會順便處理自動分配）
3. 隊伍選擇 subtask
4. 查詢隊伍每一輪的選擇紀錄

隊伍身分由路徑參數帶入（登入驗證不在這個服務的範圍）
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from models import OptionSet
from schemas import (
    AccessibleRoundsResponse,
    HistoryEntry,
    HistoryResponse,
    OptionSelect,
    OptionSetEnvelope,
    OptionSetResponse,
    RoundSummary,
)
from core.round_registry import RoundRegistry
from core.selection_manager import SelectionManager
from core.exceptions import (
    ConflictError,
    DataIntegrityError,
    NotFoundError,
    PreconditionFailed,
)
from services.round_policy_service import get_round_role

router = APIRouter(prefix="/api/teams", tags=["rounds"])
logger = logging.getLogger(__name__)


def to_option_set_response(option_set: OptionSet, team_id: str) -> OptionSetResponse:
    is_pair = option_set.is_pair_mode
    return OptionSetResponse(
        id=option_set.id,
        team_id=option_set.team_id,
        round_id=option_set.round_id,
        state=option_set.state.value,
        options=list(option_set.options or []),
        selected=option_set.selected_id,
        selected_at=option_set.selected_at,
        assignment_mode=option_set.assignment_mode.value,
        pair_id=option_set.pair_id,
        priority_team_id=option_set.priority_team_id,
        paired_team_id=option_set.paired_team_id,
        is_priority_team=(option_set.priority_team_id == team_id) if is_pair else None,
        published_at=option_set.published_at,
        decision_deadline=SelectionManager.get_decision_deadline(option_set),
        auto_assigned=option_set.auto_assigned,
    )


@router.get("/{team_id}/rounds", response_model=AccessibleRoundsResponse)
def list_accessible_rounds(team_id: str, db: Session = Depends(get_db)):
    """
    取得隊伍可進入的回合

    Round 2 的授權會自動推導出 Round 3、Round 4
    """
    try:
        rounds = RoundRegistry.get_accessible_rounds(db, team_id)
        return AccessibleRoundsResponse(rounds=[
            RoundSummary(
                id=r.id,
                round_number=r.round_number,
                is_active=r.is_active,
                role=get_round_role(r.round_number).value,
                start_time=r.start_time,
                end_time=r.end_time,
            )
            for r in rounds
        ])

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.to_detail())
    except Exception as e:
        logger.error(f"Failed to list rounds: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{team_id}/rounds/{round_id}/options", response_model=OptionSetEnvelope)
def get_round_options(team_id: str, round_id: str, db: Session = Depends(get_db)):
    """
    取得隊伍在某回合的選項

    Round 3 配對：讀取時如果優先隊伍已超過決策時間，會自動完成分配

    返回：
        - option_set: 沒有分配時為 null
    """
    try:
        option_set = SelectionManager.get_option_set(db, team_id, round_id)
        if option_set is None:
            return OptionSetEnvelope(option_set=None)
        return OptionSetEnvelope(option_set=to_option_set_response(option_set, team_id))

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.to_detail())
    except DataIntegrityError as e:
        raise HTTPException(status_code=500, detail=e.to_detail())
    except Exception as e:
        logger.error(f"Failed to get round options: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{team_id}/rounds/{round_id}/select", response_model=OptionSetResponse)
def select_round_option(
    team_id: str,
    round_id: str,
    body: OptionSelect,
    db: Session = Depends(get_db)
):
    """
    隊伍選擇 subtask（選了就不能改）

    錯誤：
        - 400: ROUND_INACTIVE / NO_SELECTION_IN_ROUND / ROUND_ACCESS_DENIED /
               NO_OPTIONS_ASSIGNED / NOT_PRIORITY_TEAM / OPTION_NOT_OFFERED
        - 404: ROUND_NOT_FOUND / TEAM_NOT_FOUND
        - 409: ALREADY_FINALIZED / WAITING_FOR_PRIORITY
    """
    try:
        option_set = SelectionManager.select_option(db, team_id, round_id, body.subtask_id)
        return to_option_set_response(option_set, team_id)

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.to_detail())
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=e.to_detail())
    except PreconditionFailed as e:
        raise HTTPException(status_code=400, detail=e.to_detail())
    except DataIntegrityError as e:
        raise HTTPException(status_code=500, detail=e.to_detail())
    except Exception as e:
        logger.error(f"Failed to select option: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{team_id}/history", response_model=HistoryResponse)
def get_selection_history(team_id: str, db: Session = Depends(get_db)):
    """取得隊伍每一輪的選項與選擇結果"""
    try:
        history = SelectionManager.get_team_selection_history(db, team_id)
        return HistoryResponse(history=[HistoryEntry(**entry) for entry in history])

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.to_detail())
    except Exception as e:
        logger.error(f"Failed to get selection history: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")
