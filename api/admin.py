"""
Admin Round API Endpoints

職責：
1. Round 1 / Round 2 的 team-level 選項分配
2. Round 2 配對的建立 / 刪除 / 查詢
3. Round 3 配對選項分配（決定優先隊伍）
4. 手動觸發 Round 3 timeout 掃描
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import (
    AllocationResponse,
    PairAllocationRequest,
    PairCreate,
    PairCreateResponse,
    PairDeleteResponse,
    PairingStateResponse,
    SweepResponse,
    TeamAllocationRequest,
)
from core.allocation_manager import AllocationManager
from core.pairing_manager import PairingManager
from core.timeout_resolver import TimeoutResolver
from core.exceptions import (
    ConflictError,
    DataIntegrityError,
    NotFoundError,
    PreconditionFailed,
)

router = APIRouter(prefix="/api/admin/rounds", tags=["admin"])
logger = logging.getLogger(__name__)


@router.post("/{round_id}/allocate", response_model=AllocationResponse)
def allocate_team_options(round_id: str, body: TeamAllocationRequest, db: Session = Depends(get_db)):
    """
    分配兩個 subtask 選項給每一隊（Round 1、Round 2）

    不會設定 selected，那是隊伍自己的選擇；
    既有選擇如果仍在新選項內會被保留
    """
    try:
        count = AllocationManager.allocate_team_options(
            db,
            round_id,
            [(a.team_id, a.subtask_ids) for a in body.allocations]
        )
        return AllocationResponse(message="Subtask options allocated successfully", count=count)

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.to_detail())
    except PreconditionFailed as e:
        raise HTTPException(status_code=400, detail=e.to_detail())
    except Exception as e:
        logger.error(f"Failed to allocate subtasks: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{round_id}/pair-allocate", response_model=AllocationResponse)
def allocate_pair_options(round_id: str, body: PairAllocationRequest, db: Session = Depends(get_db)):
    """
    分配 Round 3 共用選項給每組配對

    依 Round 1 + Round 2 分數決定優先隊伍，並開始計算決策時間
    """
    try:
        count = PairingManager.allocate_pair_options(
            db,
            round_id,
            [(a.pair_id, a.subtask_ids) for a in body.allocations]
        )
        return AllocationResponse(message="Subtask options assigned to pairs", count=count)

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.to_detail())
    except PreconditionFailed as e:
        raise HTTPException(status_code=400, detail=e.to_detail())
    except Exception as e:
        logger.error(f"Failed to allocate pair subtasks: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{round_id}/pairs", response_model=PairingStateResponse)
def list_pairs(round_id: str, db: Session = Depends(get_db)):
    """
    列出已配對和未配對（依 track 分組）的隊伍

    shortlist 為奇數時 validation.odd_shortlist_count=True（提示，不是錯誤）
    """
    try:
        return PairingManager.list_pairing_state(db, round_id)

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.to_detail())
    except PreconditionFailed as e:
        raise HTTPException(status_code=400, detail=e.to_detail())
    except Exception as e:
        logger.error(f"Failed to list pairs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{round_id}/pairs", response_model=PairCreateResponse)
def create_pair(round_id: str, body: PairCreate, db: Session = Depends(get_db)):
    """
    建立配對（Round 2）

    錯誤：
        - 400: SELF_PAIR / NOT_PAIRING_ROUND / NOT_SHORTLISTED / TRACK_MISMATCH
        - 404: ROUND_NOT_FOUND / TEAM_NOT_FOUND
        - 409: DUPLICATE_PAIR
    """
    try:
        pairing = PairingManager.create_pairing(db, round_id, body.team_a_id, body.team_b_id)
        return PairCreateResponse(message="Pair created successfully", pair_id=pairing.id)

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.to_detail())
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=e.to_detail())
    except PreconditionFailed as e:
        raise HTTPException(status_code=400, detail=e.to_detail())
    except Exception as e:
        logger.error(f"Failed to create pair: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.delete("/{round_id}/pairs/{pair_id}", response_model=PairDeleteResponse)
def delete_pair(round_id: str, pair_id: str, db: Session = Depends(get_db)):
    """刪除配對，兩隊的 OptionSet 重設為乾淨狀態"""
    try:
        reset_count = PairingManager.delete_pairing(db, round_id, pair_id)
        return PairDeleteResponse(
            message="Pair deleted and team options reset successfully",
            reset_count=reset_count
        )

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.to_detail())
    except PreconditionFailed as e:
        raise HTTPException(status_code=400, detail=e.to_detail())
    except Exception as e:
        logger.error(f"Failed to delete pair: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{round_id}/timeouts/sweep", response_model=SweepResponse)
def sweep_timeouts(round_id: str, db: Session = Depends(get_db)):
    """
    主動掃描 Round 3 所有配對的決策時間

    結果和隊伍讀取時的自動分配相同，只是提早發生（可由排程呼叫）
    """
    try:
        resolved = TimeoutResolver.sweep_round_timeouts(db, round_id)
        return SweepResponse(resolved_pairs=resolved)

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.to_detail())
    except DataIntegrityError as e:
        raise HTTPException(status_code=500, detail=e.to_detail())
    except Exception as e:
        logger.error(f"Failed to sweep timeouts: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")
