"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理

分類：
- PreconditionFailed：請求本身不合法（回合狀態、權限、選項不在清單內）
- NotFoundError：資源不存在
- ConflictError：別人已經動作了（重複配對、已經選過）
- DataIntegrityError：資料不一致，代表程式有 bug
"""


class RoundEngineException(Exception):
    """所有引擎異常的基類"""
    code = "ROUND_ENGINE_ERROR"

    def __init__(self, message=None):
        self.message = message or self.__doc__
        super().__init__(self.message)

    def to_detail(self) -> dict:
        """HTTPException detail，讓前端可以用 code 區分錯誤"""
        return {"code": self.code, "message": self.message}


class PreconditionFailed(RoundEngineException):
    code = "PRECONDITION_FAILED"


class NotFoundError(RoundEngineException):
    code = "NOT_FOUND"


class ConflictError(RoundEngineException):
    code = "CONFLICT"


class DataIntegrityError(RoundEngineException):
    code = "DATA_INTEGRITY"


# ============ 資源不存在 ============

class RoundNotFound(NotFoundError):
    code = "ROUND_NOT_FOUND"

    def __init__(self, round_id):
        self.round_id = round_id
        super().__init__(f"Round {round_id} not found")


class TeamNotFound(NotFoundError):
    code = "TEAM_NOT_FOUND"

    def __init__(self, team_id):
        self.team_id = team_id
        super().__init__(f"Team {team_id} not found")


class OptionNotFound(NotFoundError):
    code = "OPTION_NOT_FOUND"

    def __init__(self, option_id):
        self.option_id = option_id
        super().__init__(f"Subtask {option_id} not found")


class PairingNotFound(NotFoundError):
    """找不到配對"""
    code = "NOT_FOUND"


# ============ 回合相關 ============

class NotTeamAllocationRound(PreconditionFailed):
    """Team-level allocation is available only for Rounds 1 and 2"""
    code = "NOT_TEAM_ALLOCATION_ROUND"


class NotPairingRound(PreconditionFailed):
    """Pairing is available only for Round 2"""
    code = "NOT_PAIRING_ROUND"


class NotPairedSelectionRound(PreconditionFailed):
    """Pair allocation is available only for Round 3"""
    code = "NOT_PAIRED_SELECTION_ROUND"


class RoundInactive(PreconditionFailed):
    """This round is not currently active"""
    code = "ROUND_INACTIVE"


class NoSelectionInRound(PreconditionFailed):
    """Subtask selection does not apply to this round"""
    code = "NO_SELECTION_IN_ROUND"


class RoundAccessDenied(PreconditionFailed):
    """Team does not have access to this round"""
    code = "ROUND_ACCESS_DENIED"


class InvalidAllocation(PreconditionFailed):
    """Allocation payload is invalid"""
    code = "INVALID_ALLOCATION"


# ============ 配對相關 ============

class SelfPair(PreconditionFailed):
    """Cannot pair the same team with itself"""
    code = "SELF_PAIR"


class NotShortlisted(PreconditionFailed):
    """Both teams must be shortlisted in Round 2"""
    code = "NOT_SHORTLISTED"


class TrackMismatch(PreconditionFailed):
    """Pairing is allowed only within the same track"""
    code = "TRACK_MISMATCH"


class DuplicatePair(ConflictError):
    """Pair already exists for these teams"""
    code = "DUPLICATE_PAIR"


# ============ 選擇相關 ============

class NoOptionsAssigned(PreconditionFailed):
    """No subtask options have been assigned to this team yet"""
    code = "NO_OPTIONS_ASSIGNED"


class OptionNotOffered(PreconditionFailed):
    """This subtask was not offered to your team"""
    code = "OPTION_NOT_OFFERED"


class AlreadyFinalized(ConflictError):
    """Your team has already selected a subtask for this round"""
    code = "ALREADY_FINALIZED"


class WaitingForPriority(ConflictError):
    """The priority team has not selected yet"""
    code = "WAITING_FOR_PRIORITY"


class NotPriorityTeam(PreconditionFailed):
    """Only the priority team can select; your subtask is assigned automatically"""
    code = "NOT_PRIORITY_TEAM"
