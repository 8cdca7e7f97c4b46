"""
共用 fixtures

每個測試使用獨立的 SQLite 檔案（tmp_path），方便用多個 session 模擬並發
"""
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import (
    OptionSet,
    Round,
    Score,
    ScoreStatus,
    Submission,
    Subtask,
    Team,
    Track,
)
from core.pairing_manager import PairingManager


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'round_engine_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def add_score(db, team, round_obj, value, status=ScoreStatus.SCORED, judge_id="judge-1"):
    """建立一筆 submission 與分數"""
    submission = Submission(team_id=team.id, round_id=round_obj.id)
    db.add(submission)
    db.flush()
    db.add(Score(judge_id=judge_id, submission_id=submission.id, score=value, status=status))
    db.commit()
    return submission


def get_row(db, team_id, round_id):
    db.expire_all()
    return db.query(OptionSet).filter(
        OptionSet.team_id == team_id,
        OptionSet.round_id == round_id
    ).first()


@pytest.fixture
def contest(db):
    """
    四個回合（全部 active）、兩個 track、四隊、七個 subtask

    - alpha、bravo：AI track，shortlist 進 Round 1、Round 2
    - charlie：Web track，shortlist 進 Round 1、Round 2
    - delta：AI track，只在 Round 1
    """
    rounds = {n: Round(round_number=n, is_active=True) for n in range(1, 5)}
    ai = Track(name="AI")
    web = Track(name="Web")
    db.add_all(list(rounds.values()) + [ai, web])
    db.flush()

    alpha = Team(team_name="alpha", track_id=ai.id)
    bravo = Team(team_name="bravo", track_id=ai.id)
    charlie = Team(team_name="charlie", track_id=web.id)
    delta = Team(team_name="delta", track_id=ai.id)
    db.add_all([alpha, bravo, charlie, delta])
    db.flush()

    for team in (alpha, bravo, charlie):
        team.rounds_accessible.extend([rounds[1], rounds[2]])
    delta.rounds_accessible.append(rounds[1])

    subtasks = {}
    for i in range(1, 8):
        subtask = Subtask(title=f"Subtask {i}", description="", track_id=ai.id)
        db.add(subtask)
        subtasks[i] = subtask
    db.commit()

    return SimpleNamespace(
        rounds=rounds,
        ai=ai,
        web=web,
        alpha=alpha,
        bravo=bravo,
        charlie=charlie,
        delta=delta,
        o=SimpleNamespace(**{f"o{i}": s.id for i, s in subtasks.items()}),
    )


@pytest.fixture
def paired(db, contest):
    """
    alpha（42 分）與 bravo（17 分）配對，Round 3 共用選項 [O1, O2]

    alpha 為優先隊伍
    """
    add_score(db, contest.alpha, contest.rounds[1], 20)
    add_score(db, contest.alpha, contest.rounds[2], 22)
    add_score(db, contest.bravo, contest.rounds[1], 10)
    add_score(db, contest.bravo, contest.rounds[2], 7)

    pairing = PairingManager.create_pairing(
        db, contest.rounds[2].id, contest.alpha.id, contest.bravo.id
    )
    PairingManager.allocate_pair_options(
        db, contest.rounds[3].id, [(pairing.id, [contest.o.o1, contest.o.o2])]
    )

    round3 = contest.rounds[3]
    published_at = get_row(db, contest.alpha.id, round3.id).published_at
    return SimpleNamespace(
        contest=contest,
        pairing_id=pairing.id,
        round3=round3,
        priority=contest.alpha,
        other=contest.bravo,
        o1=contest.o.o1,
        o2=contest.o.o2,
        published_at=published_at,
    )
