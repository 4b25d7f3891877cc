# backend/services/keyword_scoring.py
"""
Keyword Scoring Engine

Scores a session against its owner's keyword rubric:
- All of the session's transcripts are pooled into one lower-cased corpus
- A keyword counts once if it appears anywhere as a whole word
- overall = 100 * distinct keywords found / keywords defined
- category scores use the same ratio on each category's keywords

Every recompute inserts a new SessionKeywordScore row, so the table keeps
the full score history and the newest row is the current score.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy import delete
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from models import (
    KEYWORD_CATEGORIES,
    InterviewSession,
    KeywordDefinition,
    SessionKeywordScore,
    Transcript,
    utcnow,
)
from .attempt_tracker import require_id
from .errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreUnavailable:
    """
    Returned instead of a score while there is nothing to score yet.

    reason is "no_keywords" or "no_transcripts".
    """
    session_id: str
    reason: str


@dataclass
class KeywordScoreResult:
    overall_score: float
    category_scores: Dict[str, float]
    found_count: int
    possible_count: int
    found_keywords: List[str]
    category_breakdown: Dict[str, Dict] = field(default_factory=dict)

    def breakdown(self) -> Dict:
        return {
            "distinct_keywords_found": self.found_count,
            "total_keywords": self.possible_count,
            "found_keywords": list(self.found_keywords),
            "category_breakdown": self.category_breakdown,
        }


def normalize_keyword(keyword: str) -> str:
    return (keyword or "").strip().lower()


def keyword_pattern(keyword: str) -> "re.Pattern":
    """
    Whole-word pattern for a keyword.

    The keyword may not touch another word character on either side, so
    "java" doesn't match inside "javascript" and "c++" still matches.
    """
    return re.compile(rf"(?<!\w){re.escape(normalize_keyword(keyword))}(?!\w)", re.IGNORECASE)


def _ratio(found: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(found / total * 100, 2)


def calculate_keyword_score(
    keywords: Sequence[KeywordDefinition],
    transcript_texts: Iterable[str]
) -> KeywordScoreResult:
    """
    Pure scoring function shared by recompute_score.

    Args:
        keywords: Rubric entries (weight is ignored, every keyword counts once)
        transcript_texts: Text of every transcript in the session

    Returns:
        KeywordScoreResult with percentages rounded to 2 decimals
    """
    corpus = " ".join(text or "" for text in transcript_texts).lower()

    found: List[str] = []
    seen = set()
    per_category_total = {category: 0 for category in KEYWORD_CATEGORIES}
    per_category_found: Dict[str, List[str]] = {category: [] for category in KEYWORD_CATEGORIES}

    for definition in keywords:
        keyword = normalize_keyword(definition.keyword)
        category = definition.category if definition.category in per_category_total else "general"
        per_category_total[category] += 1

        if not keyword or not keyword_pattern(keyword).search(corpus):
            continue

        if keyword not in per_category_found[category]:
            per_category_found[category].append(keyword)
        if keyword not in seen:
            seen.add(keyword)
            found.append(keyword)

    possible = len(keywords)
    found_count = sum(len(matched) for matched in per_category_found.values())

    category_scores = {
        category: _ratio(len(per_category_found[category]), per_category_total[category])
        for category in KEYWORD_CATEGORIES
    }
    category_breakdown = {
        category: {
            "found": len(per_category_found[category]),
            "total": per_category_total[category],
            "keywords": per_category_found[category],
        }
        for category in KEYWORD_CATEGORIES
    }

    return KeywordScoreResult(
        overall_score=_ratio(found_count, possible),
        category_scores=category_scores,
        found_count=found_count,
        possible_count=possible,
        found_keywords=found,
        category_breakdown=category_breakdown,
    )


class KeywordScoringEngine:
    """
    Recomputes and stores keyword scores for interview sessions.

    Args:
        engine: SQLAlchemy engine holding sessions, keywords, transcripts and scores
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    # ---------- Rubric ----------

    def get_keywords(self, owner_id: str) -> List[KeywordDefinition]:
        owner_id = require_id(owner_id, "owner_id")
        with Session(self.engine, expire_on_commit=False) as db:
            return list(db.exec(
                select(KeywordDefinition)
                .where(KeywordDefinition.owner_id == owner_id)
                .order_by(KeywordDefinition.category, KeywordDefinition.keyword)
            ).all())

    def replace_keywords(
        self,
        owner_id: str,
        keywords: Iterable[Dict],
        created_by: Optional[str] = None
    ) -> List[KeywordDefinition]:
        """
        Replace an owner's rubric.

        Each item is a dict with "keyword", optional "category" (default
        general) and optional "weight" (default 1). Keywords are lower-cased
        and trimmed; blanks and duplicates are dropped.

        Raises:
            ValidationError: Unknown category or negative weight
        """
        owner_id = require_id(owner_id, "owner_id")

        rows: List[KeywordDefinition] = []
        seen = set()
        for item in keywords:
            keyword = normalize_keyword(item.get("keyword", ""))
            if not keyword or keyword in seen:
                continue

            category = (item.get("category") or "general").strip().lower()
            if category not in KEYWORD_CATEGORIES:
                raise ValidationError(f"Unknown keyword category: {category}")

            try:
                weight = float(item.get("weight", 1.0))
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid weight for keyword '{keyword}'")
            if weight < 0:
                raise ValidationError(f"Weight must be >= 0 for keyword '{keyword}'")

            seen.add(keyword)
            rows.append(KeywordDefinition(
                owner_id=owner_id,
                keyword=keyword,
                category=category,
                weight=weight,
                created_by=created_by,
            ))

        with Session(self.engine, expire_on_commit=False) as db:
            db.exec(delete(KeywordDefinition).where(KeywordDefinition.owner_id == owner_id))
            for row in rows:
                db.add(row)
            db.commit()

        logger.info(f"Stored {len(rows)} keywords for owner {owner_id}")
        return rows

    # ---------- Scores ----------

    def recompute_score(self, session_id: str) -> Union[SessionKeywordScore, ScoreUnavailable]:
        """
        Score the session from all of its transcripts and store a new snapshot.

        Returns:
            The stored SessionKeywordScore, or ScoreUnavailable when the owner
            has no keywords or the session has no transcripts yet

        Raises:
            ValidationError: Unknown session
        """
        session_id = require_id(session_id, "session_id")

        with Session(self.engine, expire_on_commit=False) as db:
            interview = db.get(InterviewSession, session_id)
            if interview is None:
                raise ValidationError(f"Interview session not found: {session_id}")

            keywords = db.exec(
                select(KeywordDefinition).where(KeywordDefinition.owner_id == interview.owner_id)
            ).all()
            if not keywords:
                logger.info(f"No keywords defined for owner {interview.owner_id}; score unavailable")
                return ScoreUnavailable(session_id=session_id, reason="no_keywords")

            transcripts = db.exec(
                select(Transcript).where(Transcript.session_id == session_id)
            ).all()
            if not transcripts:
                logger.info(f"No transcripts yet for session {session_id}; score unavailable")
                return ScoreUnavailable(session_id=session_id, reason="no_transcripts")

            result = calculate_keyword_score(keywords, [t.text for t in transcripts])

            now = utcnow()
            score = SessionKeywordScore(
                session_id=session_id,
                owner_id=interview.owner_id,
                overall_score=result.overall_score,
                technical_score=result.category_scores["technical"],
                soft_skills_score=result.category_scores["soft_skills"],
                experience_score=result.category_scores["experience"],
                general_score=result.category_scores["general"],
                found_count=result.found_count,
                possible_count=result.possible_count,
                breakdown=result.breakdown(),
                calculated_at=now,
                updated_at=now,
            )
            db.add(score)
            db.commit()

        logger.info(
            f"Session {session_id} scored {result.overall_score}% "
            f"({result.found_count}/{result.possible_count} keywords, "
            f"technical={result.category_scores['technical']}%, "
            f"soft_skills={result.category_scores['soft_skills']}%, "
            f"experience={result.category_scores['experience']}%)"
        )
        return score

    def get_latest_score(self, session_id: str) -> Optional[SessionKeywordScore]:
        session_id = require_id(session_id, "session_id")
        with Session(self.engine, expire_on_commit=False) as db:
            return db.exec(
                select(SessionKeywordScore)
                .where(SessionKeywordScore.session_id == session_id)
                .order_by(
                    SessionKeywordScore.updated_at.desc(),
                    SessionKeywordScore.calculated_at.desc()
                )
                .limit(1)
            ).first()

    def get_score_history(self, session_id: str) -> List[SessionKeywordScore]:
        """All stored snapshots for the session, newest first."""
        session_id = require_id(session_id, "session_id")
        with Session(self.engine, expire_on_commit=False) as db:
            return list(db.exec(
                select(SessionKeywordScore)
                .where(SessionKeywordScore.session_id == session_id)
                .order_by(SessionKeywordScore.updated_at.desc())
            ).all())
