"""
Catalog, submission and progress records for the learning engine.

Plain dataclasses built from sqlite rows by the store classes. List-valued
columns are stored as JSON text; timestamps are ISO-8601 strings.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field, asdict
from typing import Any, Optional

# ── Constants ────────────────────────────────────────────────────────

DIFFICULTIES = ("easy", "medium", "hard")
PROMPT_INPUT_TYPES = ("text", "image", "voice", "any")
SUBMISSION_INPUT_TYPES = ("text", "image", "voice")
GRADE_LEVELS = ("elementary", "middle", "high", "college")
RARITIES = ("common", "rare", "epic", "legendary")

DIFFICULTY_POINTS = {"easy": 10, "medium": 20, "hard": 30}
DEFAULT_POINTS = 15
HIGH_RATING_THRESHOLD = 4
HIGH_RATING_BONUS = 5
XP_PER_LEVEL_UNIT = 100

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
ERROR = "error"
ARCHIVED = "archived"
STATUSES = (PENDING, PROCESSING, COMPLETED, ERROR, ARCHIVED)

# Allowed lifecycle edges. completed -> completed is handled as a no-op by the pipeline.
TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({PROCESSING}),
    PROCESSING: frozenset({COMPLETED, ERROR}),
    COMPLETED: frozenset({ARCHIVED}),
    ERROR: frozenset(),
    ARCHIVED: frozenset(),
}


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, frozenset())


def calculate_level(experience_points: int) -> int:
    """level = floor(sqrt(xp / 100)) + 1, computed with integer arithmetic."""
    xp = max(int(experience_points), 0)
    return math.isqrt(xp // XP_PER_LEVEL_UNIT) + 1


def xp_for_level(level: int) -> int:
    """Experience needed to reach ``level``."""
    return (max(level, 1) - 1) ** 2 * XP_PER_LEVEL_UNIT


def _json_list(value: Any) -> list:
    if not value:
        return []
    if isinstance(value, list):
        return value
    return json.loads(value)


def _json_obj(value: Any) -> dict:
    if not value:
        return {}
    if isinstance(value, dict):
        return value
    return json.loads(value)


# ── Catalog ──────────────────────────────────────────────────────────


@dataclass
class Subject:
    id: int
    name: str
    description: str = ""
    icon: str = ""
    color: str = "#8A2BE2"
    grade_levels: list[str] = field(default_factory=list)
    difficulty_levels: list[str] = field(default_factory=lambda: list(DIFFICULTIES))
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, r) -> "Subject":
        return cls(
            id=r["id"], name=r["name"], description=r["description"],
            icon=r["icon"], color=r["color"],
            grade_levels=_json_list(r["grade_levels"]),
            difficulty_levels=_json_list(r["difficulty_levels"]),
            is_active=bool(r["is_active"]),
            created_at=r["created_at"], updated_at=r["updated_at"],
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PromptTemplate:
    id: int
    subject_id: int
    title: str
    prompt_template: str
    subject_name: str = ""
    description: str = ""
    input_type: str = "any"
    difficulty_level: str = "medium"
    grade_levels: list[str] = field(default_factory=list)
    learning_objectives: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    requires_step_by_step: bool = True
    includes_examples: bool = True
    encourages_exploration: bool = True
    max_tokens: int = 2048
    temperature: float = 0.7
    usage_count: int = 0
    average_rating: float = 0.0
    effectiveness_score: float = 0.0
    is_active: bool = True
    version: int = 1
    created_by: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, r) -> "PromptTemplate":
        keys = r.keys()
        return cls(
            id=r["id"], subject_id=r["subject_id"], title=r["title"],
            prompt_template=r["prompt_template"],
            subject_name=r["subject_name"] if "subject_name" in keys else "",
            description=r["description"], input_type=r["input_type"],
            difficulty_level=r["difficulty_level"],
            grade_levels=_json_list(r["grade_levels"]),
            learning_objectives=_json_list(r["learning_objectives"]),
            keywords=_json_list(r["keywords"]),
            requires_step_by_step=bool(r["requires_step_by_step"]),
            includes_examples=bool(r["includes_examples"]),
            encourages_exploration=bool(r["encourages_exploration"]),
            max_tokens=r["max_tokens"], temperature=r["temperature"],
            usage_count=r["usage_count"], average_rating=r["average_rating"],
            effectiveness_score=r["effectiveness_score"],
            is_active=bool(r["is_active"]), version=r["version"],
            created_by=r["created_by"],
            created_at=r["created_at"], updated_at=r["updated_at"],
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PromptVariation:
    id: int
    prompt_id: int
    variation_name: str
    prompt_template: str
    is_active: bool = True
    usage_count: int = 0
    success_rate: float = 0.0
    created_at: str = ""

    @classmethod
    def from_row(cls, r) -> "PromptVariation":
        return cls(
            id=r["id"], prompt_id=r["prompt_id"], variation_name=r["variation_name"],
            prompt_template=r["prompt_template"], is_active=bool(r["is_active"]),
            usage_count=r["usage_count"], success_rate=r["success_rate"],
            created_at=r["created_at"],
        )

    def to_dict(self) -> dict:
        return asdict(self)


# ── Submissions ──────────────────────────────────────────────────────


@dataclass
class Submission:
    id: str
    user_id: str
    title: str
    input_type: str
    status: str = PENDING
    description: str = ""
    text_content: str = ""
    content_ref: str = ""
    subject: str = ""
    difficulty: Optional[str] = None
    grade_level: str = ""
    tags: list[str] = field(default_factory=list)
    prompt_id: Optional[int] = None
    prompt_variation_id: Optional[int] = None
    final_prompt: str = ""
    solution: str = ""
    explanation: str = ""
    steps: list = field(default_factory=list)
    confidence_score: Optional[float] = None
    ai_model_used: str = ""
    ai_response: dict = field(default_factory=dict)
    error_message: str = ""
    processing_time_ms: Optional[int] = None
    user_rating: Optional[int] = None
    user_feedback: str = ""
    points_awarded: int = 0
    completed_at: str = ""
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, r) -> "Submission":
        return cls(
            id=r["id"], user_id=r["user_id"], title=r["title"],
            input_type=r["input_type"], status=r["status"],
            description=r["description"], text_content=r["text_content"],
            content_ref=r["content_ref"], subject=r["subject"],
            difficulty=r["difficulty"], grade_level=r["grade_level"],
            tags=_json_list(r["tags"]),
            prompt_id=r["prompt_id"], prompt_variation_id=r["prompt_variation_id"],
            final_prompt=r["final_prompt"], solution=r["solution"],
            explanation=r["explanation"], steps=_json_list(r["steps"]),
            confidence_score=r["confidence_score"], ai_model_used=r["ai_model_used"],
            ai_response=_json_obj(r["ai_response"]),
            error_message=r["error_message"],
            processing_time_ms=r["processing_time_ms"],
            user_rating=r["user_rating"], user_feedback=r["user_feedback"],
            points_awarded=r["points_awarded"], completed_at=r["completed_at"],
            created_at=r["created_at"], updated_at=r["updated_at"],
        )

    def to_dict(self) -> dict:
        return asdict(self)


# ── Progress & achievements ──────────────────────────────────────────


@dataclass
class ProgressLedger:
    user_id: str
    problems_solved: int = 0
    total_study_time_minutes: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    total_points: int = 0
    experience_points: int = 0
    level: int = 1
    subjects_studied: list[str] = field(default_factory=list)
    last_activity_date: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, r) -> "ProgressLedger":
        return cls(
            user_id=r["user_id"], problems_solved=r["problems_solved"],
            total_study_time_minutes=r["total_study_time_minutes"],
            current_streak=r["current_streak"], longest_streak=r["longest_streak"],
            total_points=r["total_points"], experience_points=r["experience_points"],
            level=r["level"], subjects_studied=_json_list(r["subjects_studied"]),
            last_activity_date=r["last_activity_date"], updated_at=r["updated_at"],
        )

    @property
    def xp_for_current_level(self) -> int:
        return xp_for_level(self.level)

    @property
    def xp_for_next_level(self) -> int:
        return xp_for_level(self.level + 1)

    @property
    def xp_progress_pct(self) -> int:
        level_range = self.xp_for_next_level - self.xp_for_current_level
        if level_range <= 0:
            return 100
        return min(100, int((self.experience_points - self.xp_for_current_level) / level_range * 100))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["xp_for_next_level"] = self.xp_for_next_level
        data["xp_progress_pct"] = self.xp_progress_pct
        return data


@dataclass
class Achievement:
    id: int
    name: str
    description: str
    criteria: dict
    points_reward: int = 0
    icon: str = ""
    category: str = ""
    rarity: str = "common"
    is_active: bool = True
    sort_order: int = 0

    @classmethod
    def from_row(cls, r) -> "Achievement":
        return cls(
            id=r["id"], name=r["name"], description=r["description"],
            criteria=_json_obj(r["criteria"]), points_reward=r["points_reward"],
            icon=r["icon"], category=r["category"], rarity=r["rarity"],
            is_active=bool(r["is_active"]), sort_order=r["sort_order"],
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UserAchievement:
    user_id: str
    achievement_id: int
    is_completed: bool = False
    unlocked_at: str = ""
    points_earned: int = 0

    @classmethod
    def from_row(cls, r) -> "UserAchievement":
        return cls(
            user_id=r["user_id"], achievement_id=r["achievement_id"],
            is_completed=bool(r["is_completed"]), unlocked_at=r["unlocked_at"],
            points_earned=r["points_earned"],
        )
