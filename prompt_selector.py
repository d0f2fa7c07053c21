"""
Prompt selection: pick the best template for an incoming problem.

Candidates must be active, belong to the named subject and accept the
submission's input type (or any input). Difficulty, grade level and
keywords then narrow the set in that order, each one skipped when it would
leave nothing. The survivors are ranked by effectiveness (high first),
then usage (low first) so new templates get exposure, then at random.
"""

from __future__ import annotations

import logging
import random
from typing import Iterable, Optional

from catalog import CatalogStore
from models import PromptTemplate, PromptVariation

logger = logging.getLogger(__name__)


def _soft_filter(candidates: list[PromptTemplate], keep, label: str) -> list[PromptTemplate]:
    narrowed = [p for p in candidates if keep(p)]
    if not narrowed:
        logger.debug("Prompt soft filter '%s' matched nothing; ignoring it", label)
        return candidates
    return narrowed


def _normalize_keywords(keywords: Optional[Iterable[str]]) -> set[str]:
    return {k.strip().lower() for k in (keywords or []) if k and k.strip()}


def rank_prompts(candidates: list[PromptTemplate],
                 rng: Optional[random.Random] = None) -> list[PromptTemplate]:
    """Order by effectiveness desc, usage asc, then random."""
    rng = rng or random
    keyed = [(p, rng.random()) for p in candidates]
    keyed.sort(key=lambda pair: (-pair[0].effectiveness_score, pair[0].usage_count, pair[1]))
    return [p for p, _ in keyed]


def select_prompt(subject_name: str, input_type: str = "any", difficulty: Optional[str] = "medium",
                  grade_level: Optional[str] = None, keywords: Optional[Iterable[str]] = None,
                  rng: Optional[random.Random] = None) -> Optional[PromptTemplate]:
    """Return the best matching template, or None when no active template fits.

    Read-only: nothing is written here.
    """
    candidates = CatalogStore().candidate_prompts(subject_name, input_type)
    if not candidates:
        logger.info("No prompt template for subject=%s input_type=%s", subject_name, input_type)
        return None

    if difficulty:
        candidates = _soft_filter(candidates, lambda p: p.difficulty_level == difficulty, "difficulty")
    if grade_level:
        candidates = _soft_filter(candidates, lambda p: grade_level in p.grade_levels, "grade_level")
    wanted = _normalize_keywords(keywords)
    if wanted:
        candidates = _soft_filter(
            candidates,
            lambda p: bool(wanted & _normalize_keywords(p.keywords)),
            "keywords",
        )

    return rank_prompts(candidates, rng)[0]


def choose_variation(prompt_id: int,
                     rng: Optional[random.Random] = None) -> Optional[PromptVariation]:
    """Least-used active variation of a template, random among ties."""
    variations = CatalogStore().list_variations(prompt_id)
    if not variations:
        return None
    rng = rng or random
    least = min(v.usage_count for v in variations)
    return rng.choice([v for v in variations if v.usage_count == least])
