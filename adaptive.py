"""
Adaptive rules — difficulty adjustment, lesson XP, streaks, achievements
and diagnostic scoring.

Everything here is pure: callers pass in rows/values and persist results.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from datetime import date, datetime

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5
DEFAULT_DIFFICULTY = 3

ADJUST_EVERY = 3
RAISE_ABOVE = 0.8
LOWER_BELOW = 0.4

MASTERY_THRESHOLD = 80

BASE_LESSON_XP = 10
MIN_PERFORMANCE_MULTIPLIER = 0.5

DAILY_BASE_XP = 10
STREAK_BONUS_XP = 5
STREAK_BONUS_AFTER = 5
STREAK_BADGE_MILESTONES = (5, 10, 20)

XP_PER_LEVEL_UNIT = 50

# Completed-lesson count per subject -> (achievement_type, name template)
LESSON_ACHIEVEMENTS = {
    1: ("FIRST_LESSON", "First {subject} Lesson"),
    5: ("FIVE_LESSONS", "{subject} Explorer"),
    10: ("TEN_LESSONS", "{subject} Master"),
}

PHASE_HINTS = {
    "concrete": [
        "Try using physical objects to represent the problem",
        "Draw out the scenario step by step",
        "Think about a real-world example of this concept",
    ],
    "pictorial": [
        "Look for patterns in the diagram",
        "Try to visualize how the elements relate to each other",
        "Connect this diagram to the concrete examples we saw earlier",
    ],
    "abstract": [
        "Break down the formula into smaller parts",
        "Try substituting simple numbers to test your understanding",
        "Connect this abstract concept back to the pictorial representation",
    ],
}

DIRECTION_HINTS = {
    "easier": [
        "Let's simplify this problem a bit",
        "Focus on just one part of the problem at a time",
        "We'll adjust the difficulty to help you build confidence",
    ],
    "harder": [
        "Let's challenge you with a more complex version",
        "Now try applying this concept in a new context",
        "This more advanced problem will help deepen your understanding",
    ],
}


# ── Difficulty ──────────────────────────────────────────────

def clamp_difficulty(level) -> int:
    """Coerce a difficulty into 1..5, falling back to the default."""
    try:
        level = int(level)
    except (TypeError, ValueError):
        return DEFAULT_DIFFICULTY
    return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, level))


def adjust_difficulty(current: int, results: list[bool]) -> int:
    """Next difficulty after a run of answers.

    Re-evaluated only once every ADJUST_EVERY answers, over the most recent
    window. A success rate above 0.8 steps up, below 0.4 steps down.
    """
    current = clamp_difficulty(current)
    if not results or len(results) % ADJUST_EVERY != 0:
        return current

    window = results[-ADJUST_EVERY:]
    rate = sum(1 for r in window if r) / len(window)
    if rate > RAISE_ABOVE:
        return min(current + 1, MAX_DIFFICULTY)
    if rate < LOWER_BELOW:
        return max(current - 1, MIN_DIFFICULTY)
    return current


def difficulty_direction(before: int, after: int) -> str | None:
    if after > before:
        return "harder"
    if after < before:
        return "easier"
    return None


def adaptive_hints(step_type: str, direction: str, rng=random) -> list[str]:
    """One hint for the difficulty change plus one for the CPA phase."""
    if direction not in DIRECTION_HINTS:
        return []
    phase = PHASE_HINTS.get(step_type, PHASE_HINTS["concrete"])
    return [rng.choice(DIRECTION_HINTS[direction]), rng.choice(phase)]


def adapt_question(question_data: dict | None, step_difficulty: int, requested_difficulty: int) -> dict | None:
    """Swap in advanced or simple variants of a question for the requested level."""
    if not question_data:
        return question_data
    adapted = dict(question_data)
    if requested_difficulty == step_difficulty:
        return adapted

    prefix = "advanced" if requested_difficulty > step_difficulty else "simple"
    adapted["explanation"] = question_data.get(f"{prefix}Explanation") or question_data.get("explanation")
    if question_data.get(f"{prefix}Options"):
        adapted["options"] = question_data[f"{prefix}Options"]
    if question_data.get(f"{prefix}Text"):
        adapted["text"] = question_data[f"{prefix}Text"]
    return adapted


# ── Lesson scoring ──────────────────────────────────────────

def lesson_accuracy(responses: dict | None) -> float:
    """Fraction of responses marked correct (0.0 when there are none)."""
    if not responses:
        return 0.0
    correct = sum(1 for r in responses.values() if isinstance(r, dict) and r.get("isCorrect"))
    return correct / len(responses)


def lesson_xp(difficulty: int, correct: int, incorrect: int) -> int:
    """XP for a finished lesson, scaled by difficulty and success rate."""
    answered = correct + incorrect
    rate = correct / answered if answered else 0.0
    multiplier = max(MIN_PERFORMANCE_MULTIPLIER, rate)
    return round(BASE_LESSON_XP * clamp_difficulty(difficulty) * multiplier)


def lesson_achievements_for(count: int, subject_name: str) -> list[dict]:
    """Achievements unlocked when a subject's completed count reaches a milestone."""
    if count not in LESSON_ACHIEVEMENTS:
        return []
    achievement_type, template = LESSON_ACHIEVEMENTS[count]
    name = template.format(subject=subject_name)
    plural = "lesson" if count == 1 else "lessons"
    return [{
        "type": achievement_type,
        "name": name,
        "description": f"Completed {count} {subject_name} {plural}",
        "xp": count * 10,
    }]


# ── Streaks and levels ──────────────────────────────────────

def _as_date(value) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value)).date()
    except ValueError:
        return None


def next_streak(current: int, last_active, today) -> int:
    """Streak after activity on ``today`` given the last active day.

    Same day keeps the streak, consecutive day extends it, anything else
    starts over at 1.
    """
    last = _as_date(last_active)
    today = _as_date(today)
    if last is None or today is None:
        return 1
    delta = (today - last).days
    if delta == 0:
        return max(current or 0, 1)
    if delta == 1:
        return (current or 0) + 1
    return 1


def daily_xp(streak: int) -> int:
    return DAILY_BASE_XP + (STREAK_BONUS_XP if streak >= STREAK_BONUS_AFTER else 0)


def streak_badge(streak: int) -> str | None:
    if streak in STREAK_BADGE_MILESTONES:
        return f"{streak}-Day Streak"
    return None


def level_for_xp(xp: int) -> int:
    return int(math.sqrt(max(xp, 0) / XP_PER_LEVEL_UNIT)) + 1


def xp_for_level(level: int) -> int:
    return (level - 1) ** 2 * XP_PER_LEVEL_UNIT


def level_progress_pct(xp: int) -> int:
    """Percent of the way from the current level to the next."""
    level = level_for_xp(xp)
    floor, ceiling = xp_for_level(level), xp_for_level(level + 1)
    return int((xp - floor) / (ceiling - floor) * 100)


def age_group(age) -> str:
    """Content age band for SEL material; unknown ages get the middle band."""
    if age is None:
        return "8-11"
    if age < 8:
        return "5-7"
    if age >= 12:
        return "12-14"
    return "8-11"


# ── Diagnostics ─────────────────────────────────────────────

@dataclass
class DiagnosticScore:
    evaluations: list[dict] = field(default_factory=list)
    skills: dict[str, dict] = field(default_factory=dict)
    overall_proficiency: float = 0.0
    mastered_skills: list[str] = field(default_factory=list)
    in_progress_skills: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "evaluations": self.evaluations,
            "skillResults": self.skills,
            "overallProficiency": self.overall_proficiency,
            "masteredSkills": self.mastered_skills,
            "inProgressSkills": self.in_progress_skills,
        }


def score_diagnostic(questions: list[dict], responses: dict) -> DiagnosticScore:
    """Score diagnostic answers per question and per skill.

    ``questions`` are rows with id, correct_answer and skill; ``responses``
    maps question id (int or str) to the chosen answer. Questions without
    a response are skipped.
    """
    responses = {str(k): v for k, v in (responses or {}).items()}
    result = DiagnosticScore()

    for q in questions:
        qid = str(q["id"])
        if qid not in responses:
            continue
        is_correct = responses[qid] == q["correct_answer"]
        result.evaluations.append({
            "questionId": q["id"],
            "userResponse": responses[qid],
            "correctAnswer": q["correct_answer"],
            "isCorrect": is_correct,
            "skill": q["skill"],
            "difficulty": q.get("difficulty"),
        })
        stats = result.skills.setdefault(q["skill"], {"correct": 0, "total": 0})
        stats["total"] += 1
        if is_correct:
            stats["correct"] += 1

    evaluated = len(result.evaluations)
    if evaluated:
        correct = sum(1 for e in result.evaluations if e["isCorrect"])
        result.overall_proficiency = correct / evaluated * 100

    for skill, stats in result.skills.items():
        stats["proficiency"] = stats["correct"] / stats["total"] * 100
        if stats["proficiency"] >= MASTERY_THRESHOLD:
            result.mastered_skills.append(skill)
        else:
            result.in_progress_skills.append(skill)

    return result
