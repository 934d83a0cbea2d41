"""Performance analytics — per-student score, study-time and XP aggregation.

Backs the analytics dashboard and the CSV export. All figures are computed
from lesson_progress, quiz_attempts, study_sessions and xp_transactions
for a single student within a time window.
"""

from __future__ import annotations

import calendar
import csv
import io
import json
import logging
from collections import OrderedDict
from datetime import date, datetime, timedelta

from ai_resilience import ask_json
from database import get_db

logger = logging.getLogger(__name__)

TIME_RANGES = ("week", "month", "year", "all")
EPOCH = datetime(1970, 1, 1)
DAYS_OF_WEEK = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
PREDICTION_MIN_ROWS = 5

CSV_HEADER = ["Date", "Activity Type", "Title", "Subject", "Score", "Duration (minutes)"]

RECOMMENDATIONS_SYSTEM = (
    "You are an expert educational AI that analyzes student performance data "
    "and provides personalized learning recommendations. Respond with JSON only."
)

# Served when the model call fails or returns nothing usable
FALLBACK_RECOMMENDATIONS = [
    {
        "title": "Practice Regularly",
        "description": "Set aside 20 minutes each day for focused practice on challenging topics.",
        "tags": ["Study Habits", "Time Management"],
        "actionText": "Create Study Schedule",
        "actionUrl": "/dashboard/schedule",
    },
    {
        "title": "Review Past Mistakes",
        "description": "Analyze your previous quiz attempts to identify and address knowledge gaps.",
        "tags": ["Review", "Self-Assessment"],
        "actionText": "View Quiz History",
        "actionUrl": "/dashboard/quizzes",
    },
    {
        "title": "Try Different Learning Methods",
        "description": "Experiment with visual, auditory, and kinesthetic approaches to find what works best for you.",
        "tags": ["Learning Styles", "Study Techniques"],
        "actionText": "Explore Learning Styles",
        "actionUrl": "/dashboard/learning-styles",
    },
]


def _shift_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def _step_back(dt: datetime, time_range: str) -> datetime:
    if time_range == "week":
        return dt - timedelta(days=7)
    if time_range == "year":
        return _shift_months(dt, -12)
    return _shift_months(dt, -1)


def period_start(time_range: str, now: datetime) -> datetime:
    """Start of the reporting window. Unknown ranges mean one month."""
    if time_range == "all":
        return EPOCH
    return _step_back(now, time_range)


def previous_period_start(time_range: str, start: datetime) -> datetime | None:
    """Start of the window immediately before ``start``; None for 'all'."""
    if time_range == "all":
        return None
    return _step_back(start, time_range)


def _parse_ts(value) -> datetime | None:
    """Naive local datetime from an ISO string; offsets are converted away."""
    if not value:
        return None
    if not isinstance(value, datetime):
        raw = str(value).strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value


def normalize_timestamp(value) -> str:
    """Canonical stored form for a client timestamp.

    Stored times are compared as text, so every row must share one shape:
    naive local time with seconds. Raises ValueError for unparsable input.
    """
    parsed = _parse_ts(value)
    if parsed is None:
        raise ValueError(f"not an ISO timestamp: {value!r}")
    return parsed.isoformat(timespec="seconds")


def session_minutes(start, end) -> int:
    """Whole minutes between start and end; 0 for unfinished sessions."""
    start_dt, end_dt = _parse_ts(start), _parse_ts(end)
    if start_dt is None or end_dt is None:
        return 0
    return max(0, int((end_dt - start_dt).total_seconds() // 60))


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _day(value) -> str:
    return str(value)[:10]


def project_performance(trend: list[dict], days: int = 7) -> list[dict]:
    """Actual daily scores followed by a straight-line projection.

    The slope runs from the first to the last of the final three points,
    per elapsed day. Predictions are clamped to 0..100. With fewer than
    three points only the actual series is returned.
    """
    series = [{"date": p["date"], "actual": p["score"], "predicted": None} for p in trend]
    if len(trend) < 3:
        return series

    first, last = trend[-3], trend[-1]
    span = (date.fromisoformat(last["date"]) - date.fromisoformat(first["date"])).days
    slope = (last["score"] - first["score"]) / span if span else 0.0
    last_date = date.fromisoformat(last["date"])

    for i in range(1, days + 1):
        predicted = round(last["score"] + slope * i)
        series.append({
            "date": (last_date + timedelta(days=i)).isoformat(),
            "actual": None,
            "predicted": min(100, max(0, predicted)),
        })
    return series


class PerformanceReport:
    """Performance summary for one student over a time range."""

    def __init__(self, user_id: int, subject_id="all", time_range: str = "month",
                 now: datetime | None = None):
        self.user_id = user_id
        self.subject_id = subject_id or "all"
        self.time_range = time_range if time_range in TIME_RANGES else "month"
        self.now = now or datetime.now()
        self.start = period_start(self.time_range, self.now)

    # ── Loading ─────────────────────────────────────────────

    def _subject_clause(self, column: str) -> tuple[str, tuple]:
        if self.subject_id == "all":
            return "", ()
        return f" AND {column} = ?", (self.subject_id,)

    def lesson_rows(self, start: datetime, end: datetime | None = None) -> list[dict]:
        clause, params = self._subject_clause("l.subject_id")
        upper, upper_params = ("", ()) if end is None else (" AND lp.created_at < ?", (end.isoformat(),))
        rows = get_db().execute(
            "SELECT lp.*, l.title, l.subject_id, COALESCE(s.name, 'Unknown') AS subject_name "
            "FROM lesson_progress lp JOIN lessons l ON l.id = lp.lesson_id "
            "LEFT JOIN subjects s ON s.id = l.subject_id "
            "WHERE lp.user_id = ? AND lp.created_at >= ?" + upper + clause +
            " ORDER BY lp.created_at DESC",
            (self.user_id, start.isoformat(), *upper_params, *params),
        ).fetchall()
        return [dict(r) for r in rows]

    def quiz_rows(self, start: datetime, end: datetime | None = None) -> list[dict]:
        clause, params = self._subject_clause("q.subject_id")
        upper, upper_params = ("", ()) if end is None else (" AND qa.created_at < ?", (end.isoformat(),))
        rows = get_db().execute(
            "SELECT qa.*, q.title, q.subject_id, COALESCE(s.name, 'Unknown') AS subject_name "
            "FROM quiz_attempts qa JOIN quizzes q ON q.id = qa.quiz_id "
            "LEFT JOIN subjects s ON s.id = q.subject_id "
            "WHERE qa.user_id = ? AND qa.created_at >= ?" + upper + clause +
            " ORDER BY qa.created_at DESC",
            (self.user_id, start.isoformat(), *upper_params, *params),
        ).fetchall()
        return [dict(r) for r in rows]

    def session_rows(self, start: datetime, end: datetime | None = None) -> list[dict]:
        clause, params = self._subject_clause("ss.subject_id")
        upper, upper_params = ("", ()) if end is None else (" AND ss.start_time < ?", (end.isoformat(),))
        rows = get_db().execute(
            "SELECT ss.*, COALESCE(s.name, 'Unknown') AS subject_name "
            "FROM study_sessions ss LEFT JOIN subjects s ON s.id = ss.subject_id "
            "WHERE ss.user_id = ? AND ss.start_time >= ?" + upper + clause +
            " ORDER BY ss.start_time DESC",
            (self.user_id, start.isoformat(), *upper_params, *params),
        ).fetchall()
        return [dict(r) for r in rows]

    def xp_rows(self, start: datetime, end: datetime | None = None) -> list[dict]:
        clause, params = self._subject_clause("subject_id")
        upper, upper_params = ("", ()) if end is None else (" AND created_at < ?", (end.isoformat(),))
        rows = get_db().execute(
            "SELECT * FROM xp_transactions WHERE user_id = ? AND created_at >= ?" + upper + clause +
            " ORDER BY created_at DESC",
            (self.user_id, start.isoformat(), *upper_params, *params),
        ).fetchall()
        return [dict(r) for r in rows]

    # ── Aggregation ─────────────────────────────────────────

    @staticmethod
    def _scores(lessons: list[dict], quizzes: list[dict]) -> list[float]:
        return [l["best_accuracy"] * 100 for l in lessons] + [q["score"] for q in quizzes]

    @staticmethod
    def _study_time(sessions: list[dict]) -> int:
        return sum(session_minutes(s["start_time"], s["end_time"]) for s in sessions)

    @staticmethod
    def _subject_performance(lessons: list[dict], quizzes: list[dict]) -> list[dict]:
        by_subject: OrderedDict = OrderedDict()
        for l in lessons:
            entry = by_subject.setdefault(l["subject_id"], {"name": l["subject_name"], "scores": []})
            entry["scores"].append(l["best_accuracy"] * 100)
        for q in quizzes:
            entry = by_subject.setdefault(q["subject_id"], {"name": q["subject_name"], "scores": []})
            entry["scores"].append(q["score"])
        result = [
            {"id": sid, "name": d["name"], "score": round(_mean(d["scores"]))}
            for sid, d in by_subject.items()
        ]
        result.sort(key=lambda s: s["score"], reverse=True)
        return result

    @staticmethod
    def _activity_distribution(lessons, quizzes, sessions) -> list[dict]:
        practice = sum(1 for s in sessions if s["type"] == "PRACTICE")
        review = sum(1 for s in sessions if s["type"] == "REVIEW")
        dist = [
            {"name": "Lessons", "value": len(lessons)},
            {"name": "Quizzes", "value": len(quizzes)},
            {"name": "Practice", "value": practice},
            {"name": "Review", "value": review},
            {"name": "Other", "value": len(sessions) - practice - review},
        ]
        return [d for d in dist if d["value"] > 0]

    @staticmethod
    def _recent_activities(lessons, quizzes, sessions, limit: int = 10) -> list[dict]:
        items = [
            {"id": l["id"], "title": l["title"], "type": "lesson", "subject": l["subject_name"],
             "score": l["best_accuracy"] * 100, "date": l["last_attempted_at"] or l["created_at"]}
            for l in lessons
        ] + [
            {"id": q["id"], "title": q["title"], "type": "quiz", "subject": q["subject_name"],
             "score": q["score"], "date": q["created_at"]}
            for q in quizzes
        ] + [
            {"id": s["id"], "title": s["title"] or f"{s['type']} Session", "type": s["type"].lower(),
             "subject": s["subject_name"], "score": None, "date": s["start_time"]}
            for s in sessions
        ]
        items.sort(key=lambda a: a["date"], reverse=True)
        return items[:limit]

    @staticmethod
    def _performance_trend(lessons, quizzes, sessions) -> list[dict]:
        days: dict[str, dict] = {}
        for l in lessons:
            days.setdefault(_day(l["last_attempted_at"] or l["created_at"]), {"scores": [], "time": 0})[
                "scores"].append(l["best_accuracy"] * 100)
        for q in quizzes:
            days.setdefault(_day(q["created_at"]), {"scores": [], "time": 0})["scores"].append(q["score"])
        for s in sessions:
            days.setdefault(_day(s["start_time"]), {"scores": [], "time": 0})["time"] += session_minutes(
                s["start_time"], s["end_time"])
        return [
            {"date": d, "score": round(_mean(v["scores"])), "time": v["time"]}
            for d, v in sorted(days.items())
        ]

    @staticmethod
    def _learning_velocity(trend: list[dict], xp: list[dict]) -> list[dict]:
        xp_by_day: dict[str, int] = {}
        for t in xp:
            xp_by_day[_day(t["created_at"])] = xp_by_day.get(_day(t["created_at"]), 0) + t["amount"]
        velocity = []
        for i, point in enumerate(trend):
            delta = point["score"] - trend[i - 1]["score"] if i > 0 else 0
            velocity.append({"date": point["date"], "velocity": delta, "xp": xp_by_day.get(point["date"], 0)})
        return velocity

    @staticmethod
    def _weekly_heatmap(sessions: list[dict]) -> list[dict]:
        heatmap = [{"day": d, "value": 0} for d in DAYS_OF_WEEK]
        for s in sessions:
            start = _parse_ts(s["start_time"])
            if start is None:
                continue
            heatmap[start.weekday()]["value"] += session_minutes(s["start_time"], s["end_time"])
        return heatmap

    # ── Recommendations ─────────────────────────────────────

    def _student_line(self) -> str:
        row = get_db().execute("SELECT name, age FROM users WHERE id = ?", (self.user_id,)).fetchone()
        name = (row["name"] if row else "") or "Student"
        age = row["age"] if row and row["age"] is not None else "Unknown"
        return f"Name: {name}\nAge: {age}"

    def _subject_name(self) -> str:
        if self.subject_id == "all":
            return "all subjects"
        row = get_db().execute("SELECT name FROM subjects WHERE id = ?", (self.subject_id,)).fetchone()
        return row["name"] if row else "all subjects"

    def _recommendations_prompt(self, lessons, quizzes, sessions) -> str:
        performance = {
            "lessonProgress": [
                {"lessonTitle": l["title"], "subject": l["subject_name"], "accuracy": l["best_accuracy"],
                 "attempts": l["attempts_count"], "completed": bool(l["completed"]),
                 "date": l["last_attempted_at"] or l["created_at"]}
                for l in lessons
            ],
            "quizAttempts": [
                {"quizTitle": q["title"], "subject": q["subject_name"], "score": q["score"],
                 "date": q["created_at"]}
                for q in quizzes
            ],
            "studySessions": [
                {"title": s["title"], "type": s["type"], "subject": s["subject_name"],
                 "duration": session_minutes(s["start_time"], s["end_time"]), "date": s["start_time"]}
                for s in sessions
            ],
        }
        return f"""STUDENT:
{self._student_line()}
Subject: {self._subject_name()}

PERFORMANCE DATA:
{json.dumps(performance, indent=2, default=str)}

Based on this data, provide 3 personalized learning recommendations in the following JSON format:
[
  {{
    "title": "Recommendation title",
    "description": "Detailed description of the recommendation",
    "tags": ["tag1", "tag2"],
    "actionText": "Button text",
    "actionUrl": "/recommended/path"
  }}
]

Make the recommendations specific and actionable."""

    def recommendations(self, lessons, quizzes, sessions) -> list[dict]:
        """Three AI recommendations; the fixed set when the call or decoding fails."""
        try:
            result = ask_json(
                self._recommendations_prompt(lessons, quizzes, sessions),
                system=RECOMMENDATIONS_SYSTEM,
            )
        except Exception:
            logger.exception("performance recommendations failed user=%s", self.user_id)
            return FALLBACK_RECOMMENDATIONS

        items = [r for r in result if isinstance(r, dict) and r.get("title")] if isinstance(result, list) else []
        if not items:
            logger.warning("performance recommendations had no usable items user=%s", self.user_id)
            return FALLBACK_RECOMMENDATIONS
        return items[:3]

    def build(self) -> dict:
        lessons = self.lesson_rows(self.start)
        quizzes = self.quiz_rows(self.start)
        sessions = self.session_rows(self.start)
        xp = self.xp_rows(self.start)

        average_score = _mean(self._scores(lessons, quizzes))
        total_study_time = self._study_time(sessions)
        total_xp = sum(t["amount"] for t in xp)

        score_change = study_time_change = xp_change = None
        prev_start = previous_period_start(self.time_range, self.start)
        if prev_start is not None:
            prev_lessons = self.lesson_rows(prev_start, self.start)
            prev_quizzes = self.quiz_rows(prev_start, self.start)
            prev_sessions = self.session_rows(prev_start, self.start)
            prev_xp = self.xp_rows(prev_start, self.start)
            score_change = average_score - _mean(self._scores(prev_lessons, prev_quizzes))
            study_time_change = total_study_time - self._study_time(prev_sessions)
            xp_change = total_xp - sum(t["amount"] for t in prev_xp)

        trend = self._performance_trend(lessons, quizzes, sessions)

        predictive = None
        if max(len(lessons), len(quizzes), len(sessions)) > PREDICTION_MIN_ROWS:
            predictive = {
                "projectedPerformance": project_performance(
                    self._performance_trend(lessons, quizzes, [])
                ),
                "recommendations": self.recommendations(lessons, quizzes, sessions),
            }

        return {
            "performance": {
                "averageScore": round(average_score),
                "totalStudyTime": total_study_time,
                "totalXP": total_xp,
                "scoreChange": score_change,
                "studyTimeChange": study_time_change,
                "xpChange": xp_change,
                "subjectPerformance": self._subject_performance(lessons, quizzes),
                "activityDistribution": self._activity_distribution(lessons, quizzes, sessions),
                "recentActivities": self._recent_activities(lessons, quizzes, sessions),
                "performanceTrend": trend,
                "learningVelocity": self._learning_velocity(trend, xp),
                "weeklyHeatmap": self._weekly_heatmap(sessions),
            },
            "predictiveInsights": predictive,
        }

    def export_csv(self) -> str:
        """All activity in the window as CSV text."""
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for l in self.lesson_rows(self.start):
            writer.writerow([
                l["last_attempted_at"] or l["created_at"], "Lesson", l["title"], l["subject_name"],
                l["best_accuracy"] * 100, l["time_spent_minutes"] or 0,
            ])
        for q in self.quiz_rows(self.start):
            writer.writerow([
                q["created_at"], "Quiz", q["title"], q["subject_name"],
                q["score"], q["time_spent_minutes"] or 0,
            ])
        for s in self.session_rows(self.start):
            writer.writerow([
                s["start_time"], s["type"], s["title"] or "Study Session", s["subject_name"],
                "", session_minutes(s["start_time"], s["end_time"]),
            ])
        return buf.getvalue()


def export_csv(user_id: int, subject_id="all", time_range: str = "month",
               now: datetime | None = None) -> str:
    return PerformanceReport(user_id, subject_id, time_range, now).export_csv()
