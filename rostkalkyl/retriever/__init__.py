"""Catalog lookup: map spoken task descriptions onto catalog tasks."""

from .task_mapper import MIN_OVERLAP_SCORE, MatchResult, NoMatch, TaskMatch, map_task_description, suggest_tasks

__all__ = [
    "MIN_OVERLAP_SCORE",
    "MatchResult",
    "NoMatch",
    "TaskMatch",
    "map_task_description",
    "suggest_tasks",
]
