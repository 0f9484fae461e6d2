"""Matching: likes, dislikes and mutual-match creation."""

from apps.matching.engine import LikeResult, MatchEngine, MatchRecord, MatchView

__all__ = ["MatchEngine", "LikeResult", "MatchRecord", "MatchView"]
