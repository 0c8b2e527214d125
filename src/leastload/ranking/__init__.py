"""Least-loaded ranking of workers."""

from leastload.ranking.load_ranking import LoadRanking

__all__ = ["LoadRanking"]
