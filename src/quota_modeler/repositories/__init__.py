"""Data access helpers for the quota modeler."""

from .realm_stats_repo import DailyStat, RealmStatsRepository, utc_today

__all__ = ["DailyStat", "RealmStatsRepository", "utc_today"]
