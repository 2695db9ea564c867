from .evaluator import SlipEvaluator, evaluate_slip, rank_leaderboard
from .monitor import CycleMonitor, MonitorReport, Severity
from .resolver import CycleResolver, ResolverReport
from .selector import CycleStarter, InsufficientMatches, select_matches

__all__ = [
    "SlipEvaluator",
    "evaluate_slip",
    "rank_leaderboard",
    "CycleMonitor",
    "MonitorReport",
    "Severity",
    "CycleResolver",
    "ResolverReport",
    "CycleStarter",
    "InsufficientMatches",
    "select_matches",
]
