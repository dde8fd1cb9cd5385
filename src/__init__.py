"""
VM Fleet Reconciler.
"""

from aggregator import ResultAggregator
from catalog import DEFAULT_CATALOG, ActionCatalog
from clients import ArmRestClient
from config import ReconcilerConfig
from engine import ReconciliationEngine
from executor import ActionExecutor
from log_utils import setup_logging
from models import Outcome, RequestedAction, Summary, TargetDescriptor
from probe import StateProbe
from resolver import resolve

__all__ = [
    "ArmRestClient",
    "ReconcilerConfig",
    "setup_logging",
    "ActionCatalog",
    "DEFAULT_CATALOG",
    "StateProbe",
    "resolve",
    "ActionExecutor",
    "ResultAggregator",
    "ReconciliationEngine",
    "TargetDescriptor",
    "RequestedAction",
    "Outcome",
    "Summary",
]
