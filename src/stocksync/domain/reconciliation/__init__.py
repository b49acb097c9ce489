"""Reconciliation core: consolidate platform observations and push the differences.

Flow of one account sync:
1) fetch catalog snapshots from every active connection
2) resolve observations to canonical identities and build the graph
3) pick authoritative field values and detect the actions they imply
4) write authoritative values into the canonical store
5) push actions to the platforms that disagree
"""

from __future__ import annotations

from .actions import ActionType, Detection, FieldChange, UpdateAction
from .authority import DEFAULT_AUTHORITIES, MOST_RECENT, Authority, FieldAuthorityTable
from .consolidate import Consolidator
from .detect import ChangeDetector
from .graph import CatalogSnapshot, ConsolidatedGraph, Observed, SkippedEntity
from .identity import IdentityResolver, MatchKind, Resolution
from .orchestrator import FetchReport, SyncOrchestrator, SyncReport, SyncState, SyncStatus
from .push import PushOutcome, PushStatus, RetrySchedule, UpdatePusher
from .store import StoreRunner

__all__ = [
    "DEFAULT_AUTHORITIES",
    "MOST_RECENT",
    "ActionType",
    "Authority",
    "CatalogSnapshot",
    "ChangeDetector",
    "ConsolidatedGraph",
    "Consolidator",
    "Detection",
    "FetchReport",
    "FieldAuthorityTable",
    "FieldChange",
    "IdentityResolver",
    "MatchKind",
    "Observed",
    "PushOutcome",
    "PushStatus",
    "Resolution",
    "RetrySchedule",
    "SkippedEntity",
    "StoreRunner",
    "SyncOrchestrator",
    "SyncReport",
    "SyncState",
    "SyncStatus",
    "UpdateAction",
    "UpdatePusher",
]
