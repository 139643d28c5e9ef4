from zoneguard.optimizer.ledger import BlacklistEntry, Ledger, RevertResult
from zoneguard.optimizer.miner import mine_zone_ids, normalize_id
from zoneguard.optimizer.mutation import MutationExecutor, MutationResult
from zoneguard.optimizer.preview import build_preview
from zoneguard.optimizer.reconciler import ReconcileReport, Reconciler
from zoneguard.optimizer.resolver import CampaignResolver, Resolution

__all__ = [
    "BlacklistEntry",
    "CampaignResolver",
    "Ledger",
    "MutationExecutor",
    "MutationResult",
    "ReconcileReport",
    "Reconciler",
    "Resolution",
    "RevertResult",
    "build_preview",
    "mine_zone_ids",
    "normalize_id",
]
