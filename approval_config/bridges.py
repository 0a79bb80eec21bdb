"""
Config -> Kernel Bridges.

Functions that convert an ``ApprovalConfigurationSet`` into kernel policy
objects.  These live in approval_config (the producer) because the kernel
must NEVER import approval_config.

Usage:
    from approval_config import get_active_config
    from approval_config.bridges import build_approval_service

    config = get_active_config()
    service = build_approval_service(config, store)
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal, InvalidOperation

from approval_config.schema import ApprovalConfigurationSet
from approval_kernel.domain.chain_policy import (
    ChainPolicy,
    LevelDurationTable,
    RiskBucketRule,
)
from approval_kernel.domain.clock import Clock
from approval_kernel.domain.escalation import EscalationPolicy
from approval_kernel.domain.settings import (
    EngineSettings,
    LateDecisionPolicy,
    TimeoutPolicy,
)
from approval_kernel.domain.workflow import RiskBucket, UrgencyLevel
from approval_kernel.services.approval_service import ApprovalService
from approval_kernel.store.base import WorkflowStore


def build_escalation_policy(config: ApprovalConfigurationSet) -> EscalationPolicy:
    """Build the shared escalation ladders (bypass categories and settlement)."""
    return EscalationPolicy(
        default_ladder=config.escalation.default_ladder,
        ladders=dict(config.escalation.ladders),
    )


def build_chain_policy(config: ApprovalConfigurationSet) -> ChainPolicy:
    """Build the risk-bucket chain policy.

    The settlement chain starts on the first rung of the settlement
    category's ladder.

    Raises:
        ValueError: unknown bucket or urgency name, bad threshold, or a
            settlement category without its own ladder.
    """
    buckets = [
        RiskBucketRule(
            bucket=RiskBucket(defn.bucket),
            lower=defn.lower,
            upper=defn.upper,
            roles=defn.roles,
        )
        for defn in config.risk_buckets
    ]
    durations = LevelDurationTable(
        durations={
            UrgencyLevel(urgency): timedelta(minutes=minutes)
            for urgency, minutes in config.level_durations_minutes.items()
        }
    )

    threshold = None
    if config.financial_impact_threshold is not None:
        try:
            threshold = Decimal(config.financial_impact_threshold)
        except InvalidOperation:
            raise ValueError(
                f"financial_impact_threshold {config.financial_impact_threshold!r} "
                f"is not a decimal amount"
            ) from None

    settlement_ladder = config.escalation.ladders.get(config.settlement.category)
    if not settlement_ladder:
        raise ValueError(
            f"No escalation ladder configured for settlement category "
            f"'{config.settlement.category}'"
        )

    return ChainPolicy(
        buckets,
        durations,
        financial_impact_threshold=threshold,
        settlement_role=settlement_ladder[0],
        settlement_duration=timedelta(minutes=config.settlement.level_duration_minutes),
    )


def build_engine_settings(config: ApprovalConfigurationSet) -> EngineSettings:
    """Build processor / scheduler / facade tunables."""
    return EngineSettings(
        min_notes_length=config.decisions.min_notes_length,
        late_decision_policy=LateDecisionPolicy(config.decisions.late_decision_policy),
        default_timeout_policy=TimeoutPolicy(config.timeouts.default),
        timeout_policies={
            category: TimeoutPolicy(policy)
            for category, policy in config.timeouts.categories.items()
        },
        max_conflict_retries=config.max_conflict_retries,
        sweep_interval_seconds=config.sweep_interval_seconds,
    )


def build_approval_service(
    config: ApprovalConfigurationSet,
    store: WorkflowStore,
    clock: Clock | None = None,
) -> ApprovalService:
    """Wire a fully configured ApprovalService over ``store``."""
    return ApprovalService(
        store,
        build_chain_policy(config),
        build_escalation_policy(config),
        build_engine_settings(config),
        clock,
    )
