"""
ApprovalConfigurationSet schema.

The human-authored, reviewable source artifact for approval engine
configuration.  YAML files are parsed into these types by the loader and
turned into kernel policy objects by the bridges.  Values stay in their
configuration vocabulary here (role names, minutes, enum strings); unit
conversion happens in the bridges.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Chain construction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskBucketDef:
    """One risk bucket: ``lower <= score < upper`` (last bucket inclusive)."""

    bucket: str
    lower: int
    upper: int
    roles: tuple[str, ...]


@dataclass(frozen=True)
class EscalationDef:
    """Escalation ladders, lowest authority first."""

    default_ladder: tuple[str, ...]
    ladders: dict[str, tuple[str, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class SettlementDef:
    """Settlement escalation flow: a single level on the settlement ladder."""

    category: str
    level_duration_minutes: int


# ---------------------------------------------------------------------------
# Engine behaviour
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimeoutDef:
    """What the sweep does with overdue levels, per category."""

    default: str = "expire"
    categories: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DecisionDef:
    late_decision_policy: str = "reject"
    min_notes_length: int = 5


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalConfigurationSet:
    """Complete approval engine configuration."""

    config_id: str
    version: int
    risk_buckets: tuple[RiskBucketDef, ...]
    level_durations_minutes: dict[str, int]
    escalation: EscalationDef
    settlement: SettlementDef
    timeouts: TimeoutDef = field(default_factory=TimeoutDef)
    decisions: DecisionDef = field(default_factory=DecisionDef)
    financial_impact_threshold: str | None = None
    sweep_interval_seconds: int = 30
    max_conflict_retries: int = 3
    description: str = ""
    checksum: str = ""
