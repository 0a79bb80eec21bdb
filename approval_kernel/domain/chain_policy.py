"""
Chain Policy (``approval_kernel.domain.chain_policy``).

Responsibility
--------------
Maps a risk profile (score, reason category, financial impact) to an
ordered approval chain: the role required at each level and how long each
level may stay pending.  Also builds the single-level chain used by the
settlement escalation flow.

Architecture position
---------------------
**Kernel domain layer** -- pure and deterministic.  ZERO I/O.  Bucket
tables and duration tables are static policy data handed in by
``approval_config.bridges``; nothing here is computed ad hoc.

Invariants enforced
-------------------
* Determinism: the same input always yields the same ``ChainPlan``.
* Bucket table is ordered, contiguous and covers ``[0, 100]`` exactly;
  validated once at construction.
* Urgency is derived from the bucket (``BUCKET_URGENCY``), never input.
* Never partial: invalid input raises ``PolicyError`` before any plan is
  produced.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from numbers import Real

from approval_kernel.domain.workflow import (
    RISK_BUCKET_ORDER,
    RiskBucket,
    UrgencyLevel,
)
from approval_kernel.exceptions import PolicyError

MIN_RISK_SCORE = 0
MAX_RISK_SCORE = 100

SETTLEMENT_CATEGORY = "settlement"

BUCKET_URGENCY: dict[RiskBucket, UrgencyLevel] = {
    RiskBucket.MINIMAL: UrgencyLevel.NORMAL,
    RiskBucket.LOW: UrgencyLevel.NORMAL,
    RiskBucket.MEDIUM: UrgencyLevel.NORMAL,
    RiskBucket.HIGH: UrgencyLevel.URGENT,
    RiskBucket.CRITICAL: UrgencyLevel.CRITICAL,
}


# =========================================================================
# Input and output types
# =========================================================================


@dataclass(frozen=True)
class BypassAuditRecord:
    """Creation input consumed from the bypass-execution subsystem."""

    bypass_id: str
    reason_category: str
    financial_impact: Decimal
    risk_score: float


@dataclass(frozen=True)
class RiskBucketRule:
    """One row of the ordered bucket table.

    Covers ``lower <= score < upper``; the last row of the table also
    includes its upper bound.
    """

    bucket: RiskBucket
    lower: int
    upper: int
    roles: tuple[str, ...]


@dataclass(frozen=True)
class LevelDurationTable:
    """How long a level may stay pending, per urgency."""

    durations: Mapping[UrgencyLevel, timedelta]

    def __post_init__(self) -> None:
        for urgency, duration in self.durations.items():
            if duration <= timedelta(0):
                raise ValueError(
                    f"Level duration for {urgency.value} must be positive, got {duration}"
                )

    def duration_for(self, urgency: UrgencyLevel) -> timedelta:
        try:
            return self.durations[urgency]
        except KeyError:
            raise PolicyError(
                "urgency", urgency.value, "no level duration configured"
            ) from None


@dataclass(frozen=True)
class ChainStep:
    """Role and pending-duration for one level of a planned chain."""

    role: str
    duration: timedelta

    @property
    def duration_ms(self) -> int:
        return self.duration // timedelta(milliseconds=1)


@dataclass(frozen=True)
class ChainPlan:
    """Result of ``ChainPolicy.build_chain``."""

    bucket: RiskBucket
    urgency: UrgencyLevel
    steps: tuple[ChainStep, ...]

    @property
    def roles(self) -> tuple[str, ...]:
        return tuple(step.role for step in self.steps)


# =========================================================================
# Policy
# =========================================================================


class ChainPolicy:
    """Deterministic risk-profile to approval-chain mapping.

    Contract:
        ``build_chain`` is a pure function of its arguments and the static
        tables given at construction.

    Guarantees:
        - The returned plan has at least one step.
        - ``financial_impact`` at or above ``financial_impact_threshold``
          moves the profile one bucket up, capped at critical.
    """

    def __init__(
        self,
        buckets: Sequence[RiskBucketRule],
        durations: LevelDurationTable,
        *,
        financial_impact_threshold: Decimal | None = None,
        settlement_role: str | None = None,
        settlement_duration: timedelta | None = None,
    ) -> None:
        self._buckets = tuple(sorted(buckets, key=lambda rule: rule.lower))
        _validate_bucket_table(self._buckets)
        self._durations = durations
        self._impact_threshold = financial_impact_threshold
        if settlement_duration is not None and settlement_duration <= timedelta(0):
            raise ValueError("Settlement level duration must be positive")
        self._settlement_role = settlement_role
        self._settlement_duration = settlement_duration

    @property
    def buckets(self) -> tuple[RiskBucketRule, ...]:
        return self._buckets

    def bucket_for(self, risk_score: float) -> RiskBucketRule:
        """Return the bucket row containing ``risk_score``."""
        _validate_risk_score(risk_score)
        last = self._buckets[-1]
        for rule in self._buckets:
            if rule.lower <= risk_score < rule.upper:
                return rule
        if risk_score == last.upper:
            return last
        # Unreachable for a validated table
        raise PolicyError("risk_score", risk_score, "no bucket covers this score")

    def build_chain(
        self,
        risk_score: float,
        category: str,
        financial_impact: Decimal = Decimal("0"),
    ) -> ChainPlan:
        """Build the ordered approval chain for a risk profile.

        Raises:
            PolicyError: score outside [0, 100], empty category, or
                negative financial impact.
        """
        if not isinstance(category, str) or not category.strip():
            raise PolicyError("category", category, "must be a non-empty string")
        impact = _validate_financial_impact(financial_impact)

        rule = self.bucket_for(risk_score)
        if self._impact_threshold is not None and impact >= self._impact_threshold:
            rule = self._bump(rule)

        urgency = BUCKET_URGENCY[rule.bucket]
        duration = self._durations.duration_for(urgency)
        return ChainPlan(
            bucket=rule.bucket,
            urgency=urgency,
            steps=tuple(ChainStep(role=role, duration=duration) for role in rule.roles),
        )

    def build_settlement_chain(self) -> ChainPlan:
        """Single-level chain for settlement escalation (first ladder rung)."""
        if self._settlement_role is None or self._settlement_duration is None:
            raise PolicyError(
                "category", SETTLEMENT_CATEGORY, "settlement chain is not configured"
            )
        return ChainPlan(
            bucket=RiskBucket.MINIMAL,
            urgency=UrgencyLevel.NORMAL,
            steps=(ChainStep(role=self._settlement_role, duration=self._settlement_duration),),
        )

    def _bump(self, rule: RiskBucketRule) -> RiskBucketRule:
        position = self._buckets.index(rule)
        return self._buckets[min(position + 1, len(self._buckets) - 1)]


# =========================================================================
# Validation helpers
# =========================================================================


def _validate_risk_score(risk_score: object) -> None:
    if isinstance(risk_score, bool) or not isinstance(risk_score, (Real, Decimal)):
        raise PolicyError("risk_score", risk_score, "must be a number")
    if isinstance(risk_score, float) and math.isnan(risk_score):
        raise PolicyError("risk_score", risk_score, "must be a number")
    if not MIN_RISK_SCORE <= risk_score <= MAX_RISK_SCORE:
        raise PolicyError(
            "risk_score",
            risk_score,
            f"must be within [{MIN_RISK_SCORE}, {MAX_RISK_SCORE}]",
        )


def _validate_financial_impact(financial_impact: object) -> Decimal:
    if isinstance(financial_impact, bool):
        raise PolicyError("financial_impact", financial_impact, "must be a number")
    try:
        impact = Decimal(str(financial_impact))
    except ArithmeticError:
        raise PolicyError("financial_impact", financial_impact, "must be a number") from None
    if not impact.is_finite() or impact < 0:
        raise PolicyError("financial_impact", financial_impact, "must be a non-negative amount")
    return impact


def _validate_bucket_table(buckets: tuple[RiskBucketRule, ...]) -> None:
    """Bucket rows must be contiguous, cover [0, 100] and follow RISK_BUCKET_ORDER."""
    if not buckets:
        raise ValueError("Chain policy requires at least one risk bucket")
    if buckets[0].lower != MIN_RISK_SCORE or buckets[-1].upper != MAX_RISK_SCORE:
        raise ValueError(
            f"Risk buckets must cover [{MIN_RISK_SCORE}, {MAX_RISK_SCORE}]"
        )
    for previous, current in zip(buckets, buckets[1:]):
        if previous.upper != current.lower:
            raise ValueError(
                f"Risk buckets {previous.bucket.value} and {current.bucket.value} "
                f"are not contiguous"
            )
        if RISK_BUCKET_ORDER.index(previous.bucket) >= RISK_BUCKET_ORDER.index(current.bucket):
            raise ValueError("Risk buckets must be listed in ascending severity")
    for rule in buckets:
        if rule.lower >= rule.upper:
            raise ValueError(f"Risk bucket {rule.bucket.value} has an empty range")
        if not rule.roles:
            raise ValueError(f"Risk bucket {rule.bucket.value} has no approver roles")
