"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into typed
``approval_config.schema`` dataclass instances.  The single public entry
point for runtime config is ``approval_config.get_active_config()``.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys in parsed dict  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from approval_config.schema import (
    ApprovalConfigurationSet,
    DecisionDef,
    EscalationDef,
    RiskBucketDef,
    SettlementDef,
    TimeoutDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML document must be a mapping")
    return data


def _roles(value: Any, where: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(r, str) and r for r in value):
        raise ValueError(f"{where} must be a list of role names, got {value!r}")
    return tuple(value)


def _positive_int(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{where} must be a positive integer, got {value!r}")
    return value


def parse_risk_bucket(data: dict[str, Any]) -> RiskBucketDef:
    """Parse a RiskBucketDef from a dict."""
    return RiskBucketDef(
        bucket=data["bucket"],
        lower=int(data["lower"]),
        upper=int(data["upper"]),
        roles=_roles(data["roles"], f"risk_buckets.{data['bucket']}.roles"),
    )


def parse_escalation(data: dict[str, Any]) -> EscalationDef:
    """Parse an EscalationDef from a dict."""
    ladders = data.get("ladders") or {}
    return EscalationDef(
        default_ladder=_roles(data["default_ladder"], "escalation.default_ladder"),
        ladders={
            category: _roles(ladder, f"escalation.ladders.{category}")
            for category, ladder in ladders.items()
        },
    )


def parse_settlement(data: dict[str, Any]) -> SettlementDef:
    return SettlementDef(
        category=data.get("category", "settlement"),
        level_duration_minutes=_positive_int(
            data["level_duration_minutes"], "settlement.level_duration_minutes",
        ),
    )


def parse_timeouts(data: dict[str, Any]) -> TimeoutDef:
    return TimeoutDef(
        default=data.get("default", "expire"),
        categories=dict(data.get("categories") or {}),
    )


def parse_decisions(data: dict[str, Any]) -> DecisionDef:
    return DecisionDef(
        late_decision_policy=data.get("late_decision_policy", "reject"),
        min_notes_length=int(data.get("min_notes_length", 5)),
    )


def parse_configuration(data: dict[str, Any]) -> ApprovalConfigurationSet:
    """
    Parse a complete ``ApprovalConfigurationSet`` from a dict.

    Postconditions:
        - ``checksum`` is the SHA-256 of the canonical source dict.
    Raises:
        KeyError: if a required key is missing.
        ValueError: if a value has the wrong shape.
    """
    durations = data["level_durations_minutes"]
    if not isinstance(durations, dict):
        raise ValueError("level_durations_minutes must be a mapping of urgency to minutes")

    threshold = data.get("financial_impact_threshold")
    scheduler = data.get("scheduler") or {}
    concurrency = data.get("concurrency") or {}

    return ApprovalConfigurationSet(
        config_id=data["config_id"],
        version=int(data["version"]),
        description=data.get("description", ""),
        risk_buckets=tuple(parse_risk_bucket(b) for b in data["risk_buckets"]),
        level_durations_minutes={
            urgency: _positive_int(minutes, f"level_durations_minutes.{urgency}")
            for urgency, minutes in durations.items()
        },
        escalation=parse_escalation(data["escalation"]),
        settlement=parse_settlement(data["settlement"]),
        timeouts=parse_timeouts(data.get("timeouts") or {}),
        decisions=parse_decisions(data.get("decisions") or {}),
        financial_impact_threshold=str(threshold) if threshold is not None else None,
        sweep_interval_seconds=_positive_int(
            scheduler.get("sweep_interval_seconds", 30), "scheduler.sweep_interval_seconds",
        ),
        max_conflict_retries=_positive_int(
            concurrency.get("max_conflict_retries", 3), "concurrency.max_conflict_retries",
        ),
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> ApprovalConfigurationSet:
    """Load and parse a configuration set from a YAML file."""
    return parse_configuration(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Returns a hex-encoded SHA-256 hash string.
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
