"""
approval_config -- single public entrypoint for approval engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``ApprovalConfigurationSet``;
    ``approval_config.bridges`` turns it into kernel policy objects.

Architecture position:
    Configuration -- YAML-driven.  This package sits above
    ``approval_kernel``.  The kernel MUST NEVER import from
    ``approval_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration file is missing.
    - ``KeyError`` / ``ValueError`` -- schema or structural errors.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``approval_config_loaded`` log entry with the config id, version and
    SHA-256 checksum, tying each deployment to the exact configuration
    that governed its approval chains.
"""

from __future__ import annotations

from pathlib import Path

from approval_config.loader import load_configuration
from approval_config.schema import ApprovalConfigurationSet
from approval_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_FILE = _DEFAULT_CONFIG_DIR / "default.yaml"


def get_active_config(path: Path | str | None = None) -> ApprovalConfigurationSet:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML configuration file.  Defaults to the shipped
            ``approval_config/sets/default.yaml``.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        KeyError: If a required key is missing.
        ValueError: If a value is malformed.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_FILE
    config = load_configuration(config_path)

    _logger.info(
        "approval_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(config_path),
            "bucket_count": len(config.risk_buckets),
            "ladder_count": len(config.escalation.ladders) + 1,
        },
    )
    return config


__all__ = ["ApprovalConfigurationSet", "DEFAULT_CONFIG_FILE", "get_active_config"]
