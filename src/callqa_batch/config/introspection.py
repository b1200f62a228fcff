"""Configuration introspection for debugging and validation.

Usage:
    python -m callqa_batch.config
    python -m callqa_batch.config --check
    python -m callqa_batch.config --json
"""

import argparse
import json
import sys
from typing import Any

from callqa_batch.config.api import resolve_config
from callqa_batch.config.types import ResolvedConfig
from callqa_batch.core.exceptions import ConfigurationError

# ruff: noqa: T201


def config_warnings(resolved: ResolvedConfig) -> list[str]:
    """Non-fatal configuration issues worth surfacing."""
    warnings = []
    if resolved.provider == "none":
        warnings.append(
            "No completion provider configured - calls stop after transcription"
        )
    if resolved.concurrency > 20:
        warnings.append("High concurrency may exceed provider rate limits")
    if resolved.max_retries == 0:
        warnings.append("max_retries=0 - transient failures are not retried")
    return warnings


def get_config_info(profile: str | None = None) -> dict[str, Any]:
    """Structured configuration details, sources and validation status."""
    try:
        resolved = resolve_config(profile=profile)
    except ConfigurationError as e:
        return {
            "status": "invalid",
            "error": str(e),
            "config": None,
            "sources": {},
            "validation": {"errors": [str(e)], "warnings": []},
        }
    return {
        "status": "valid",
        "config": resolved.to_frozen().to_dict(),
        "sources": dict(resolved.origin),
        "validation": {"errors": [], "warnings": config_warnings(resolved)},
    }


def check_config_validation(profile: str | None = None) -> bool:
    try:
        resolve_config(profile=profile)
    except ConfigurationError:
        return False
    return True


def print_config_debug(profile: str | None = None) -> int:
    """Print the effective configuration with sources. Returns an exit code."""
    try:
        resolved = resolve_config(profile=profile)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    print("=== Effective Configuration ===")
    print(resolved.audit())
    warnings = config_warnings(resolved)
    if warnings:
        print("\n=== Warnings ===")
        for warning in warnings:
            print(f"  - {warning}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for configuration introspection."""
    parser = argparse.ArgumentParser(
        description="Inspect callqa-batch configuration",
        prog="python -m callqa_batch.config",
    )
    parser.add_argument("--profile", help="Configuration profile to use")
    parser.add_argument(
        "--json", action="store_true", help="Output as JSON instead of text"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only check validity (exit code 0=valid, 1=invalid)",
    )
    args = parser.parse_args(argv)

    if args.check:
        return 0 if check_config_validation(args.profile) else 1
    if args.json:
        info = get_config_info(args.profile)
        print(json.dumps(info, indent=2))
        return 0 if info["status"] == "valid" else 1
    return print_config_debug(args.profile)
