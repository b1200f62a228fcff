"""Configuration scoping for entry-time overrides.

A scope only affects ``resolve_config()`` calls made inside it. Once a
``FrozenConfig`` has been handed to the pipeline, stages do not see ambient
changes.
"""

from collections.abc import Generator
from contextlib import contextmanager
import contextvars
from typing import Any

from callqa_batch.config.types import ResolvedConfig

_ambient_resolved_config: contextvars.ContextVar[ResolvedConfig] = (
    contextvars.ContextVar("callqa_batch_resolved_config")
)


def get_ambient_resolved_config() -> ResolvedConfig | None:
    """Return the configuration set by the innermost scope, if any."""
    try:
        return _ambient_resolved_config.get()
    except LookupError:
        return None


@contextmanager
def config_scope(config: ResolvedConfig) -> Generator[None]:
    """Temporarily resolve to ``config``. Async-safe through ``contextvars``.

    Example:
        base = resolve_config()
        with config_scope(base.with_overrides(concurrency=1)):
            await run_batch(items, transcriber=transcriber)
    """
    token = _ambient_resolved_config.set(config)
    try:
        yield
    finally:
        _ambient_resolved_config.reset(token)


@contextmanager
def config_override(**overrides: Any) -> Generator[None]:
    """Scope that applies programmatic overrides on top of the current config."""
    base = get_ambient_resolved_config()
    if base is None:
        from callqa_batch.config.api import resolve_config

        base = resolve_config()
    with config_scope(base.with_overrides(**overrides)):
        yield
