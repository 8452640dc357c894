"""Worker adapter registry — pluggable coding agent backends.

Learn: callbridge dispatches user tasks to external coding agents via
adapters. Each adapter knows how to build the command line and prompts
for one tool.

Selecting one by name:
    adapter = get_adapter("claude_code", binary="claude")
    cmd = adapter.build_command(prompt)
"""

from callbridge.agent.adapters.base import TaskContext, WorkerAdapter
from callbridge.agent.adapters.claude_code import ClaudeCodeAdapter

__all__ = [
    "ClaudeCodeAdapter",
    "TaskContext",
    "WorkerAdapter",
    "get_adapter",
    "list_adapters",
    "register_adapter",
]

# ─── Registry ──────────────────────────────────────────────

_ADAPTERS: dict[str, type[WorkerAdapter]] = {
    "claude_code": ClaudeCodeAdapter,
}


def get_adapter(name: str, **kwargs) -> WorkerAdapter:
    """Instantiate the adapter registered under `name` (CALLBRIDGE_DEFAULT_ADAPTER).

    kwargs go to the adapter constructor (binary, max_turns). Unknown name → ValueError.
    """
    cls = _ADAPTERS.get(name)
    if not cls:
        available = ", ".join(sorted(_ADAPTERS.keys()))
        raise ValueError(f"Unknown adapter '{name}'. Available: {available}")
    return cls(**kwargs)


def list_adapters() -> list[str]:
    return sorted(_ADAPTERS.keys())


def register_adapter(name: str, adapter_cls: type[WorkerAdapter]) -> None:
    """Make another worker CLI selectable by name."""
    _ADAPTERS[name] = adapter_cls
