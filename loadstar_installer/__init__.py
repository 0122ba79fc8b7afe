"""Loadstar: development machine provisioning.

Core design goals:
- Declarative catalog (YAML), immutable once loaded
- Wizard answers frozen into a plan before anything runs
- One background worker, ordered event stream, cooperative cancellation
- Best-effort per tool: a failed step never stops the plan
- Dotfiles written atomically, previous versions backed up
"""

__all__ = []
