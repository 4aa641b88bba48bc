# addon_manager/addons/lifecycle.py
from __future__ import annotations

from enum import Enum
from typing import Optional

from .domain.models import AddonState


class AddonLifecycleStatus(str, Enum):
    """
    High-level lifecycle status for an add-on, derived from its state entry.

    - available: no install record; the catalog offers it.

    - installed: files are on disk and the binary carries the enabled suffix.

    - disabled: files are on disk but the binary is renamed so the game
      skips it.
    """

    AVAILABLE = "available"
    INSTALLED = "installed"
    DISABLED = "disabled"


def lifecycle_of(state: Optional[AddonState]) -> AddonLifecycleStatus:
    if state is None or not state.installed:
        return AddonLifecycleStatus.AVAILABLE
    if state.disabled:
        return AddonLifecycleStatus.DISABLED
    return AddonLifecycleStatus.INSTALLED
