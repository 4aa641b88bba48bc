from addon_manager.addons.domain.models import AddonState
from addon_manager.addons.lifecycle import AddonLifecycleStatus, lifecycle_of


def test_lifecycle_of():
    assert lifecycle_of(None) is AddonLifecycleStatus.AVAILABLE
    assert lifecycle_of(AddonState.default()) is AddonLifecycleStatus.AVAILABLE
    assert lifecycle_of(AddonState(installed=True)) is AddonLifecycleStatus.INSTALLED
    assert lifecycle_of(AddonState(installed=True, disabled=True)) is AddonLifecycleStatus.DISABLED
