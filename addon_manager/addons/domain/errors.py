from __future__ import annotations


class AddonManagerError(RuntimeError):
    pass


class AddonNotFoundError(AddonManagerError):
    """An expected add-on file (usually the main binary) is missing."""


class AmbiguousResolutionError(AddonManagerError):
    """The add-on's main binary path could not be determined."""


class TransferError(AddonManagerError):
    pass


class ArchiveError(AddonManagerError):
    pass


class LoaderUnavailableError(AddonManagerError):
    """
    The loader library could not be loaded or queried.

    Distinct from a version mismatch, which is the normal update path and
    never raises.
    """


class LoaderNotFoundError(LoaderUnavailableError):
    pass


class AddonCancelledError(AddonManagerError):
    pass


class ConfigurationError(AddonManagerError):
    pass


class CatalogLoadError(AddonManagerError):
    pass
