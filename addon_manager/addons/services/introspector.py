"""Loader introspection: query the bootstrap loader library for versions."""

from __future__ import annotations

import ctypes
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Protocol, Tuple

from ..domain.errors import LoaderUnavailableError
from ..domain.version import VersionInfo

logger = logging.getLogger("addon_manager.addons.introspector")

LOADER_NAME = "GW2Load"
GET_LOADER_VERSION = "GW2Load_GetLoaderVersion"
GET_ADDONS_IN_DIRECTORY = "GW2Load_GetAddonsInDirectory"


class LoaderIntrospector(Protocol):
    def get_loader_version(self) -> VersionInfo: ...

    def get_addons_in_directory(self, directory: str) -> List[Tuple[str, VersionInfo]]: ...

    def close(self) -> None: ...

    def __enter__(self) -> "LoaderIntrospector": ...

    def __exit__(self, *exc) -> None: ...


# ----------------------------
# Native ABI (4-byte packed, cdecl)
# ----------------------------

class LoaderVersionStruct(ctypes.Structure):
    _pack_ = 4
    _layout_ = "ms"
    _fields_ = [
        ("description_version", ctypes.c_uint32),
        ("major", ctypes.c_uint32),
        ("minor", ctypes.c_uint32),
        ("patch", ctypes.c_uint32),
    ]


class AddonDescriptionStruct(ctypes.Structure):
    _pack_ = 4
    _layout_ = "ms"
    _fields_ = [
        ("description_version", ctypes.c_uint32),
        ("major", ctypes.c_uint32),
        ("minor", ctypes.c_uint32),
        ("patch", ctypes.c_uint32),
        ("name", ctypes.c_char_p),
    ]


class EnumeratedAddonStruct(ctypes.Structure):
    _pack_ = 4
    _layout_ = "ms"
    _fields_ = [
        ("path", ctypes.c_char_p),
        ("description", AddonDescriptionStruct),
    ]


def _free_library(handle: int) -> None:
    import _ctypes

    if sys.platform == "win32":
        _ctypes.FreeLibrary(handle)
    else:
        _ctypes.dlclose(handle)


class NativeLoaderIntrospector:
    """
    Loads the loader library and calls its two introspection entry points.

    Returned buffers belong to the library and are never freed here.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        try:
            self._lib = ctypes.CDLL(str(self.path))
        except OSError as e:
            raise LoaderUnavailableError(f"Could not load loader library {self.path}: {e}") from e

        try:
            self._get_loader_version = getattr(self._lib, GET_LOADER_VERSION)
            self._get_addons_in_directory = getattr(self._lib, GET_ADDONS_IN_DIRECTORY)
        except AttributeError as e:
            self.close()
            raise LoaderUnavailableError(f"Loader library {self.path} is missing an entry point: {e}") from e

        self._get_loader_version.argtypes = []
        self._get_loader_version.restype = ctypes.POINTER(LoaderVersionStruct)
        self._get_addons_in_directory.argtypes = [ctypes.c_char_p, ctypes.POINTER(ctypes.c_uint32)]
        self._get_addons_in_directory.restype = ctypes.POINTER(EnumeratedAddonStruct)
        logger.debug("Loaded loader library %s", self.path)

    def get_loader_version(self) -> VersionInfo:
        ptr = self._get_loader_version()
        if not ptr:
            raise LoaderUnavailableError(f"{GET_LOADER_VERSION} returned no version")
        ver = ptr.contents
        return VersionInfo(name=LOADER_NAME, major=ver.major, minor=ver.minor, patch=ver.patch)

    def get_addons_in_directory(self, directory: str) -> List[Tuple[str, VersionInfo]]:
        count = ctypes.c_uint32(0)
        array = self._get_addons_in_directory(os.fsencode(directory), ctypes.byref(count))
        if count.value and not array:
            raise LoaderUnavailableError(f"{GET_ADDONS_IN_DIRECTORY} returned no array for {count.value} add-on(s)")

        result: List[Tuple[str, VersionInfo]] = []
        for i in range(count.value):
            entry = array[i]
            desc = entry.description
            try:
                path = os.fsdecode(entry.path or b"")
                name = (desc.name or b"").decode("utf-8")
            except UnicodeDecodeError as e:
                raise LoaderUnavailableError(f"Malformed add-on description at index {i}: {e}") from e
            result.append((path, VersionInfo(name=name, major=desc.major, minor=desc.minor, patch=desc.patch)))
        return result

    def close(self) -> None:
        lib = getattr(self, "_lib", None)
        if lib is None:
            return
        self._lib = None
        try:
            _free_library(lib._handle)
        except OSError:
            logger.debug("Failed to release loader library %s", self.path, exc_info=True)

    def __enter__(self) -> "NativeLoaderIntrospector":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def open_native_introspector(path: Path) -> Optional[NativeLoaderIntrospector]:
    """Open the loader at path, or None when there is no file there."""
    if not Path(path).is_file():
        return None
    return NativeLoaderIntrospector(path)
