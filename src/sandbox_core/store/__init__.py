from sandbox_core.store.locking import RegistryLock
from sandbox_core.store.registry import NamedSession, RegistryEntry, RegistryStore
from sandbox_core.store.state_file import JsonStateFile, write_atomic_text

__all__ = [
    "JsonStateFile",
    "NamedSession",
    "RegistryEntry",
    "RegistryLock",
    "RegistryStore",
    "write_atomic_text",
]
