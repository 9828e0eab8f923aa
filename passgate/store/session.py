from passgate.core.config import settings
from passgate.store.whitelist import WhitelistStore

_store: WhitelistStore | None = None


def get_store() -> WhitelistStore:
    global _store
    if _store is None:
        _store = WhitelistStore(settings.whitelist_path)
    return _store


def reset_store() -> None:
    """Forget the process-wide store; the next get_store() reloads from disk."""
    global _store
    _store = None
