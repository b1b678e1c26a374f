"""In-memory state slot, for tests and for running without a writable data directory."""

from typing import Optional

from expensy.services.storage.interface import AccountStateStorage


class InMemoryAccountStorage(AccountStateStorage):
    """Dict-backed key-value slot."""

    def __init__(self, key: str = "expensy_cards", document: Optional[str] = None):
        self._key = key
        self.slots: dict[str, str] = {}
        self.write_count = 0
        if document is not None:
            self.slots[key] = document

    @property
    def key(self) -> str:
        return self._key

    def read_document(self) -> Optional[str]:
        return self.slots.get(self._key)

    def write_document(self, document: str) -> None:
        self.slots[self._key] = document
        self.write_count += 1

    def preserve_corrupt_document(self, document: Optional[str]) -> Optional[str]:
        if document is None:
            return None
        backup_key = f"{self._key}.corrupt"
        self.slots[backup_key] = document
        return backup_key
