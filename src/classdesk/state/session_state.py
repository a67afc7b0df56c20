from dataclasses import dataclass
from typing import Optional

from classdesk.services.persistence import KeyValueStore, PersistenceError


@dataclass
class SessionState:
    token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def load(self, kv: KeyValueStore, key: str) -> None:
        try:
            self.token = kv.get(key) or None
        except PersistenceError:
            self.token = None

    def save(self, kv: KeyValueStore, key: str) -> None:
        if self.token:
            kv.set(key, self.token)

    def clear(self, kv: KeyValueStore, key: str) -> None:
        self.token = None
        kv.remove(key)
