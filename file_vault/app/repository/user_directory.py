from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol


@dataclass
class UserRecord:
    username: str
    password: str


class UserDirectory(Protocol):
    def lookup(self, username: str) -> Optional[UserRecord]: ...

    def update_password(self, username: str, new_password: str) -> None: ...


class InMemoryUserDirectory:
    """Process-local user list. Changes are lost on restart."""

    def __init__(self, users: Iterable[dict]):
        self._users: Dict[str, UserRecord] = {
            u["username"]: UserRecord(username=u["username"], password=u["password"])
            for u in users
        }

    def lookup(self, username: str) -> Optional[UserRecord]:
        return self._users.get(username)

    def update_password(self, username: str, new_password: str) -> None:
        user = self._users.get(username)
        if user is None:
            raise KeyError(username)
        user.password = new_password
