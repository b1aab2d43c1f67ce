from __future__ import annotations
import json
import os
import pathlib
from typing import Any, Protocol
from chatbridge.observability.logging import get_logger

log = get_logger("credentials")

class CredentialStore(Protocol):
    def load(self) -> dict[str, Any] | None: ...

    def save(self, creds: dict[str, Any]) -> None: ...

    def clear(self) -> None: ...

class FileCredentialStore:
    """Auth material as a JSON file inside `auth_dir`."""

    def __init__(self, auth_dir: str, filename: str = "creds.json"):
        self.path = pathlib.Path(auth_dir) / filename

    def load(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            log.warning("credentials_corrupt", path=str(self.path))
            return None

    def save(self, creds: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(creds), encoding="utf-8")
        os.replace(tmp, self.path)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            log.info("credentials_cleared", path=str(self.path))

class MemoryCredentialStore:
    def __init__(self, creds: dict[str, Any] | None = None):
        self.creds = creds

    def load(self) -> dict[str, Any] | None:
        return self.creds

    def save(self, creds: dict[str, Any]) -> None:
        self.creds = dict(creds)

    def clear(self) -> None:
        self.creds = None
