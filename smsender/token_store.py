from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

from cryptography.fernet import Fernet, InvalidToken

from .config import MACHINE_KEY_PATH, TOKEN_PATH, USER_KEY_PATH


log = logging.getLogger(__name__)


class ProtectionScope(Enum):
    CURRENT_USER = "CurrentUser"
    LOCAL_MACHINE = "LocalMachine"


# The blob does not record its scope; load tries these in order.
LOAD_ORDER: Tuple[ProtectionScope, ...] = (ProtectionScope.CURRENT_USER, ProtectionScope.LOCAL_MACHINE)

_KEY_FILE_MODES = {
    ProtectionScope.CURRENT_USER: 0o600,
    ProtectionScope.LOCAL_MACHINE: 0o644,
}


class StoreError(Exception):
    """Raised when the token file or a scope key cannot be read or written."""


class TokenNotFoundError(StoreError):
    """No token has been saved yet."""


class DecryptError(StoreError):
    """The saved token cannot be decrypted under any protection scope."""


class TokenStore:
    """Encrypted single-token store.

    The token is encrypted with Fernet under the key of the chosen protection scope
    and written to one file. Each scope owns a key file:

      CURRENT_USER   readable by the owning account only (0600)
      LOCAL_MACHINE  readable by every account on the machine (0644)

    Keys are created on first save, never on load.
    """

    def __init__(
        self,
        file_path: Optional[Path] = None,
        key_paths: Optional[Dict[ProtectionScope, Path]] = None,
    ) -> None:
        self._path: Path = Path(file_path or TOKEN_PATH)
        self._key_paths: Dict[ProtectionScope, Path] = {
            ProtectionScope.CURRENT_USER: USER_KEY_PATH,
            ProtectionScope.LOCAL_MACHINE: MACHINE_KEY_PATH,
        }
        if key_paths:
            self._key_paths.update({scope: Path(p) for scope, p in key_paths.items()})

    @property
    def path(self) -> Path:
        return self._path

    def key_path(self, scope: ProtectionScope) -> Path:
        return self._key_paths[scope]

    def _read_key(self, scope: ProtectionScope) -> Optional[bytes]:
        path = self._key_paths[scope]
        try:
            return path.read_bytes().strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            # Unreadable key (e.g. another account's user key): this scope cannot decrypt
            log.debug("Cannot read %s key %s: %s", scope.value, path, e)
            return None

    def _create_key(self, scope: ProtectionScope) -> bytes:
        path = self._key_paths[scope]
        key = Fernet.generate_key()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create {scope.value} key at {path}: {e}") from e
        try:
            fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, _KEY_FILE_MODES[scope])
            with os.fdopen(fd, "wb") as f:
                f.write(key)
        except FileExistsError:
            # Created concurrently by another process; use theirs
            existing = self._read_key(scope)
            if existing is None:
                raise StoreError(f"Cannot read {scope.value} key at {path}")
            return existing
        except OSError as e:
            raise StoreError(f"Cannot create {scope.value} key at {path}: {e}") from e
        log.info("Created %s key at %s", scope.value, path)
        return key

    def save(self, token: str, scope: ProtectionScope = ProtectionScope.CURRENT_USER) -> None:
        """Encrypt `token` under `scope` and fully replace the token file."""
        key = self._read_key(scope) or self._create_key(scope)
        try:
            blob = Fernet(key).encrypt(token.encode("utf-8"))
        except ValueError as e:
            raise StoreError(f"Invalid {scope.value} key at {self._key_paths[scope]}: {e}") from e
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_bytes(blob)
        except OSError as e:
            raise StoreError(f"Cannot write token file {self._path}: {e}") from e
        log.info("Token saved to %s (scope=%s)", self._path, scope.value)

    def load(self) -> str:
        """Return the saved token, trying each scope of LOAD_ORDER."""
        try:
            blob = self._path.read_bytes()
        except FileNotFoundError as e:
            raise TokenNotFoundError(f"No token saved at {self._path}") from e
        except OSError as e:
            raise StoreError(f"Cannot read token file {self._path}: {e}") from e

        for scope in LOAD_ORDER:
            key = self._read_key(scope)
            if key is None:
                continue
            try:
                data = Fernet(key).decrypt(blob)
                token = data.decode("utf-8")
            except (InvalidToken, ValueError) as e:
                # ValueError covers a malformed key file and non-UTF-8 plaintext
                log.debug("Token does not decrypt under %s: %s", scope.value, type(e).__name__)
                continue
            log.info("Token loaded from %s (scope=%s)", self._path, scope.value)
            return token
        raise DecryptError(f"Token at {self._path} cannot be decrypted under any scope")
