from __future__ import annotations

import pytest

from smsender.token_store import ProtectionScope, TokenStore


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Point every persisted path at tmp_path so tests never touch real config."""
    monkeypatch.setenv("SMSENDER_TOKEN_FILE", str(tmp_path / "token.dat"))
    monkeypatch.setenv("SMSENDER_USER_KEY_FILE", str(tmp_path / "user" / "user.key"))
    monkeypatch.setenv("SMSENDER_MACHINE_KEY_FILE", str(tmp_path / "machine" / "machine.key"))
    monkeypatch.setenv("SMSENDER_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("SMSENDER_API_URL", raising=False)
    monkeypatch.delenv("SMSENDER_TIMEOUT", raising=False)
    monkeypatch.delenv("SMSENDER_STRICT_ARGS", raising=False)
    return tmp_path


@pytest.fixture
def store(tmp_path) -> TokenStore:
    return TokenStore(
        tmp_path / "token.dat",
        key_paths={
            ProtectionScope.CURRENT_USER: tmp_path / "user" / "user.key",
            ProtectionScope.LOCAL_MACHINE: tmp_path / "machine" / "machine.key",
        },
    )
