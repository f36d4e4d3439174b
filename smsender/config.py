from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict
import tempfile

from dotenv import load_dotenv
from platformdirs import site_config_dir, user_config_dir, user_log_dir


"""Centralized config paths and helpers with package-local preferred storage.

Primary location: <package_dir>/config
Fallback: User config dir when package dir is not writable.
The encrypted token lives in the config dir; the per-scope encryption keys do not.
"""

APP_NAME = "smsender"

# Package root (directory that contains this module)
PACKAGE_ROOT = Path(__file__).resolve().parent
PACKAGE_CONFIG_DIR = PACKAGE_ROOT / "config"

# User-scoped and machine-scoped dirs
USER_CONFIG_DIR = Path(user_config_dir(APP_NAME, appauthor=False))
SITE_CONFIG_DIR = Path(site_config_dir(APP_NAME, appauthor=False))
LOG_DIR = Path(user_log_dir(APP_NAME, appauthor=False))

DEFAULT_API_URL = "https://api.smsapi.pl/"
DEFAULT_TIMEOUT = 30.0
DEFAULT_LOG_KEEP = 5


def _dir_is_writable(p: Path) -> bool:
    try:
        p.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=str(p), delete=True) as _:
            pass
        return True
    except OSError:
        return False


def get_config_dir() -> Path:
    """Return the preferred config directory.

    Use package-local config dir if writable; otherwise fallback to user config dir.
    """
    if _dir_is_writable(PACKAGE_CONFIG_DIR):
        return PACKAGE_CONFIG_DIR
    return USER_CONFIG_DIR


CONFIG_DIR = get_config_dir()
DOTENV_PATH = CONFIG_DIR / ".env"
TOKEN_PATH = CONFIG_DIR / "token.dat"
USER_KEY_PATH = USER_CONFIG_DIR / "user.key"
MACHINE_KEY_PATH = SITE_CONFIG_DIR / "machine.key"


def load_env() -> None:
    """Load environment variables from the project's .env file if present.

    We do not override existing environment variables to respect the caller's environment.
    """
    # override=False ensures OS env vars take precedence over .env values
    load_dotenv(DOTENV_PATH, override=False)


def _env_path(name: str, default: Path) -> Path:
    value = os.getenv(name, "").strip()
    return Path(value).expanduser() if value else default


def _env_float(name: str, default: float) -> float:
    try:
        value = float(os.getenv(name, ""))
    except ValueError:
        return default
    return value if value > 0 else default


def _env_int(name: str, default: int) -> int:
    try:
        value = int(os.getenv(name, ""))
    except ValueError:
        return default
    return value if value >= 0 else default


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    token_path: Path
    user_key_path: Path
    machine_key_path: Path
    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT
    log_dir: Path = LOG_DIR
    log_keep: int = DEFAULT_LOG_KEEP
    strict_args: bool = False

    def as_dict(self) -> Dict[str, object]:
        return {
            "credential_file": self.token_path,
            "user_scope_file": self.user_key_path,
            "machine_scope_file": self.machine_key_path,
            "api_url": self.api_url,
            "timeout": self.timeout,
            "log_dir": self.log_dir,
            "strict_args": self.strict_args,
        }


def load_settings() -> Settings:
    """Build the run settings from the environment (and the .env loaded by load_env)."""
    return Settings(
        token_path=_env_path("SMSENDER_TOKEN_FILE", TOKEN_PATH),
        user_key_path=_env_path("SMSENDER_USER_KEY_FILE", USER_KEY_PATH),
        machine_key_path=_env_path("SMSENDER_MACHINE_KEY_FILE", MACHINE_KEY_PATH),
        api_url=os.getenv("SMSENDER_API_URL", "").strip() or DEFAULT_API_URL,
        timeout=_env_float("SMSENDER_TIMEOUT", DEFAULT_TIMEOUT),
        log_dir=_env_path("SMSENDER_LOG_DIR", LOG_DIR),
        log_keep=_env_int("SMSENDER_LOG_KEEP", DEFAULT_LOG_KEEP),
        strict_args=_env_flag("SMSENDER_STRICT_ARGS"),
    )
