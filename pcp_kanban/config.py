"""
Board client configuration.

Read from a YAML file (default ~/.config/pcp-kanban/config.yaml):

    api:
      base_url: https://pcpbackend-production.up.railway.app
      timeout: 30
      refresh_timeout: 15
    auth:
      credentials_db: ~/.local/share/pcp-kanban/session.db
      expiry_leeway: 5
    audit_log: ~/.local/share/pcp-kanban/audit.jsonl
    fetch_window_days: 30

PCP_API_URL and PCP_CREDENTIALS_DB override the file.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError

CONFIG_PATH = Path("~/.config/pcp-kanban/config.yaml").expanduser()
DATA_DIR = Path("~/.local/share/pcp-kanban")


@dataclass
class BoardConfig:
    """Runtime configuration for the board client."""

    # Remote API
    base_url: str = "https://pcpbackend-production.up.railway.app"
    timeout: float = 30.0
    refresh_timeout: float = 15.0

    # Session
    credentials_db: str = str(DATA_DIR / "session.db")
    expiry_leeway: int = 5

    # Audit trail of sector moves
    audit_log: str = str(DATA_DIR / "audit.jsonl")

    # Default order fetch window, counted back from today
    fetch_window_days: int = 30

    def resolve_paths(self):
        """Expand ~ in file paths."""
        self.credentials_db = str(Path(self.credentials_db).expanduser())
        self.audit_log = str(Path(self.audit_log).expanduser())

    def apply_env(self, env: Optional[Dict[str, str]] = None):
        environ = os.environ if env is None else env
        if environ.get("PCP_API_URL"):
            self.base_url = environ["PCP_API_URL"]
        if environ.get("PCP_CREDENTIALS_DB"):
            self.credentials_db = environ["PCP_CREDENTIALS_DB"]

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "BoardConfig":
        if not isinstance(raw, dict):
            raise ConfigError("Config root must be a mapping")
        api = raw.get("api") or {}
        auth = raw.get("auth") or {}
        if not isinstance(api, dict) or not isinstance(auth, dict):
            raise ConfigError("'api' and 'auth' sections must be mappings")

        cfg = cls()
        try:
            cfg.base_url = str(api.get("base_url", cfg.base_url))
            cfg.timeout = float(api.get("timeout", cfg.timeout))
            cfg.refresh_timeout = float(api.get("refresh_timeout", cfg.refresh_timeout))
            cfg.credentials_db = str(auth.get("credentials_db", cfg.credentials_db))
            cfg.expiry_leeway = int(auth.get("expiry_leeway", cfg.expiry_leeway))
            cfg.audit_log = str(raw.get("audit_log", cfg.audit_log))
            cfg.fetch_window_days = int(raw.get("fetch_window_days", cfg.fetch_window_days))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid config value: {e}") from e

        if cfg.timeout <= 0 or cfg.refresh_timeout <= 0:
            raise ConfigError("Timeouts must be positive")
        if not cfg.base_url.startswith(("http://", "https://")):
            raise ConfigError(f"api.base_url must be an http(s) URL, got: {cfg.base_url}")
        return cfg

    @classmethod
    def load(cls, path: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> "BoardConfig":
        """Load config from YAML, falling back to defaults when the file is absent."""
        cfg_path = Path(path).expanduser() if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path) as f:
                    raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {cfg_path}: {e}") from e
            cfg = cls.from_dict(raw)
        elif path:
            raise ConfigError(f"Config file not found: {cfg_path}")
        else:
            cfg = cls()
        cfg.apply_env(env)
        cfg.resolve_paths()
        return cfg
