"""
todolanes configuration.

Loaded from todolanes.yaml (or $TODOLANES_CONFIG), then overridden by
environment variables:

    TODOLANES_BACKEND      local | firebase
    TODOLANES_DB           SQLite path for the local backend
    FIREBASE_API_KEY       Web API key of the Firebase project
    FIREBASE_PROJECT_ID    Firestore project id
    TODOLANES_SECRET_KEY   Flask session signing key
"""
import logging
import os
import secrets
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional, Tuple

import yaml

from .backend import AuthProvider, DocumentStore

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "todolanes.yaml"
BACKENDS = ("local", "firebase")

ENV_OVERRIDES = {
    "TODOLANES_BACKEND": "backend",
    "TODOLANES_DB": "db_path",
    "FIREBASE_API_KEY": "firebase_api_key",
    "FIREBASE_PROJECT_ID": "firebase_project_id",
    "TODOLANES_SECRET_KEY": "secret_key",
}


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class Config:
    """Runtime configuration."""

    backend: str = "local"

    # Local backend
    db_path: str = "~/.local/share/todolanes/todolanes.db"

    # Firebase backend
    firebase_api_key: str = ""
    firebase_project_id: str = ""
    request_timeout: Optional[float] = None  # None = wait for the collaborator

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    max_clients: int = 500  # browser sessions kept in memory; least recently used go first
    secret_key: str = ""
    log_level: str = "INFO"

    def resolve(self) -> "Config":
        """Expand ~ and fill a throwaway secret key if none is configured."""
        self.backend = self.backend.strip().lower()
        self.db_path = str(Path(self.db_path).expanduser())
        if not self.secret_key:
            self.secret_key = secrets.token_hex(32)
            logger.warning("No secret_key configured; sessions won't survive a restart")
        return self

    def validate(self) -> None:
        if self.backend not in BACKENDS:
            raise ConfigError(
                f"Unknown backend '{self.backend}'. Available: {', '.join(BACKENDS)}"
            )
        if int(self.max_clients) < 1:
            raise ConfigError(f"max_clients must be at least 1, got {self.max_clients}")
        if self.backend == "firebase":
            missing = [
                name for name in ("firebase_api_key", "firebase_project_id")
                if not getattr(self, name)
            ]
            if missing:
                raise ConfigError(
                    f"Firebase backend needs {', '.join(missing)}.\n"
                    f"Set them in todolanes.yaml or via FIREBASE_API_KEY / FIREBASE_PROJECT_ID."
                )

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load YAML, apply environment overrides, resolve and validate."""
        cfg_path = Path(path or os.environ.get("TODOLANES_CONFIG") or CONFIG_PATH)
        data = {}
        if cfg_path.exists():
            with open(cfg_path) as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path}: expected a mapping at top level")
        elif path:
            raise ConfigError(f"Config file not found: {cfg_path}")

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
        cfg = cls(**{k: v for k, v in data.items() if k in known})

        for env, attr in ENV_OVERRIDES.items():
            value = os.environ.get(env)
            if value:
                setattr(cfg, attr, value)

        cfg.resolve()
        cfg.validate()
        return cfg


def build_backend(cfg: Config) -> Tuple[AuthProvider, DocumentStore]:
    """A fresh auth provider + store pair; one pair per client session."""
    if cfg.backend == "firebase":
        from .firebase import FirebaseAuth, FirestoreStore

        auth = FirebaseAuth(cfg.firebase_api_key, timeout=cfg.request_timeout)
        store = FirestoreStore(cfg.firebase_project_id, auth, timeout=cfg.request_timeout)
        return auth, store

    from .local import LocalAuth, SQLiteDocumentStore

    auth = LocalAuth(cfg.db_path)
    return auth, SQLiteDocumentStore(cfg.db_path, auth=auth)
