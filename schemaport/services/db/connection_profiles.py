"""
Connection profiles for the target PostgreSQL database.

Profiles are plain, immutable values read from ``connections.profiles`` in
settings.yaml and passed explicitly to every database call. Nothing in the
execution layer keeps a process-wide "current connection".

Pool mode detection
-------------------
Hosted PostgreSQL providers expose the same database through a direct
endpoint and a connection pooler that runs either in *session* mode
(a server connection is held for the whole client session) or in
*transaction* mode (server connections are handed out per transaction, so
session state such as prepared statements and ``SET`` values is lost).
DDL should go through a direct or session-mode connection.
"""
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from schemaport.config import config

PoolMode = Literal["direct", "session", "transaction"]

TRANSACTION_POOLER_PORT = 6543


class ConnectionProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    host: str = "localhost"
    port: int = 5432
    database: str = "postgres"
    user: str = "postgres"
    password: Optional[str] = None
    sslmode: Optional[str] = None
    connect_timeout: Optional[int] = None
    pool_mode: Optional[PoolMode] = None
    options: Dict[str, Any] = {}

    @field_validator("port", mode="before")
    @classmethod
    def _coerce_port(cls, value):
        if value in (None, ""):
            return 5432
        return int(value)

    @property
    def effective_pool_mode(self) -> PoolMode:
        if self.pool_mode:
            return self.pool_mode
        if self.port == TRANSACTION_POOLER_PORT:
            return "transaction"
        if "pooler." in self.host.lower():
            return "session"
        return "direct"

    @property
    def supports_ddl(self) -> bool:
        return self.effective_pool_mode != "transaction"

    def masked(self) -> Dict[str, Any]:
        """Configuration view safe for logs and diagnostics."""
        data = self.model_dump(exclude={"password", "options"})
        data["password"] = "***" if self.password else None
        data["pool_mode"] = self.effective_pool_mode
        return data

    def dsn_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "dbname": self.database,
            "user": self.user,
        }
        if self.password:
            kwargs["password"] = self.password
        if self.sslmode:
            kwargs["sslmode"] = self.sslmode
        if self.connect_timeout:
            kwargs["connect_timeout"] = self.connect_timeout
        kwargs.update(self.options)
        return kwargs

    @classmethod
    def from_config(cls, name: Optional[str] = None, settings: Optional[Dict[str, Any]] = None) -> "ConnectionProfile":
        """Build the profile called *name* (``connections.default`` if omitted)."""
        settings = config if settings is None else settings
        connections = settings.get("connections") or {}
        name = name or connections.get("default")
        if not name:
            raise ValueError("No connection name given and connections.default is not set")
        profiles = connections.get("profiles") or {}
        if name not in profiles:
            raise ValueError(f"Unknown connection profile '{name}'. Known: {', '.join(sorted(profiles)) or 'none'}")

        values = {k: v for k, v in (profiles[name] or {}).items() if v not in (None, "")}
        values.setdefault(
            "connect_timeout", (settings.get("execution") or {}).get("connect_timeout_s")
        )
        return cls(name=name, **values)


def list_profiles(settings: Optional[Dict[str, Any]] = None) -> Dict[str, Dict[str, Any]]:
    """Masked view of every configured profile."""
    settings = config if settings is None else settings
    names = ((settings.get("connections") or {}).get("profiles") or {}).keys()
    return {name: ConnectionProfile.from_config(name, settings).masked() for name in names}
