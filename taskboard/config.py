"""Configuration management for the taskboard service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml

from .database import resolve_database_path
from .sessions import DEFAULT_SESSION_TTL

logger = logging.getLogger("taskboard.config")


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


@dataclass(frozen=True)
class RoleSeed:
    """A role definition read from the seed file."""

    name: str
    rank: int

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "RoleSeed":
        """Create a :class:`RoleSeed` from raw dictionary data."""
        required_fields = {"name", "rank"}
        missing = required_fields - data.keys()
        if missing:
            raise ValueError(f"Missing required role fields: {', '.join(sorted(missing))}")

        name = str(data["name"]).strip()
        if not name:
            raise ValueError("Role name must not be empty")

        raw_rank = data["rank"]
        if isinstance(raw_rank, bool):
            raise ValueError(f"Rank for role '{name}' must be an integer")
        try:
            rank = int(raw_rank)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Rank for role '{name}' must be an integer") from exc

        return RoleSeed(name=name, rank=rank)


def load_role_seed(path: Path) -> List[RoleSeed]:
    """Load role definitions from a YAML file."""
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    roles_raw = raw.get("roles") if isinstance(raw, dict) else None
    if not roles_raw:
        raise ValueError("Role seed file must define at least one role under the 'roles' key")

    seeds: Dict[str, RoleSeed] = {}
    for item in roles_raw:
        if not isinstance(item, dict):
            raise ValueError("Each role entry must be a mapping with 'name' and 'rank'")
        seed = RoleSeed.from_dict(item)
        if seed.name in seeds:
            raise ValueError(f"Role '{seed.name}' is defined more than once")
        seeds[seed.name] = seed
    return list(seeds.values())


def resolve_roles_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the role seed file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "roles.yaml").resolve(strict=False)


@dataclass(frozen=True)
class Settings:
    database_path: Path
    roles_path: Path
    session_ttl: timedelta = DEFAULT_SESSION_TTL
    secure_cookies: bool = True

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        ttl = DEFAULT_SESSION_TTL
        raw_ttl = env.get("TASKBOARD_SESSION_TTL_DAYS")
        if raw_ttl:
            try:
                days = float(raw_ttl)
            except ValueError as exc:
                raise ValueError("TASKBOARD_SESSION_TTL_DAYS must be a number") from exc
            if days <= 0:
                raise ValueError("TASKBOARD_SESSION_TTL_DAYS must be positive")
            ttl = timedelta(days=days)

        secure = _env_flag(env.get("TASKBOARD_SESSION_SECURE"), True)
        if not secure:
            logger.warning(
                "Session cookies are not marked as secure. Only disable secure cookies for"
                " local development."
            )

        return Settings(
            database_path=resolve_database_path(env.get("TASKBOARD_DB_PATH")),
            roles_path=resolve_roles_path(env.get("TASKBOARD_ROLES_FILE")),
            session_ttl=ttl,
            secure_cookies=secure,
        )


__all__ = ["RoleSeed", "Settings", "load_role_seed", "resolve_roles_path"]
