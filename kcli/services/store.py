# kcli/services/store.py
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List

import yaml
from pydantic import ValidationError

from kcli.core.exceptions import ConfigError, EnvironmentNotFoundError, NoActiveEnvironmentError
from kcli.models.environments import Environment

logger = logging.getLogger(__name__)


class EnvironmentStore:
    """
    Named broker environments persisted as one YAML mapping:

        local:
          brokers: localhost:9092
          is_active: true
        staging:
          brokers: kafka-1:9092,kafka-2:9092
          is_active: false

    Exactly one environment is active once any exist. Every write replaces
    the file atomically; a lock serialises writers within the process.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    # -------- reads --------

    def load(self) -> Dict[str, Environment]:
        with self._lock:
            if not self._path.exists():
                return {}
            try:
                raw = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
            except (OSError, yaml.YAMLError) as exc:
                raise ConfigError(f"Failed to read config file {self._path}: {exc}") from exc
            if not isinstance(raw, dict):
                raise ConfigError(f"Failed to parse config file {self._path}: expected a mapping")
            try:
                return {name: Environment(name=name, **(fields or {})) for name, fields in raw.items()}
            except (TypeError, ValidationError) as exc:
                raise ConfigError(f"Failed to parse config file {self._path}: {exc}") from exc

    def list(self) -> List[Environment]:
        return sorted(self.load().values(), key=lambda e: e.name)

    def get(self, name: str) -> Environment:
        envs = self.load()
        if name not in envs:
            raise EnvironmentNotFoundError(name)
        return envs[name]

    def active(self) -> Environment:
        for env in self.list():
            if env.is_active:
                return env
        raise NoActiveEnvironmentError("No active environment found")

    # -------- writes --------

    def upsert(self, env: Environment) -> Environment:
        """Add or replace *env*; the active flag of an existing entry is kept."""
        with self._lock:
            envs = self.load()
            previous = envs.get(env.name)
            is_active = previous.is_active if previous is not None else not any(e.is_active for e in envs.values())
            envs[env.name] = env.model_copy(update={"is_active": is_active})
            self._save(envs)
            return envs[env.name]

    def activate(self, name: str) -> Environment:
        with self._lock:
            envs = self.load()
            if name not in envs:
                raise EnvironmentNotFoundError(name)
            envs = {k: e.model_copy(update={"is_active": k == name}) for k, e in envs.items()}
            self._save(envs)
            logger.info("environment %s activated", name)
            return envs[name]

    def remove(self, name: str) -> None:
        with self._lock:
            envs = self.load()
            if name not in envs:
                raise EnvironmentNotFoundError(name)
            was_active = envs.pop(name).is_active
            if was_active and envs:
                first = sorted(envs)[0]
                envs[first] = envs[first].model_copy(update={"is_active": True})
                logger.info("environment %s is now active", first)
            self._save(envs)

    def _save(self, envs: Dict[str, Environment]) -> None:
        data = {
            name: env.model_dump(exclude={"name"}, exclude_none=True)
            for name, env in sorted(envs.items())
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=".config-", dir=self._path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    yaml.safe_dump(data, f, sort_keys=True, default_flow_style=False)
                os.replace(tmp, self._path)
            except BaseException:
                os.unlink(tmp)
                raise
        except OSError as exc:
            raise ConfigError(f"Failed to write config file {self._path}: {exc}") from exc
