#!/usr/bin/env python3
"""Configuration management for seedbox maintenance.

Application settings come from environment variables (overridable on the
command line); instances and their retention policies come from a YAML
rules file that is validated once, at load, into frozen structures.
"""

import logging
import math
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .constants import DEFAULT_CONFIG_FILE, DEFAULT_GRACE_PERIOD, DEFAULT_POLL_INTERVAL
from .exceptions import ConfigError, InvariantViolation
from .rules import Clause, MatchGate, Policy, RuleSet
from .utils import parse_bool, parse_duration, parse_float, tracker_hostname

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Process-level settings."""
    config_path: str = field(default_factory=lambda: os.environ.get("SEEDBOX_CONFIG", DEFAULT_CONFIG_FILE))
    take_action: bool = field(default_factory=lambda: parse_bool("TAKE_ACTION", False))
    run_once: bool = field(default_factory=lambda: parse_bool("RUN_ONCE", False))
    api_listen: str = field(default_factory=lambda: os.environ.get("API_LISTEN", ""))
    grace_period: float = field(
        default_factory=lambda: parse_float("SHUTDOWN_GRACE_SECONDS", DEFAULT_GRACE_PERIOD, 0)
    )
    debug: bool = field(default_factory=lambda: parse_bool("DEBUG", False))

    @classmethod
    def from_environment(cls) -> "Settings":
        """Create settings from environment variables."""
        return cls()


@dataclass(frozen=True)
class Instance:
    """One seed-box endpoint and the rules that apply to it."""
    url: str
    rules: RuleSet = field(default_factory=RuleSet)
    name: str = ""
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    verify_ssl: bool = True
    poll_interval: int = DEFAULT_POLL_INTERVAL

    def __post_init__(self):
        if not self.url:
            raise ConfigError("instance url must not be empty")
        if not self.name:
            object.__setattr__(self, "name", self.url)
        if self.poll_interval <= 0:
            raise ConfigError(f"{self.name}: poll_interval must be positive")
        if self.poll_interval > threading.TIMEOUT_MAX:
            raise ConfigError(f"{self.name}: poll_interval must not exceed {threading.TIMEOUT_MAX:.0f}s")

    def __str__(self) -> str:
        if self.username:
            suffix = ":***" if self.password else ""
            return f"{self.url} # u:{self.username}{suffix}"
        return self.url


# --- YAML loading -----------------------------------------------------------

class _RulesLoader(yaml.SafeLoader):
    """SafeLoader that refuses duplicate mapping keys."""


def _construct_unique_mapping(loader: _RulesLoader, node: yaml.MappingNode, deep: bool = False) -> dict:
    seen: Dict[Any, int] = {}
    for key_node, _ in node.value:
        key = loader.construct_object(key_node, deep=deep)
        line = key_node.start_mark.line + 1
        try:
            duplicate = key in seen
        except TypeError:
            raise ConfigError(f"unsupported complex key on line {line}; keys must be plain values") from None
        if duplicate:
            raise ConfigError(
                f"duplicate key '{key}' on line {line} (already set on line {seen[key]}); "
                f"use separate clauses to express alternative thresholds"
            )
        seen[key] = line
    return loader.construct_mapping(node, deep=deep)


_RulesLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_unique_mapping)


_INSTANCE_KEYS = frozenset(("name", "url", "username", "password", "password_env",
                            "verify_ssl", "poll_interval", "policies"))
_POLICY_KEYS = frozenset(("name", "match", "clauses", "delete_data"))
_GATE_KEYS = frozenset(("trackers", "min_file_count", "max_file_count"))
_CLAUSE_KEYS = frozenset(("min_ratio", "max_ratio", "min_seeding_time", "max_seeding_time"))


def _mapping(value: Any, where: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{where}: expected a mapping, got {type(value).__name__}")
    return value


def _sequence(value: Any, where: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{where}: expected a list, got {type(value).__name__}")
    return value


def _reject_unknown(raw: dict, allowed: frozenset, where: str) -> None:
    unknown = sorted(str(k) for k in raw if k not in allowed)
    if unknown:
        raise ConfigError(f"{where}: unknown key(s) {', '.join(unknown)}")


def _optional_number(raw: dict, key: str, where: str, integer: bool = False) -> Optional[float]:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{where}: {key} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigError(f"{where}: {key} must be finite, got {value!r}")
    if integer and value != int(value):
        raise ConfigError(f"{where}: {key} must be a whole number, got {value!r}")
    return int(value) if integer else float(value)


def _optional_duration(raw: dict, key: str, where: str) -> Optional[int]:
    value = raw.get(key)
    if value is None:
        return None
    try:
        return parse_duration(value)
    except ValueError as e:
        raise ConfigError(f"{where}: {key}: {e}") from e


def _parse_clause(raw: Any, where: str) -> Clause:
    raw = _mapping(raw, where)
    _reject_unknown(raw, _CLAUSE_KEYS, where)
    try:
        return Clause(
            min_ratio=_optional_number(raw, "min_ratio", where),
            max_ratio=_optional_number(raw, "max_ratio", where),
            min_seeding_seconds=_optional_duration(raw, "min_seeding_time", where),
            max_seeding_seconds=_optional_duration(raw, "max_seeding_time", where),
        )
    except InvariantViolation as e:
        raise InvariantViolation(f"{where}: {e}") from e


def _parse_gate(raw: Any, where: str) -> MatchGate:
    raw = _mapping(raw, where)
    _reject_unknown(raw, _GATE_KEYS, where)
    trackers = []
    for entry in _sequence(raw.get("trackers"), f"{where}.trackers"):
        host = tracker_hostname(str(entry))
        if not host:
            raise ConfigError(f"{where}.trackers: '{entry}' is not a tracker hostname")
        trackers.append(host)
    try:
        return MatchGate(
            trackers=frozenset(trackers),
            min_file_count=_optional_number(raw, "min_file_count", where, integer=True),
            max_file_count=_optional_number(raw, "max_file_count", where, integer=True),
        )
    except InvariantViolation as e:
        raise InvariantViolation(f"{where}: {e}") from e


def _parse_policy(raw: Any, index: int, where: str) -> Policy:
    raw = _mapping(raw, where)
    _reject_unknown(raw, _POLICY_KEYS, where)
    name = str(raw.get("name") or index)
    where = f"{where} ({name})"
    delete_data = raw.get("delete_data", True)
    if not isinstance(delete_data, bool):
        raise ConfigError(f"{where}: delete_data must be true or false")
    clauses = tuple(
        _parse_clause(c, f"{where}.clauses[{i}]")
        for i, c in enumerate(_sequence(raw.get("clauses"), f"{where}.clauses"))
    )
    try:
        return Policy(
            name=name,
            gate=_parse_gate(raw.get("match"), f"{where}.match"),
            clauses=clauses,
            delete_data=delete_data,
        )
    except InvariantViolation as e:
        raise InvariantViolation(f"{where}: {e}") from e


def _parse_instance(raw: Any, index: int) -> Instance:
    where = f"instances[{index}]"
    raw = _mapping(raw, where)
    _reject_unknown(raw, _INSTANCE_KEYS, where)
    url = raw.get("url")
    if not isinstance(url, str) or not url.strip():
        raise ConfigError(f"{where}: url is required")

    password = raw.get("password")
    password_env = raw.get("password_env")
    if password_env:
        if password is not None:
            raise ConfigError(f"{where}: set either password or password_env, not both")
        password = os.environ.get(str(password_env))
        if password is None:
            raise ConfigError(f"{where}: environment variable {password_env} is not set")

    policies = [
        _parse_policy(p, i, f"{where}.policies[{i}]")
        for i, p in enumerate(_sequence(raw.get("policies"), f"{where}.policies"))
    ]
    try:
        rules = RuleSet(policies=tuple(policies))
    except InvariantViolation as e:
        raise InvariantViolation(f"{where}: {e}") from e

    interval = _optional_duration(raw, "poll_interval", where)
    verify_ssl = raw.get("verify_ssl", True)
    if not isinstance(verify_ssl, bool):
        raise ConfigError(f"{where}: verify_ssl must be true or false")

    return Instance(
        url=url.strip(),
        rules=rules,
        name=str(raw.get("name") or ""),
        username=raw.get("username"),
        password=password,
        verify_ssl=verify_ssl,
        poll_interval=DEFAULT_POLL_INTERVAL if interval is None else interval,
    )


def parse_config(text: str, source: str = "<string>") -> List[Instance]:
    """
    Parse and validate a YAML rules document.

    Args:
        text: YAML document
        source: Name used in error messages

    Returns:
        Validated instances in declaration order

    Raises:
        ConfigError: If the document is invalid
    """
    try:
        raw = yaml.load(text, Loader=_RulesLoader)
    except yaml.YAMLError as e:
        raise ConfigError(f"{source}: invalid YAML: {e}") from e

    raw = _mapping(raw, source)
    _reject_unknown(raw, frozenset(("instances",)), source)
    instances = [_parse_instance(item, i) for i, item in enumerate(_sequence(raw.get("instances"), "instances"))]
    if not instances:
        raise ConfigError(f"{source}: no instances configured")

    names = [inst.name for inst in instances]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigError(f"{source}: duplicate instance name(s) {', '.join(duplicates)}")
    return instances


def load_config(path: str) -> List[Instance]:
    """
    Load and validate the rules file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated instances in declaration order

    Raises:
        ConfigError: If the file cannot be read or is invalid
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    instances = parse_config(text, source=path)
    logger.debug(f"Loaded {len(instances)} instance(s) from {path}")
    return instances


def parse_listen_address(value: str) -> Tuple[str, int]:
    """
    Split a ``host:port`` listen address.

    Raises:
        ConfigError: If the address is malformed
    """
    host, sep, port = value.rpartition(":")
    if not sep or not port.isdigit() or not 0 < int(port) < 65536:
        raise ConfigError(f"invalid listen address '{value}', expected HOST:PORT")
    return host.strip("[]") or "0.0.0.0", int(port)
