"""
config.py — YAML configuration for the Agent and TAM processes.

    agent:
      data_dir: ./agent
      supported_versions: [0, 0]
      tam_uri: http://example.com/tam
      installed: []
    tam:
      data_dir: ./tam
      min_version: 0
      max_version: 0
      required_apps: []
      available_apps: null      # null: anything requested can be provided
      host: 127.0.0.1           # teep serve-tam
      port: 8080
      path: /tam
    transport:
      timeout_sec: 5
      verify_tls: true

Environment overrides (applied after the file): TEEP_TAM_URI,
TEEP_AGENT_DATA_DIR, TEEP_TAM_DATA_DIR.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import yaml

from teep_work.lib.teep_message import MAX_VERSION_SPAN


def _version_range(lo, hi, what):
    if lo < 0 or hi < 0:
        raise ValueError(f"{what}: versions must be non-negative, got [{lo}, {hi}]")
    if lo > hi:
        raise ValueError(f"{what}: min version {lo} exceeds max version {hi}")
    if hi - lo >= MAX_VERSION_SPAN:
        raise ValueError(f"{what}: [{lo}, {hi}] spans more than {MAX_VERSION_SPAN} versions")
    return int(lo), int(hi)


@dataclass
class AgentConfig:
    data_dir: str = "agent"
    supported_versions: Tuple[int, int] = (0, 0)
    tam_uri: Optional[str] = None
    installed: List[str] = field(default_factory=list)

    def __post_init__(self):
        lo, hi = self.supported_versions
        self.supported_versions = _version_range(lo, hi, "agent.supported_versions")


@dataclass
class TamConfig:
    data_dir: str = "tam"
    min_version: int = 0
    max_version: int = 0
    required_apps: List[str] = field(default_factory=list)
    available_apps: Optional[List[str]] = None
    host: str = "127.0.0.1"
    port: int = 8080
    path: str = "/tam"

    def __post_init__(self):
        self.min_version, self.max_version = _version_range(
            self.min_version, self.max_version, "tam")


@dataclass
class TransportConfig:
    timeout_sec: float = 5
    verify_tls: bool = True


@dataclass
class Config:
    agent: AgentConfig = field(default_factory=AgentConfig)
    tam: TamConfig = field(default_factory=TamConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)

    @classmethod
    def from_dict(cls, d: dict, environ=None) -> "Config":
        d = d or {}
        if not isinstance(d, dict):
            raise ValueError("configuration must be a mapping")
        env = os.environ if environ is None else environ

        agent = dict(d.get("agent") or {})
        if "supported_versions" in agent:
            versions = agent["supported_versions"]
            if not isinstance(versions, (list, tuple)) or len(versions) != 2:
                raise ValueError("agent.supported_versions must be [min, max]")
            agent["supported_versions"] = tuple(versions)
        tam = dict(d.get("tam") or {})
        transport = dict(d.get("transport") or {})

        if env.get("TEEP_TAM_URI"):
            agent["tam_uri"] = env["TEEP_TAM_URI"]
        if env.get("TEEP_AGENT_DATA_DIR"):
            agent["data_dir"] = env["TEEP_AGENT_DATA_DIR"]
        if env.get("TEEP_TAM_DATA_DIR"):
            tam["data_dir"] = env["TEEP_TAM_DATA_DIR"]

        try:
            return cls(agent=AgentConfig(**agent),
                       tam=TamConfig(**tam),
                       transport=TransportConfig(**transport))
        except TypeError as e:
            raise ValueError(f"unknown configuration key: {e}") from e


def read_yaml(path):
    """Read a configuration file (YAML format)."""
    with open(path, "r") as f:
        return yaml.safe_load(f)


def load_config(path=None, environ=None) -> Config:
    """Load `path` (or defaults when None) and apply environment overrides."""
    return Config.from_dict(read_yaml(path) if path else {}, environ)
