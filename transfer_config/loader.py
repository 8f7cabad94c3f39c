"""
Catalog Loader (``transfer_config.loader``).

Responsibility
--------------
Loads a workflow catalog YAML file and parses it into the typed
``transfer_config.schema`` dataclasses.  This is internal tooling; the
single public entry point for runtime use is
``transfer_config.get_active_catalog()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for catalog identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from transfer_config.schema import (
    RelayDef,
    StageDef,
    TransitionDef,
    WorkflowCatalogDefinition,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the parsed catalog document."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_stage(data: dict[str, Any]) -> StageDef:
    return StageDef(
        code=data["code"],
        name=data["name"],
        sort_order=int(data["sort_order"]),
        terminal=bool(data.get("terminal", False)),
    )


def parse_transition(data: dict[str, Any]) -> TransitionDef:
    return TransitionDef(
        from_stage=data["from"],
        to_stage=data["to"],
        guard=data["guard"],
        resolution=bool(data.get("resolution", False)),
    )


def parse_relay(data: dict[str, Any]) -> RelayDef:
    return RelayDef(
        stage=data["stage"],
        event=data["event"],
        to_stage=data["to"],
        guard=data["guard"],
    )


def parse_catalog(data: dict[str, Any]) -> WorkflowCatalogDefinition:
    """
    Parse a ``WorkflowCatalogDefinition`` from a dict.

    Raises:
        KeyError: if a required key is missing.
    """
    return WorkflowCatalogDefinition(
        name=data["name"],
        version=int(data.get("version", 1)),
        initial_stage=data["initial_stage"],
        stages=tuple(parse_stage(s) for s in data.get("stages", [])),
        transitions=tuple(parse_transition(t) for t in data.get("transitions", [])),
        relay=tuple(parse_relay(r) for r in data.get("relay", []) or []),
        required_documents=tuple(data.get("required_documents", []) or []),
        checksum=compute_checksum(data),
    )


def load_catalog(path: Path) -> WorkflowCatalogDefinition:
    """Load and parse a catalog file (no validation)."""
    return parse_catalog(load_yaml_file(path))
