"""
Catalog Validator (``transfer_config.validator``).

Responsibility
--------------
Validates a ``WorkflowCatalogDefinition`` at load time, ensuring
structural integrity before the catalog is compiled and seeded.

Invariants enforced
-------------------
* Stage codes are unique and the initial stage exists.
* Every edge endpoint exists; at most one edge per ``(from, to)``.
* Every guard identifier is a ``GuardName`` member.
* Non-resolution edges form a DAG; every stage is reachable from the
  initial stage; terminal stages have no outbound edges.
* Relay rows reference existing stages and ``DomainEvent`` members, are
  unique per ``(stage, event)``, bind to an existing edge with the same
  guard, and are acyclic per event.

Failure modes
-------------
* Validation errors (``CatalogValidationResult.errors``)  -> the catalog
  MUST NOT be compiled.
* Warnings  -> the catalog may be compiled but should be reviewed.
"""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass, field

from transfer_config.schema import WorkflowCatalogDefinition
from transfer_kernel.domain.relay import DomainEvent
from transfer_kernel.domain.workflow import GuardName


@dataclass
class CatalogValidationResult:
    """
    Result of catalog validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_catalog(catalog: WorkflowCatalogDefinition) -> CatalogValidationResult:
    """Run every structural check and collect all problems."""
    result = CatalogValidationResult()
    _validate_stages(catalog, result)
    _validate_transitions(catalog, result)
    _validate_forward_dag(catalog, result)
    _validate_reachability(catalog, result)
    _validate_relay(catalog, result)
    _validate_required_documents(catalog, result)
    return result


def _validate_stages(catalog: WorkflowCatalogDefinition, result: CatalogValidationResult) -> None:
    seen: set[str] = set()
    for stage in catalog.stages:
        if stage.code in seen:
            result.add_error(f"Duplicate stage code: {stage.code}")
        seen.add(stage.code)
    if not catalog.stages:
        result.add_error("Catalog declares no stages")
    if catalog.initial_stage not in seen:
        result.add_error(f"Initial stage {catalog.initial_stage} is not a declared stage")

    orders = [s.sort_order for s in catalog.stages]
    if len(set(orders)) != len(orders):
        result.add_warning("Stage sort_order values are not unique")


def _validate_transitions(catalog: WorkflowCatalogDefinition, result: CatalogValidationResult) -> None:
    codes = {s.code for s in catalog.stages}
    terminal = {s.code for s in catalog.stages if s.terminal}
    pairs: set[tuple[str, str]] = set()

    for t in catalog.transitions:
        label = f"{t.from_stage} -> {t.to_stage}"
        if t.from_stage not in codes:
            result.add_error(f"Transition {label}: unknown source stage {t.from_stage}")
        if t.to_stage not in codes:
            result.add_error(f"Transition {label}: unknown target stage {t.to_stage}")
        if t.from_stage == t.to_stage:
            result.add_error(f"Transition {label}: self-loop")
        if GuardName.parse(t.guard) is None:
            result.add_error(f"Transition {label}: unknown guard {t.guard}")
        if (t.from_stage, t.to_stage) in pairs:
            result.add_error(f"Duplicate transition {label}")
        pairs.add((t.from_stage, t.to_stage))
        if t.from_stage in terminal:
            result.add_error(f"Transition {label}: terminal stage {t.from_stage} has an outbound edge")


def _find_cycle(adjacency: dict[str, list[str]]) -> list[str] | None:
    """Return one cycle as a list of nodes, or None if the graph is acyclic."""
    white, grey, black = 0, 1, 2
    colour: dict[str, int] = defaultdict(int)
    parent: dict[str, str] = {}

    for root in sorted(adjacency):
        if colour[root] != white:
            continue
        stack = [(root, iter(adjacency.get(root, ())))]
        colour[root] = grey
        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                colour[node] = black
                stack.pop()
                continue
            if colour[child] == grey:
                cycle = [child, node]
                while cycle[-1] != child:
                    cycle.append(parent[cycle[-1]])
                return list(reversed(cycle))
            if colour[child] == white:
                parent[child] = node
                colour[child] = grey
                stack.append((child, iter(adjacency.get(child, ()))))
    return None


def _validate_forward_dag(catalog: WorkflowCatalogDefinition, result: CatalogValidationResult) -> None:
    adjacency: dict[str, list[str]] = defaultdict(list)
    for t in catalog.transitions:
        if not t.resolution:
            adjacency[t.from_stage].append(t.to_stage)
    cycle = _find_cycle(adjacency)
    if cycle:
        result.add_error(
            "Forward transitions contain a cycle: " + " -> ".join(cycle)
        )


def _validate_reachability(catalog: WorkflowCatalogDefinition, result: CatalogValidationResult) -> None:
    adjacency: dict[str, list[str]] = defaultdict(list)
    for t in catalog.transitions:
        adjacency[t.from_stage].append(t.to_stage)

    seen = {catalog.initial_stage}
    queue = deque([catalog.initial_stage])
    while queue:
        node = queue.popleft()
        for nxt in adjacency.get(node, ()):
            if nxt not in seen:
                seen.add(nxt)
                queue.append(nxt)

    for stage in catalog.stages:
        if stage.code not in seen:
            result.add_error(f"Stage {stage.code} is unreachable from {catalog.initial_stage}")
        elif not stage.terminal and not adjacency.get(stage.code):
            result.add_warning(f"Non-terminal stage {stage.code} has no outbound transitions")


def _validate_relay(catalog: WorkflowCatalogDefinition, result: CatalogValidationResult) -> None:
    codes = {s.code for s in catalog.stages}
    edges = {(t.from_stage, t.to_stage): t.guard for t in catalog.transitions}
    keys: set[tuple[str, str]] = set()
    per_event: dict[str, dict[str, list[str]]] = defaultdict(lambda: defaultdict(list))

    valid_events = {e.value for e in DomainEvent}

    for r in catalog.relay:
        label = f"Relay ({r.stage}, {r.event})"
        if r.event not in valid_events:
            result.add_error(f"{label}: unknown event {r.event}")
        if r.stage not in codes:
            result.add_error(f"{label}: unknown stage {r.stage}")
        if r.to_stage not in codes:
            result.add_error(f"{label}: unknown target stage {r.to_stage}")
        if GuardName.parse(r.guard) is None:
            result.add_error(f"{label}: unknown guard {r.guard}")
        if (r.stage, r.event) in keys:
            result.add_error(f"Duplicate relay entry {label}")
        keys.add((r.stage, r.event))

        edge_guard = edges.get((r.stage, r.to_stage))
        if edge_guard is None:
            result.add_error(f"{label}: no transition {r.stage} -> {r.to_stage}")
        elif edge_guard != r.guard:
            result.add_error(
                f"{label}: guard {r.guard} does not match transition guard {edge_guard}"
            )
        per_event[r.event][r.stage].append(r.to_stage)

    for event_name, adjacency in sorted(per_event.items()):
        cycle = _find_cycle(adjacency)
        if cycle:
            result.add_error(
                f"Relay for {event_name} contains a cycle: " + " -> ".join(cycle)
            )


def _validate_required_documents(catalog: WorkflowCatalogDefinition, result: CatalogValidationResult) -> None:
    docs = catalog.required_documents
    if len(set(docs)) != len(docs):
        result.add_error("Duplicate entries in required_documents")
    if not docs:
        result.add_warning("No required documents declared; intake guard will always admit")
