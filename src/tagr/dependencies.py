"""Dependency validation, repair and single-edge editing."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from tagr.addresses import Address, address_key
from tagr.errors import DependencyError, TaskNotFoundError
from tagr.graph import DependencyGraph
from tagr.models import Workspace


class IssueCode(enum.StrEnum):
    DANGLING = "DANGLING"
    SELF = "SELF"
    DUPLICATE = "DUPLICATE"
    CYCLE = "CYCLE"


@dataclass(frozen=True)
class Issue:
    address: Address
    code: IssueCode
    detail: str

    def to_dict(self) -> dict:
        return {"address": str(self.address), "code": self.code.value, "detail": self.detail}


@dataclass
class ValidationReport:
    issues: list[Issue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    def by_code(self, code: IssueCode) -> list[Issue]:
        return [i for i in self.issues if i.code == code]

    def to_dict(self) -> dict:
        return {"valid": self.is_valid, "issues": [i.to_dict() for i in self.issues]}


@dataclass(frozen=True)
class EdgeChange:
    address: Address
    edge: Address
    reason: IssueCode

    def to_dict(self) -> dict:
        return {"address": str(self.address), "edge": str(self.edge), "reason": self.reason.value}


@dataclass
class ChangeReport:
    removed: list[EdgeChange] = field(default_factory=list)
    collapsed: list[EdgeChange] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.removed or self.collapsed)

    def to_dict(self) -> dict:
        return {
            "removed": [c.to_dict() for c in self.removed],
            "collapsed": [c.to_dict() for c in self.collapsed],
        }


def _format_cycle(cycle: list[Address]) -> str:
    return " -> ".join(str(a) for a in cycle + cycle[:1])


def validate_dependencies(ws: Workspace) -> ValidationReport:
    """Report every dangling, self, duplicate and cyclic edge. Never mutates *ws*."""
    graph = DependencyGraph(ws)
    report = ValidationReport()

    for addr in graph.nodes():
        seen: set[Address] = set()
        reported: set[tuple[IssueCode, Address]] = set()
        for dep in graph.dependencies_of(addr):
            if dep == addr:
                key = (IssueCode.SELF, dep)
                detail = f"{addr} depends on itself"
            elif not graph.exists(dep):
                key = (IssueCode.DANGLING, dep)
                detail = f"{addr} depends on missing task {dep}"
            else:
                key = None
            if key is not None:
                # repeats of an edge that gets removed are not collapsed
                if key not in reported:
                    reported.add(key)
                    report.issues.append(Issue(addr, key[0], detail))
            elif dep in seen and (IssueCode.DUPLICATE, dep) not in reported:
                reported.add((IssueCode.DUPLICATE, dep))
                report.issues.append(Issue(addr, IssueCode.DUPLICATE, f"{addr} lists {dep} more than once"))
            seen.add(dep)

    first_cycle: dict[Address, list[Address]] = {}
    for cycle in graph.cycles():
        if len(cycle) == 1:
            continue  # self edges are reported as SELF
        for addr in cycle:
            first_cycle.setdefault(addr, cycle)
    for addr in sorted(first_cycle, key=address_key):
        report.issues.append(Issue(addr, IssueCode.CYCLE, _format_cycle(first_cycle[addr])))

    return report


def fix_dependencies(ws: Workspace) -> ChangeReport:
    """Remove invalid edges in place and report every change.

    Dangling and self edges are removed, duplicates collapse to their first
    occurrence, then each remaining cycle loses the edge leaving its
    highest-addressed node until the graph is acyclic.
    """
    graph = DependencyGraph(ws)
    report = ChangeReport()

    for addr in graph.nodes():
        node = graph.node(addr)
        kept: list[Address] = []
        for dep in node.dependencies:
            if dep == addr or not graph.exists(dep):
                change = EdgeChange(addr, dep, IssueCode.SELF if dep == addr else IssueCode.DANGLING)
                if change not in report.removed:
                    report.removed.append(change)
            elif dep in kept:
                change = EdgeChange(addr, dep, IssueCode.DUPLICATE)
                if change not in report.collapsed:
                    report.collapsed.append(change)
            else:
                kept.append(dep)
        node.dependencies = kept
    graph.rebuild()

    while True:
        cycles = graph.cycles()
        if not cycles:
            break
        cycle = cycles[0]
        highest = max(cycle, key=address_key)
        successor = cycle[(cycle.index(highest) + 1) % len(cycle)]
        graph.remove_edge(highest, successor)
        report.removed.append(EdgeChange(highest, successor, IssueCode.CYCLE))

    if report.changed:
        ws.touch()
    return report


def add_dependency(ws: Workspace, address: Address, depends_on: Address) -> None:
    graph = DependencyGraph(ws)
    node = graph.node(address)
    if not graph.exists(depends_on):
        raise TaskNotFoundError(f"Dependency target {depends_on} not found", address=str(depends_on))
    if address == depends_on:
        raise DependencyError(f"{address} cannot depend on itself", address=str(address))
    if depends_on in node.dependencies:
        raise DependencyError(
            f"{address} already depends on {depends_on}",
            address=str(address),
            depends_on=str(depends_on),
        )
    if graph.would_create_cycle(address, depends_on):
        raise DependencyError(
            f"Adding {address} -> {depends_on} would create a circular dependency",
            address=str(address),
            depends_on=str(depends_on),
        )
    node.dependencies.append(depends_on)
    ws.touch()


def remove_dependency(ws: Workspace, address: Address, depends_on: Address) -> None:
    graph = DependencyGraph(ws)
    if not graph.has_edge(address, depends_on):
        raise DependencyError(
            f"{address} does not depend on {depends_on}",
            address=str(address),
            depends_on=str(depends_on),
        )
    graph.remove_edge(address, depends_on)
    ws.touch()
