"""In-memory dependency graph over one workspace."""

from __future__ import annotations

from collections.abc import Iterable

import networkx as nx

from tagr.addresses import Address, SubtaskRef, TaskRef, address_key
from tagr.errors import MalformedWorkspaceError, TaskNotFoundError
from tagr.models import Subtask, Task, Workspace


class DependencyGraph:
    """Address index plus a DiGraph view of one workspace's dependency edges.

    Edges point from a node to each entry of its ``dependencies`` list. Only
    edges whose target exists are in the DiGraph; dangling entries stay
    visible through :meth:`dependencies_of`. Mutating methods edit the
    workspace's task objects in place and rebuild the view.
    """

    def __init__(self, ws: Workspace):
        self.ws = ws
        self._index: dict[Address, Task | Subtask] = {}
        self.G = nx.DiGraph()
        self.rebuild()

    def rebuild(self) -> None:
        index: dict[Address, Task | Subtask] = {}
        for task in self.ws.tasks:
            ref = TaskRef(task.id)
            if ref in index:
                raise MalformedWorkspaceError(f"Duplicate task id {task.id}", address=str(ref))
            index[ref] = task
            for sub in task.subtasks:
                sref = SubtaskRef(task.id, sub.id)
                if sref in index:
                    raise MalformedWorkspaceError(f"Duplicate subtask id {sref}", address=str(sref))
                index[sref] = sub

        G = nx.DiGraph()
        G.add_nodes_from(index)
        for addr, node in index.items():
            for dep in node.dependencies:
                if dep in index:
                    G.add_edge(addr, dep)
        self._index = index
        self.G = G

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def exists(self, addr: Address) -> bool:
        return addr in self._index

    def node(self, addr: Address) -> Task | Subtask:
        try:
            return self._index[addr]
        except KeyError:
            raise TaskNotFoundError(f"Task {addr} not found", address=str(addr)) from None

    def nodes(self) -> list[Address]:
        return sorted(self._index, key=address_key)

    def has_edge(self, frm: Address, to: Address) -> bool:
        return frm in self._index and to in self._index[frm].dependencies

    def dependencies_of(self, addr: Address) -> list[Address]:
        return list(self.node(addr).dependencies)

    def dependents_of(self, addr: Address) -> list[Address]:
        if addr not in self.G:
            return []
        return sorted(self.G.predecessors(addr), key=address_key)

    def is_acyclic(self) -> bool:
        return nx.is_directed_acyclic_graph(self.G)

    def would_create_cycle(self, frm: Address, to: Address) -> bool:
        """True if adding the edge frm -> to closes a cycle."""
        if frm == to:
            return True
        if frm not in self.G or to not in self.G:
            return False
        return nx.has_path(self.G, to, frm)

    def cycles(self) -> list[list[Address]]:
        """Every elementary cycle, each listed in edge order from its lowest address.

        Cycles are sorted by their address sequence, so the result is
        deterministic. Self edges come back as one-node cycles.
        """
        found = []
        for cycle in nx.simple_cycles(self.G):
            start = cycle.index(min(cycle, key=address_key))
            found.append(cycle[start:] + cycle[:start])
        found.sort(key=lambda c: [address_key(a) for a in c])
        return found

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def rewrite_address(self, old: Address, new: Address) -> int:
        """Replace *old* with *new* in every dependency list; returns edges touched.

        When *new* is already present the rewritten entry is dropped instead
        of creating a second edge.
        """
        touched = 0
        for node in self._index.values():
            if old not in node.dependencies:
                continue
            rewritten: list[Address] = []
            for dep in node.dependencies:
                if dep == old:
                    touched += 1
                    dep = new
                if dep == new and new in rewritten:
                    continue
                rewritten.append(dep)
            node.dependencies = rewritten
        self.rebuild()
        return touched

    def remove_edge(self, frm: Address, to: Address) -> None:
        node = self.node(frm)
        node.dependencies = [d for d in node.dependencies if d != to]
        if self.G.has_edge(frm, to):
            self.G.remove_edge(frm, to)

    def strip_references(self, targets: Iterable[Address]) -> list[tuple[Address, Address]]:
        """Remove every edge pointing at one of *targets*; returns the removed edges."""
        targets = set(targets)
        removed: list[tuple[Address, Address]] = []
        for addr in self.nodes():
            node = self._index[addr]
            kept = []
            for dep in node.dependencies:
                if dep in targets:
                    removed.append((addr, dep))
                else:
                    kept.append(dep)
            node.dependencies = kept
        self.rebuild()
        return removed

    def remove_address(self, addr: Address) -> list[Address]:
        """Delete a node (a task takes its subtasks along) and strip edges to it."""
        node = self.node(addr)
        if isinstance(addr, TaskRef):
            removed = [addr] + [SubtaskRef(addr.id, s.id) for s in node.subtasks]
            self.ws.tasks = [t for t in self.ws.tasks if t.id != addr.id]
        else:
            removed = [addr]
            parent = self._index[addr.parent]
            parent.subtasks = [s for s in parent.subtasks if s.id != addr.sub_id]
        self.rebuild()
        self.strip_references(removed)
        return removed
