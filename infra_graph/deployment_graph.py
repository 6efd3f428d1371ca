"""Immutable graph of deployment resources and their depends-on references."""
from typing import Iterable, Optional, Protocol, Sequence

from attrs import define, field

from common.errors import (
    CyclicGraph,
    DanglingReference,
    DeploymentError,
    GraphValidationError,
    UnsafeDatabaseExposure,
)
from infra_graph.access_policy import AccessPolicy
from infra_graph.compute import ComputeResource
from infra_graph.credentials import CredentialRecord
from infra_graph.database import DatabaseResource, check_database_exposure
from infra_graph.network import NetworkTopology
from infra_graph.references import ResourceKind, ResourceRef

Edge = tuple[ResourceRef, ResourceRef]


class GraphResource(Protocol):
    logical_id: str

    @property
    def ref(self) -> ResourceRef: ...

    def dependencies(self) -> tuple[ResourceRef, ...]: ...


def _find_cycle(
    resources: Sequence[GraphResource], index: dict[ResourceRef, GraphResource]
) -> Optional[list[ResourceRef]]:
    visiting: list[ResourceRef] = []
    done: set[ResourceRef] = set()

    def visit(ref: ResourceRef) -> Optional[list[ResourceRef]]:
        if ref in done:
            return None
        if ref in visiting:
            return visiting[visiting.index(ref):] + [ref]
        visiting.append(ref)
        for dependency in index[ref].dependencies():
            if dependency in index:
                cycle = visit(dependency)
                if cycle:
                    return cycle
        visiting.pop()
        done.add(ref)
        return None

    for resource in resources:
        cycle = visit(resource.ref)
        if cycle:
            return cycle
    return None


def _check_bindings(
    resource: GraphResource, index: dict[ResourceRef, GraphResource]
) -> list[DeploymentError]:
    """Policy-bound resources must sit in the same network as their policy."""
    errors: list[DeploymentError] = []
    policy = index.get(getattr(resource, "bound_policy", None))
    network = index.get(getattr(resource, "bound_network", None))
    if not isinstance(policy, AccessPolicy) or not isinstance(network, NetworkTopology):
        return errors
    if policy.bound_network != network.ref:
        errors.append(
            DanglingReference(
                f"{resource.ref} uses policy {policy.ref} bound to "
                f"{policy.bound_network}, not to its network {network.ref}"
            )
        )
    elif isinstance(resource, DatabaseResource):
        try:
            check_database_exposure(policy, network, resource.port)
        except UnsafeDatabaseExposure as e:
            errors.append(e)
    return errors


def validate_graph(resources: Sequence[GraphResource]) -> list[DeploymentError]:
    """Return every invariant the resources violate, in a stable order."""
    errors: list[DeploymentError] = []
    index: dict[ResourceRef, GraphResource] = {}
    logical_ids: set[str] = set()
    for resource in resources:
        # logical ids share one namespace in the submitted template
        if resource.logical_id in logical_ids:
            errors.append(
                DanglingReference(
                    f"logical id {resource.logical_id} is declared more than once, "
                    f"so {resource.ref} cannot be resolved unambiguously"
                )
            )
            continue
        logical_ids.add(resource.logical_id)
        index[resource.ref] = resource

    for resource in resources:
        for dependency in resource.dependencies():
            if dependency not in index:
                errors.append(
                    DanglingReference(
                        f"{resource.ref} depends on {dependency}, which is not in this graph"
                    )
                )

    cycle = _find_cycle(list(index.values()), index)
    if cycle:
        errors.append(
            CyclicGraph("dependency cycle: " + " -> ".join(str(ref) for ref in cycle))
        )

    for resource in index.values():
        errors.extend(_check_bindings(resource, index))
    return errors


@define(slots=True, frozen=True)
class DeploymentGraph:
    name: str
    resources: tuple = field(converter=tuple)

    @classmethod
    def assemble(cls, name: str, resources: Iterable[GraphResource]) -> "DeploymentGraph":
        resources = tuple(resources)
        errors = validate_graph(resources)
        if errors:
            raise GraphValidationError(errors)
        return cls(name, resources)

    def __iter__(self):
        return iter(self.resources)

    def __len__(self) -> int:
        return len(self.resources)

    def resolve(self, ref: ResourceRef) -> GraphResource:
        for resource in self.resources:
            if resource.ref == ref:
                return resource
        raise DanglingReference(f"{ref} does not resolve in graph {self.name}")

    def of_kind(self, kind: ResourceKind) -> tuple:
        return tuple(r for r in self.resources if r.ref.kind is kind)

    def _single(self, kind: ResourceKind):
        matches = self.of_kind(kind)
        if len(matches) != 1:
            raise LookupError(f"graph {self.name} holds {len(matches)} {kind.value} resources")
        return matches[0]

    @property
    def network(self) -> NetworkTopology:
        return self._single(ResourceKind.NETWORK)

    @property
    def policy(self) -> AccessPolicy:
        return self._single(ResourceKind.ACCESS_POLICY)

    @property
    def credential(self) -> CredentialRecord:
        return self._single(ResourceKind.SECRET)

    @property
    def database(self) -> DatabaseResource:
        return self._single(ResourceKind.DATABASE)

    @property
    def compute(self) -> ComputeResource:
        return self._single(ResourceKind.COMPUTE)

    def edges(self) -> frozenset[Edge]:
        """(dependent, dependency) pairs."""
        return frozenset(
            (resource.ref, dependency)
            for resource in self.resources
            for dependency in resource.dependencies()
        )

    def topological_order(self) -> tuple[GraphResource, ...]:
        """Dependencies first; ties keep declaration order."""
        ordered: list[GraphResource] = []
        placed: set[ResourceRef] = set()
        pending = list(self.resources)
        while pending:
            ready = [
                r for r in pending if all(dep in placed for dep in r.dependencies())
            ]
            if not ready:
                raise CyclicGraph(
                    "no resource is ready: " + ", ".join(str(r.ref) for r in pending)
                )
            for resource in ready:
                ordered.append(resource)
                placed.add(resource.ref)
            pending = [r for r in pending if r.ref not in placed]
        return tuple(ordered)
