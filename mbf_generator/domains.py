from dataclasses import dataclass, field
from functools import cached_property

import numpy as np
from numpy.typing import NDArray


def _as_index_array(indices) -> NDArray:
    """Sorted, unique, contiguous integer index array"""
    arr = np.unique(np.asarray(indices, dtype=np.int64).ravel())
    return np.ascontiguousarray(arr)


@dataclass(frozen=True, eq=False)
class Domain:
    """
    A sub-partition of the global unknowns, typically one array element
    or one structural block of an interconnected structure.
    """

    name: str
    """Human-friendly name of the domain"""

    indices: NDArray
    """Global indices of all unknowns (basis functions) on this domain, sorted"""

    interior: NDArray | None = None
    """
    Global indices of the unknowns not shared with any other domain.
    None -> same as `indices`, which is always the case for disconnected domains.
    """

    ports: tuple[NDArray, ...] = ()
    """
    Global indices of the unknowns fed by each excitation port on this domain.
    Each port yields its own primary MBF. An empty tuple means a single implicit
    port covering the whole domain.
    """

    def __post_init__(self):
        indices = _as_index_array(self.indices)
        assert indices.size > 0, f"Domain {self.name} has no unknowns"
        assert indices[0] >= 0, f"Domain {self.name} has negative unknown indices"

        interior = indices if self.interior is None else _as_index_array(self.interior)
        if not np.all(np.isin(interior, indices)):
            raise ValueError(
                f"Interior unknowns of domain {self.name} are not a subset of its unknowns"
            )

        ports = tuple(_as_index_array(p) for p in self.ports)
        for i, p in enumerate(ports):
            if p.size == 0 or not np.all(np.isin(p, indices)):
                raise ValueError(f"Port {i} of domain {self.name} is empty or off-domain")

        # Normalized in place; the dataclass is otherwise immutable
        object.__setattr__(self, "indices", indices)
        object.__setattr__(self, "interior", interior)
        object.__setattr__(self, "ports", ports)

    @property
    def n_unknowns(self) -> int:
        """Number of unknowns on this domain, including the interface"""
        return self.indices.size

    @property
    def n_ports(self) -> int:
        """Number of primary MBFs generated per solution configuration"""
        return max(1, len(self.ports))

    @cached_property
    def interface(self) -> NDArray:
        """Global indices of unknowns shared with neighboring domains"""
        return np.setdiff1d(self.indices, self.interior, assume_unique=True)

    @cached_property
    def interior_positions(self) -> NDArray:
        """Local positions of the interior unknowns within `indices`"""
        return np.searchsorted(self.indices, self.interior)

    @cached_property
    def interface_positions(self) -> NDArray:
        """Local positions of the interface unknowns within `indices`"""
        return np.searchsorted(self.indices, self.interface)

    def port_mask(self) -> NDArray:
        """
        Boolean mask with shape (n_unknowns, n_ports) marking which local
        unknowns are driven by each port.
        """
        if not self.ports:
            return np.ones((self.n_unknowns, 1), dtype=bool)
        mask = np.zeros((self.n_unknowns, self.n_ports), dtype=bool)
        for i, p in enumerate(self.ports):
            mask[np.searchsorted(self.indices, p), i] = True
        return mask


@dataclass(frozen=True)
class GeneratingSubarray:
    """A group of domains solved together to capture interconnection"""

    name: str
    """Human-friendly name of the sub-array"""

    domains: tuple[int, ...]
    """Indices of the member domains in `DomainModel.domains`"""


@dataclass(frozen=True, eq=False)
class DomainModel:
    """
    Partition of the global unknowns into domains, with the grouping into
    generating sub-arrays and the per-configuration active flags.
    """

    domains: list[Domain]
    """Domains, indexed by position"""

    n_unknowns: int
    """Total number of unknowns N in the global MoM system"""

    disconnected: bool = True
    """Whether the domains share no unknowns (e.g. electrically separate array elements)"""

    subarrays: list[GeneratingSubarray] = field(default_factory=list)
    """
    Generating sub-arrays. Ignored for disconnected domains, which always use
    a single sub-array holding every domain.
    """

    active: NDArray | None = None
    """
    Boolean mask with shape (n_domains, n_solutions) of which domains are excited
    in each solution configuration. None -> every domain is always active.
    """

    def __post_init__(self):
        ndom = len(self.domains)
        assert ndom > 0, "Domain model needs at least one domain"

        for d in self.domains:
            if d.indices[-1] >= self.n_unknowns:
                raise ValueError(
                    f"Domain {d.name} references unknown {d.indices[-1]} "
                    f"outside of a system with {self.n_unknowns} unknowns"
                )

        if self.disconnected:
            # Partitioning check: disjoint sets have no repeats when concatenated
            all_indices = np.concatenate([d.indices for d in self.domains])
            if np.unique(all_indices).size != all_indices.size:
                raise ValueError("Disconnected domains must not share unknowns")
            if all_indices.size != self.n_unknowns:
                raise ValueError(
                    f"Disconnected domains cover {all_indices.size} "
                    f"of {self.n_unknowns} unknowns"
                )
            for d in self.domains:
                if d.interface.size > 0:
                    raise ValueError(
                        f"Disconnected domain {d.name} declares interface unknowns"
                    )
        else:
            assert len(self.subarrays) > 0, "Interconnected domains need generating sub-arrays"
            members = set()
            for sa in self.subarrays:
                for i in sa.domains:
                    if not 0 <= i < ndom:
                        raise ValueError(f"Sub-array {sa.name} references missing domain {i}")
                    members.add(i)
            missing = [i for i in range(ndom) if i not in members]
            if missing:
                raise ValueError(f"Domains {missing} belong to no generating sub-array")

            # Number of domains holding each unknown
            counts = np.bincount(
                np.concatenate([d.indices for d in self.domains]),
                minlength=self.n_unknowns,
            )
            for d in self.domains:
                if np.any(counts[d.interior] > 1):
                    raise ValueError(
                        f"Interior unknowns of domain {d.name} are shared with another domain"
                    )
                if np.any(counts[d.interface] == 1):
                    raise ValueError(
                        f"Interface unknowns of domain {d.name} belong to no other domain"
                    )

        if self.active is not None:
            active = np.atleast_2d(np.asarray(self.active, dtype=bool))
            if active.shape[0] != ndom:
                raise ValueError(
                    f"Active mask has {active.shape[0]} rows for {ndom} domains"
                )
            object.__setattr__(self, "active", active)

    @property
    def n_domains(self) -> int:
        """Number of domains"""
        return len(self.domains)

    @cached_property
    def generating_subarrays(self) -> list[GeneratingSubarray]:
        """Sub-arrays in generation order; a single all-domain group when disconnected"""
        if self.disconnected:
            return [GeneratingSubarray("all", tuple(range(self.n_domains)))]
        return list(self.subarrays)

    @cached_property
    def generation_order(self) -> list[int]:
        """
        Domain indices in the order visited by the primary pass: sub-array by
        sub-array, with domains that appear in several sub-arrays visited only
        at their first appearance.
        """
        order = []
        for sa in self.generating_subarrays:
            for i in sa.domains:
                if i not in order:
                    order.append(i)
        return order

    @cached_property
    def max_ports(self) -> int:
        """Largest number of primary MBFs any domain produces per configuration"""
        return max(self.domains[i].n_ports for i in self.generation_order)

    def is_active(self, domain: int, solution: int) -> bool:
        """Whether `domain` is excited in solution configuration `solution`"""
        if self.active is None:
            return True
        return bool(self.active[domain, solution])
