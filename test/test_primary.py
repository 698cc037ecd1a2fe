import numpy as np
from pytest import approx

import mbf_generator
from mbf_generator import Domain, DomainModel, GeneratingSubarray, MBFGenerator

from . import array_system, array_outputs, _close  # Required fixture

__all__ = ["array_system", "array_outputs"]


def test_single_domain_primary():
    """A lone domain's primary MBF is the exact solution of the local system"""
    system = mbf_generator.synthetic.dipole_array(n_elements=1, n_segments=15)
    gen = MBFGenerator(system.model, system.z, system.y, use_reduction=False)

    mbfs = gen.domain_mbfs[0]
    j = mbfs.primary[0, 0]
    v = system.y[:, 0]
    assert mbfs.n_primary[0] == 1
    assert _close(system.z @ j, v)

    # Without reduction, the "reduced" set is the candidate set itself
    assert mbfs.n_reduced[0] == 1
    assert np.array_equal(mbfs.reduced[0][:, 0], j)
    assert mbfs.singular_values[0] is None


def test_array_primaries(
    array_system: mbf_generator.synthetic.SyntheticSystem,
    array_outputs: mbf_generator.MBFOutputs,
):
    """Each element's primary solves its own self-impedance block, per configuration"""
    z = array_system.z
    y = array_system.y
    model = array_system.model
    for s in range(y.shape[1]):
        for d, mbfs in zip(model.domains, array_outputs.domain_mbfs):
            idx = d.indices
            expected = np.linalg.solve(z[np.ix_(idx, idx)], y[idx, s])
            assert mbfs.n_primary[s] == 1
            assert _close(mbfs.primary[s, 0], expected)

    # Different steering phases give different primaries
    m1 = array_outputs.domain_mbfs[1]
    assert not np.allclose(m1.primary[0, 0], m1.primary[1, 0])


def test_inactive_primary():
    """Inactive domains keep a zero primary and a zero count"""
    active = np.array([[True, False], [False, True], [True, True]])
    system = mbf_generator.synthetic.dipole_array(
        n_elements=3, steering_phases=(0.0, 0.5), active=active
    )
    gen = MBFGenerator(system.model, system.z, system.y)

    for i, mbfs in enumerate(gen.domain_mbfs):
        for s in range(2):
            if active[i, s]:
                assert mbfs.n_primary[s] == 1
                assert np.any(mbfs.primary[s] != 0.0)
            else:
                assert mbfs.n_primary[s] == 0
                assert np.all(mbfs.primary[s] == 0.0)
                assert mbfs.n_reduced[s] == 0

    assert np.array_equal(gen.statistics.n_primary, active.astype(int))


def test_multiport_primaries():
    """Each port of a domain gives its own primary, driven only at that port"""
    base = mbf_generator.synthetic.dipole_array(n_elements=2, n_segments=9)
    n = base.z.shape[0]
    domains = [
        Domain(d.name, indices=d.indices, ports=(d.indices[2:3], d.indices[6:7]))
        for d in base.model.domains
    ]
    model = DomainModel(domains, n_unknowns=n)
    y = np.zeros(n, dtype=complex)
    for d in domains:
        y[d.indices[2]] = 1.0
        y[d.indices[6]] = 0.5j

    gen = MBFGenerator(model, base.z, y, calc_secondary=True, reduction_threshold=None)
    assert model.max_ports == 2

    for d, mbfs in zip(domains, gen.domain_mbfs):
        idx = d.indices
        zdd = base.z[np.ix_(idx, idx)]
        assert mbfs.n_primary[0] == 2
        for p, port in enumerate(d.ports):
            v = np.zeros(idx.size, dtype=complex)
            v[np.searchsorted(idx, port)] = y[port]
            assert _close(mbfs.primary[0, p], np.linalg.solve(zdd, v))

        # One secondary per port of the other domain
        other = 1 - mbfs.domain
        assert mbfs.secondary.n_induced[0, other] == 2
        assert mbfs.secondary.count[0] == 2
        assert mbfs.candidates(0).shape == (idx.size, 4)


def test_shared_domain_solved_once():
    """A domain in several generating sub-arrays gets a single primary"""
    wire = mbf_generator.synthetic.connected_wire(n_domains=3, n_segments=8, overlap=1)
    model = DomainModel(
        wire.model.domains,
        n_unknowns=wire.model.n_unknowns,
        disconnected=False,
        subarrays=[GeneratingSubarray("a", (0, 1)), GeneratingSubarray("b", (1, 2))],
    )
    gen = MBFGenerator(model, wire.z, wire.y)

    assert np.array_equal(gen.statistics.n_primary[:, 0], [1, 1, 1])
    # Interconnected domains are never assumed identical
    assert not gen.factorization_plan.shared
    assert gen.statistics.n_factorizations == 3


def test_primary_window_applied():
    """Interconnected primaries are halved on the interface and untouched inside"""
    wire = mbf_generator.synthetic.connected_wire(n_domains=3, n_segments=8, overlap=1)
    gen = MBFGenerator(wire.model, wire.z, wire.y)
    for d, mbfs in zip(wire.model.domains, gen.domain_mbfs):
        idx = d.indices
        unwindowed = np.linalg.solve(wire.z[np.ix_(idx, idx)], wire.y[idx, 0])
        j = mbfs.primary[0, 0]
        assert _close(j[d.interior_positions], unwindowed[d.interior_positions])
        assert _close(j[d.interface_positions], 0.5 * unwindowed[d.interface_positions])
        assert float(np.sum(np.abs(j))) == approx(
            float(
                np.sum(np.abs(unwindowed[d.interior_positions]))
                + 0.5 * np.sum(np.abs(unwindowed[d.interface_positions]))
            ),
            rel=1e-10,
        )
