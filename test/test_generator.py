import numpy as np
from pytest import raises, approx

import mbf_generator
from mbf_generator import MBFGenerator, ConfigurationError

from . import array_system, array_outputs, wire_system  # Required fixture

__all__ = ["array_system", "array_outputs", "wire_system"]


def test_identical_array_primaries_only():
    """
    4 identical disconnected domains, 1 configuration, all active, no secondaries:
    4 primaries from 1 shared factorization, and each reduced set is the
    domain's own normalized primary.
    """
    system = mbf_generator.synthetic.dipole_array(n_elements=4)
    outputs = mbf_generator.generate(
        system.model, system.z, system.y, calc_secondary=False, show_prog=False
    )
    stats = outputs.statistics

    assert np.array_equal(outputs.n_primary[:, 0], [1, 1, 1, 1])
    assert np.all(outputs.n_secondary == 0)
    assert np.array_equal(outputs.n_reduced[:, 0], [1, 1, 1, 1])
    assert stats.n_factorizations == 1
    assert outputs.generator.factorization_plan.shared

    for mbfs in outputs.domain_mbfs:
        assert mbfs.secondary is None
        primary = mbfs.primary[0, 0]
        reduced = mbfs.reduced[0][:, 0]
        # Same direction up to a unit-modulus phase
        overlap = np.vdot(reduced, primary / np.linalg.norm(primary))
        assert abs(overlap) == approx(1.0, rel=1e-10)
        assert np.linalg.norm(reduced) == approx(1.0, rel=1e-10)


def test_secondaries_with_coupling_disabled():
    """Incompatible options are rejected before any work is done"""

    class ExplodingImpedance:
        n_unknowns = 4

        def self_impedance(self, domain):
            raise AssertionError("No work should be done")

        def coupling(self, receiving, inducing, inducing_interior=False):
            raise AssertionError("No work should be done")

    model = mbf_generator.DomainModel(
        [mbf_generator.Domain("a", indices=[0, 1]), mbf_generator.Domain("b", indices=[2, 3])],
        n_unknowns=4,
    )
    with raises(ConfigurationError):
        MBFGenerator(
            model,
            ExplodingImpedance(),
            np.ones(4),
            calc_secondary=True,
            no_mutual_coupling=True,
        )

    # Either option alone is fine
    gen = MBFGenerator(model, np.eye(4), np.ones(4), no_mutual_coupling=True)
    assert gen.no_mutual_coupling
    assert np.array_equal(gen.statistics.n_primary[:, 0], [1, 1])


def test_input_validation(array_system: mbf_generator.synthetic.SyntheticSystem):
    with raises(ConfigurationError):
        # Wrong impedance size
        MBFGenerator(array_system.model, array_system.z[:-1, :-1], array_system.y)
    with raises(ConfigurationError):
        # Wrong excitation size
        MBFGenerator(array_system.model, array_system.z, array_system.y[:-1])
    with raises(ConfigurationError):
        MBFGenerator(
            array_system.model, array_system.z, array_system.y, factorization_reuse="maybe"
        )
    with raises(ValueError):
        MBFGenerator(array_system.model, np.ones((3, 4)), array_system.y)

    # Active mask must cover every configuration
    model = mbf_generator.DomainModel(
        array_system.model.domains,
        n_unknowns=array_system.model.n_unknowns,
        active=np.ones((array_system.model.n_domains, 1), dtype=bool),
    )
    with raises(ConfigurationError):
        MBFGenerator(model, array_system.z, array_system.y)


def test_inputs_not_mutated(wire_system: mbf_generator.synthetic.SyntheticSystem):
    z = wire_system.z.copy()
    y = wire_system.y.copy()
    gen = MBFGenerator(wire_system.model, z, y, calc_secondary=True)
    _ = gen.statistics
    assert np.array_equal(z, wire_system.z)
    assert np.array_equal(y, wire_system.y)
    # The providers only hand out read-only views
    assert not gen.impedance.values.flags.writeable
    assert not gen.excitation.values.flags.writeable


def test_outputs_frozen(array_outputs: mbf_generator.MBFOutputs):
    mbfs = array_outputs.domain_mbfs[0]
    with raises(ValueError):
        mbfs.primary[0, 0, 0] = 1.0
    with raises(ValueError):
        mbfs.reduced[0][0, 0] = 1.0
    with raises(ValueError):
        mbfs.secondary.vectors[0, 1, 0, 0] = 1.0


def test_parallel_matches_sequential(
    array_system: mbf_generator.synthetic.SyntheticSystem,
    array_outputs: mbf_generator.MBFOutputs,
):
    gen = MBFGenerator(
        array_system.model,
        array_system.z,
        array_system.y,
        calc_secondary=True,
        reduction_threshold=1000.0,
        n_jobs=2,
    )
    assert np.array_equal(gen.statistics.n_reduced, array_outputs.n_reduced)
    for par, seq in zip(gen.domain_mbfs, array_outputs.domain_mbfs):
        assert np.allclose(par.primary, seq.primary, rtol=1e-12, atol=0.0)
        assert np.allclose(par.secondary.vectors, seq.secondary.vectors, rtol=1e-12, atol=0.0)
        for s in range(array_system.y.shape[1]):
            assert np.allclose(par.reduced[s], seq.reduced[s], rtol=1e-10, atol=1e-14)


def test_reduced_basis(
    array_system: mbf_generator.synthetic.SyntheticSystem,
    array_outputs: mbf_generator.MBFOutputs,
):
    """The global reduced basis stacks each domain's block in order"""
    gen = array_outputs.generator
    n = array_system.model.n_unknowns
    for s in range(gen.n_solutions):
        basis = array_outputs.reduced_bases[s]
        offsets = gen.reduced_basis_offsets(s)
        assert basis.shape == (n, offsets[-1])
        assert offsets[-1] == np.sum(array_outputs.n_reduced[:, s])
        for i, d in enumerate(array_system.model.domains):
            block = basis[:, offsets[i] : offsets[i + 1]]
            outside = np.setdiff1d(np.arange(n), d.indices)
            assert np.all(block[outside] == 0.0)
            assert np.array_equal(block[d.indices], array_outputs.domain_mbfs[i].reduced[s])


def test_reduced_subspace_solution(
    array_system: mbf_generator.synthetic.SyntheticSystem,
):
    """
    Solving in the span of the reduced MBFs recovers the full MoM solution,
    since for disconnected domains the primaries and secondaries capture
    first-order coupling
    """
    outputs = mbf_generator.generate(
        array_system.model,
        array_system.z,
        array_system.y,
        calc_secondary=True,
        reduction_threshold=None,
        show_prog=False,
    )
    z = array_system.z
    for s in range(array_system.y.shape[1]):
        basis = outputs.reduced_bases[s]
        v = array_system.y[:, s]
        j_cbfm = basis @ np.linalg.solve(basis.conj().T @ z @ basis, basis.conj().T @ v)
        j_mom = np.linalg.solve(z, v)
        err = np.linalg.norm(j_cbfm - j_mom) / np.linalg.norm(j_mom)
        assert err < 0.05


def test_statistics(array_outputs: mbf_generator.MBFOutputs):
    stats = array_outputs.statistics
    nsols = 2
    assert stats.primary_time.shape == (nsols,)
    assert np.all(stats.primary_time > 0.0)
    assert np.all(stats.secondary_time > 0.0)
    assert np.all(stats.reduction_time > 0.0)
    assert stats.total_time == approx(
        np.sum(stats.primary_time) + np.sum(stats.secondary_time) + np.sum(stats.reduction_time)
    )

    summary = stats.summary()
    assert "Total number of primary MBFs 4, secondary MBFs 12 for solution 1 of 2" in summary
    assert "Total number of reduced MBFs" in summary
    assert "Self-impedance factorizations: 1" in summary


def test_reduction_disabled(array_system: mbf_generator.synthetic.SyntheticSystem):
    """Without reduction the candidates pass through and no reduction time is recorded"""
    gen = MBFGenerator(
        array_system.model,
        array_system.z,
        array_system.y,
        calc_secondary=True,
        use_reduction=False,
    )
    stats = gen.statistics
    assert np.all(stats.reduction_time == 0.0)
    assert np.all(stats.primary_time > 0.0)
    assert np.array_equal(stats.n_reduced, stats.n_primary + stats.n_secondary)
    assert "Total number of reduced MBFs" not in stats.summary()
    for mbfs in gen.domain_mbfs:
        assert mbfs.singular_values[0] is None
        assert np.array_equal(mbfs.reduced[0], mbfs.candidates(0))
