import numpy as np
import pytest

import mbf_generator


@pytest.fixture(scope="session")
def array_system() -> mbf_generator.synthetic.SyntheticSystem:
    # Two solution configurations to make sure they are never mixed up
    return mbf_generator.synthetic.dipole_array(
        n_elements=4, n_segments=9, spacing=0.5, steering_phases=(0.0, np.pi / 3.0)
    )


@pytest.fixture(scope="session")
def array_outputs(
    array_system: mbf_generator.synthetic.SyntheticSystem,
) -> mbf_generator.MBFOutputs:
    return mbf_generator.generate(
        array_system.model,
        array_system.z,
        array_system.y,
        calc_secondary=True,
        reduction_threshold=1000.0,
        show_prog=False,
    )


@pytest.fixture(scope="session")
def wire_system() -> mbf_generator.synthetic.SyntheticSystem:
    return mbf_generator.synthetic.connected_wire(n_domains=3, n_segments=8, overlap=1)


@pytest.fixture(scope="session")
def wire_outputs(
    wire_system: mbf_generator.synthetic.SyntheticSystem,
) -> mbf_generator.MBFOutputs:
    # Keep every nonzero direction so the reduced basis spans all candidates
    return mbf_generator.generate(
        wire_system.model,
        wire_system.z,
        wire_system.y,
        calc_secondary=True,
        reduction_threshold=None,
        show_prog=False,
    )


def _close(a, b, rtol: float = 1e-9) -> bool:
    """Elementwise match within a tolerance relative to the largest entry of `b`"""
    scale = max(float(np.max(np.abs(b))), np.finfo(np.float64).tiny)
    return bool(np.allclose(a, b, rtol=0.0, atol=rtol * scale))
