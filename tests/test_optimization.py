import logging
import os

import numpy as np
import pytest

from pyFORM.CPU import (FFD, FFD_LS, BoundaryDisplacement, ProblemElasticity, ProblemStokesEnergy,
                        ShapeGradientDescent, ShapeProblem, StructuredTriangleMesh2D)
from pyFORM._exceptions import ConfigurationError, GeometryError, SolveError


@pytest.fixture
def cantilever_problem(cantilever_mesh, elasticity):
    shape = FFD(cantilever_mesh, ((0.25, -0.25), (1.75, 1.25)), (3, 3), elasticity)
    return ShapeProblem(elasticity, shape, volume_constraint=False)


def test_small_step_follows_gradient_sign():
    mesh = StructuredTriangleMesh2D(nx=8, ny=8, lx=1.0, ly=1.0)
    problem = ProblemElasticity(mesh)
    shape = FFD(mesh, ((0.0, 0.0), (1.0, 1.0)), (2, 2), problem)
    sp = ShapeProblem(problem, shape, volume_constraint=False)

    assert shape.n_parameters == 18
    J0 = sp.current_objective()
    g = sp.current_gradient()
    i = int(np.argmax(np.abs(g)))
    h = 1e-3

    p = sp.get_parameters()
    p[i] -= h * np.sign(g[i])
    sp.set_parameters(p)

    assert sp.current_objective() < J0
    assert (sp.current_objective() - J0) / (-h * np.sign(g[i])) == pytest.approx(g[i], rel=1e-2)


def test_inverted_trial_restores_design(cantilever_problem):
    sp = cantilever_problem
    mesh = sp.mesh
    J0 = sp.current_objective()
    p0 = sp.get_parameters()
    nodes0 = mesh.get_node_positions()

    p = p0.copy()
    # x component of control point (k=1, l=1) folds the lattice
    p[2 * (1 * 4 + 1)] = 20.0
    with pytest.raises(GeometryError):
        sp.set_parameters(p)

    assert np.array_equal(sp.get_parameters(), p0)
    assert np.allclose(mesh.nodes, nodes0)
    assert sp.current_objective() == pytest.approx(J0)
    assert sp.problem.state.revision == mesh.revision


def make_shape_problem(physics, technique, volume_constraint):
    mesh = StructuredTriangleMesh2D(nx=8, ny=4, lx=2.0, ly=1.0)
    if physics == "Elasticity":
        problem = ProblemElasticity(mesh)
        box = ((0.25, -0.25), (1.75, 1.25))
    else:
        problem = ProblemStokesEnergy(mesh, ux=1.0)
        box = ((0.5, -0.5), (1.5, 1.5))
    if technique == "FFD":
        shape = FFD(mesh, box, (3, 3), problem)
    else:
        shape = BoundaryDisplacement(mesh, problem)
    return ShapeProblem(problem, shape, volume_constraint=volume_constraint)


@pytest.mark.parametrize("volume_constraint", [False, True])
@pytest.mark.parametrize("physics, technique", [
    ("Elasticity", "FFD"),
    ("Elasticity", "BoundaryDisplacement"),
    ("StokesEnergy", "FFD"),
    ("StokesEnergy", "BoundaryDisplacement"),
])
def test_driver_decreases_objective(physics, technique, volume_constraint, tmp_path):
    sp = make_shape_problem(physics, technique, volume_constraint)
    optimizer = ShapeGradientDescent(sp, step=0.02, max_iter=10, output_dir=str(tmp_path))
    J0 = sp.current_objective()
    history = optimizer.optimize()

    assert optimizer.converged()
    assert optimizer.reason in ("stationary", "tolerance", "step", "max_iter")
    assert len(history) <= 10

    # the objective itself drops on every accepted step, with or without the multiplier
    previous = J0
    n_accepted = 0
    for entry in history:
        if entry["accepted"]:
            assert entry["objective"] < previous
            n_accepted += 1
        previous = entry["objective"]
    assert history[-1]["objective"] <= J0
    if not volume_constraint:
        assert n_accepted > 0

    output = tmp_path / f"{physics}_Output.txt"
    lines = output.read_text().splitlines()
    assert len(lines) == n_accepted
    assert all(line.endswith(";") for line in lines)
    assert os.path.isfile(tmp_path / f"{physics}_ReferenceMesh.vtu")
    assert os.path.isfile(tmp_path / f"{physics}_Deformed{history[-1]['iteration']}.vtu") or not history[-1]["accepted"]


def test_volume_constraint_keeps_objective_monotone():
    mesh = StructuredTriangleMesh2D(nx=10, ny=8, lx=5.0, ly=4.0)
    problem = ProblemStokesEnergy(mesh, ux=4.0)
    sp = ShapeProblem(problem, BoundaryDisplacement(mesh, problem), volume_constraint=True)
    J0 = sp.current_objective()

    history = ShapeGradientDescent(sp, max_iter=4).optimize()

    accepted = [J0] + [entry["objective"] for entry in history if entry["accepted"]]
    assert all(b < a for a, b in zip(accepted, accepted[1:]))
    assert all(np.isfinite(entry["lagrange"]) for entry in history)


def test_driver_rejects_inverting_step(cantilever_problem, monkeypatch):
    sp = cantilever_problem
    mesh = sp.mesh
    p0 = sp.get_parameters()
    J0 = sp.current_objective()
    check_domain = mesh.check_domain
    calls = []

    def failing_check():
        calls.append(1)
        if len(calls) == 1:
            raise GeometryError("inverted")
        check_domain()

    monkeypatch.setattr(mesh, "check_domain", failing_check)
    optimizer = ShapeGradientDescent(sp, step=0.1, max_iter=10)
    optimizer.iter()

    assert not optimizer.accepted
    assert optimizer.step == pytest.approx(0.05)
    assert np.array_equal(sp.get_parameters(), p0)
    assert sp.current_objective() == pytest.approx(J0)
    assert not optimizer.converged()


def test_failed_restore_chains_the_first_error(cantilever_problem, monkeypatch):
    sp = cantilever_problem
    calls = []

    def inverted_once():
        calls.append(1)
        if len(calls) == 1:
            raise GeometryError("inverted")

    def singular(mesh=None):
        raise SolveError("singular")

    monkeypatch.setattr(sp.mesh, "check_domain", inverted_once)
    monkeypatch.setattr(sp.problem, "solve_state", singular)

    with pytest.raises(SolveError) as e:
        sp.set_parameters(sp.get_parameters())
    assert isinstance(e.value.__cause__, GeometryError)


def test_zero_gradient_stops_without_warning(cantilever_problem, monkeypatch, caplog):
    sp = cantilever_problem
    monkeypatch.setattr(sp, "current_gradient", lambda: np.zeros(sp.shape.n_parameters))
    optimizer = ShapeGradientDescent(sp)

    with caplog.at_level(logging.WARNING):
        optimizer.iter()

    assert optimizer.converged()
    assert optimizer.reason == "stationary"
    assert not any("descent direction" in record.message for record in caplog.records)


def test_volume_constraint_updates_lagrange(cantilever_mesh, elasticity):
    shape = BoundaryDisplacement(cantilever_mesh, elasticity)
    sp = ShapeProblem(elasticity, shape, volume_constraint=True)

    assert sp.initial_volume == pytest.approx(2.0)
    lagrange = sp.update_lagrange()
    assert lagrange == pytest.approx(elasticity.lagrange_multiplier(sp.current_shape_derivative()))

    optimizer = ShapeGradientDescent(sp, step=0.01, max_iter=3)
    optimizer.optimize()
    log = optimizer.logs()
    assert set(log) >= {"iteration", "objective", "change", "step", "volume", "lagrange"}


def test_level_set_ffd_run(cantilever_mesh, elasticity):
    shape = FFD_LS(cantilever_mesh, ((0.25, -0.25), (1.75, 1.25)), (3, 3), elasticity, alpha=0.9)
    sp = ShapeProblem(elasticity, shape, volume_constraint=False)
    J0 = sp.current_objective()

    history = ShapeGradientDescent(sp, step=0.05, max_iter=3).optimize()

    assert history[-1]["objective"] <= J0 + 1e-12 * abs(J0)


def test_driver_validation(cantilever_problem):
    with pytest.raises(ConfigurationError):
        ShapeGradientDescent(cantilever_problem, step=0.0)
    with pytest.raises(ConfigurationError):
        ShapeGradientDescent(cantilever_problem, max_iter=0)
    with pytest.raises(ConfigurationError):
        ShapeGradientDescent(cantilever_problem, armijo_slope=1.0)
