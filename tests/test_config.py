import numpy as np
import pytest

from pyFORM.__main__ import main
from pyFORM.config import Config, build, load_config
from pyFORM.CPU import (FFD, FFD_LS, BoundaryDisplacement, DesignElement, ProblemElasticity, ProblemStokesEnergy,
                        ShapeGradientDescent)
from pyFORM._exceptions import ConfigurationError


SMALL = """
[Mesh]
nx = 8
ny = 4
lx = 2.0
ly = 1.0

[Geometry]
bounding_box_sw = [0.25, -0.25]
bounding_box_ne = [1.75, 1.25]

[Technique]
max_iterations = 2
"""


def write_config(tmp_path, text):
    path = tmp_path / "run.ini"
    path.write_text(text)
    return str(path)


def test_defaults():
    config = Config()

    assert config.get("General", "problem") == "Elasticity"
    assert config.get("General", "technique") == "BoundaryDisplacement"
    assert config.getint("Mesh", "nx") == 20
    assert config.getfloat("Mesh", "ly") == 4.0
    assert config.getfloat("Elasticity", "lambda") == 13.0
    assert config.getlist("Elasticity", "traction") == [0.0, -1.0]
    assert config.getlist("StokesEnergy", "symmetry_tags") == []
    assert config.getlist("StokesEnergy", "noslip_tags") == [0, 2]
    assert config.getboolean("Technique", "volume_constraint")
    assert config.getfloat("Technique", "step") == 0.125
    assert config.get("Technique", "derivative_form") == "volume"
    assert config.getlist("Geometry", "bounding_box_ne") == [5.0, 4.0]
    assert config.getint("FFD", "subdivisions_x") == 4
    assert config.getfloat("FFD_LS", "alpha") == 0.99
    assert config.getint("DesignElement", "order") == 3


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(str(tmp_path / "missing.ini"))


@pytest.mark.parametrize("text", [
    "[General]\nproblem = Heat\n",
    "[General]\ntechnique = Splines\n",
    "[Geometry]\nbounding_box_sw = [0.0, 0.0, 0.0]\n",
    "[Mesh]\nnx = 0\n",
    "[Mesh]\nnx = many\n",
    "[FFD]\nsubdivisions_y = -2\n",
    "[Technique]\nstep = fast\n",
    "[Technique]\nderivative_form = surface\n",
    "[Elasticity]\ntraction = 1.0\n",
    "[Elasticity]\nself_adjoint = perhaps\n",
    "[FFD_LS]\nalpha = 1.0\n",
    "[Mesh]\nnz = 3\n",
    "[Output]\nfile = x\n",
])
def test_invalid_values(tmp_path, text):
    with pytest.raises(ConfigurationError):
        load_config(write_config(tmp_path, text))


def test_errors_are_collected(tmp_path):
    path = write_config(tmp_path, "[Mesh]\nnx = 0\nny = 0\n")

    with pytest.raises(ConfigurationError) as e:
        load_config(path)
    assert "nx" in str(e.value) and "ny" in str(e.value)


@pytest.mark.parametrize("technique, cls", [
    ("FFD", FFD),
    ("FFD_LS", FFD_LS),
    ("DesignElement", DesignElement),
    ("BoundaryDisplacement", BoundaryDisplacement),
])
def test_build_techniques(tmp_path, technique, cls):
    config = load_config(write_config(tmp_path, SMALL + f"\n[General]\ntechnique = {technique}\n"))
    mesh, problem, shape, optimizer = build(config)

    assert mesh.n_elements == 64
    assert isinstance(problem, ProblemElasticity)
    assert isinstance(shape, cls)
    assert isinstance(optimizer, ShapeGradientDescent)
    assert optimizer.max_iter == 2
    assert np.isfinite(optimizer.problem.current_objective())


def test_build_stokes(tmp_path):
    text = SMALL + "\n[General]\nproblem = StokesEnergy\ntechnique = FFD\n\n[StokesEnergy]\nux = 1.0\n"
    _, problem, _, optimizer = build(load_config(write_config(tmp_path, text)))

    assert isinstance(problem, ProblemStokesEnergy)
    assert problem.inlet.ux == 1.0
    assert optimizer.problem.current_objective() > 0


def test_build_missing_mesh_file(tmp_path):
    config = load_config(write_config(tmp_path, f"[General]\nmesh = {tmp_path / 'none.msh'}\n"))

    with pytest.raises(ConfigurationError):
        build(config)


def test_cli_runs(tmp_path, capsys):
    out = tmp_path / "results"
    path = write_config(tmp_path, SMALL + f"\n[General]\ntechnique = FFD\noutput_directory = {out}\n")

    assert main([path]) == 0
    assert "Elasticity" in capsys.readouterr().out
    assert (out / "Elasticity_Output.txt").is_file()


def test_cli_reports_bad_config(tmp_path):
    path = write_config(tmp_path, "[General]\nproblem = Heat\n")

    assert main([path, "-v"]) == 1
