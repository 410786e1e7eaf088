"""Configuration files for pyFORM runs.

A run is described by an ``.ini`` file read with :class:`Config`. Every key has
a typed entry in ``Config.config_scheme`` and a default, so an empty file
describes the default compliance problem on a generated 5 x 4 rectangle.

Examples
--------
>>> from pyFORM.config import load_config, build
>>> config = load_config("cantilever.ini")
>>> mesh, problem, shape, optimizer = build(config)
>>> history = optimizer.optimize()
"""

from configparser import ConfigParser
import json
import os
import logging
from typing import Any, Dict, List, Optional

from ._exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PROBLEMS = ("Elasticity", "StokesEnergy")
TECHNIQUES = ("FFD", "FFD_LS", "DesignElement", "BoundaryDisplacement")

_DEFAULT_CONFIG = """
[General]
mesh =
problem = Elasticity
technique = BoundaryDisplacement
output_directory =

[Mesh]
nx = 20
ny = 16
lx = 5.0
ly = 4.0

[Elasticity]
lambda = 13.0
mu = 5.5
traction = [0.0, -1.0]
dirichlet_tags = [3]
traction_tags = [1]
self_adjoint = true

[StokesEnergy]
ux = 4.0
uy = 0.0
viscosity = 1.0
inlet_tags = [3]
symmetry_tags = []
noslip_tags = [0, 2]

[Technique]
step = 0.125
max_iterations = 80
tolerance = 1e-3
volume_constraint = true
armijo_slope = 1e-2
derivative_form = volume

[Geometry]
bounding_box_sw = [0.0, 0.0]
bounding_box_ne = [5.0, 4.0]

[FFD]
subdivisions_x = 4
subdivisions_y = 4

[FFD_LS]
alpha = 0.99

[DesignElement]
order = 3
"""


def load_config(path: str) -> "Config":
    """
    Load a configuration file on top of the defaults.

    Parameters
    ----------
    path : str
        Path to an ``.ini`` file

    Returns
    -------
    Config
        Validated configuration

    Raises
    ------
    ConfigurationError
        The file does not exist or holds invalid values
    """
    return Config(path)


class Config(ConfigParser):
    """
    Typed configuration of a pyFORM run.

    Parameters
    ----------
    config_file : str, optional
        File read on top of the defaults. When None only the defaults are used.

    Attributes
    ----------
    config_scheme : dict
        section -> key -> {"type": ..., optional "options", "length",
        "positive", "range"}
    config_errors : list of str
        Problems found by the last validate_config() call

    Notes
    -----
    Lists are written as JSON, e.g. ``traction = [0.0, -1.0]``. Unknown
    sections or keys are errors, so misspelled options do not pass silently.
    """
    def __init__(self, config_file: Optional[str] = None):
        super().__init__()
        self.config_errors: List[str] = []

        self.config_scheme: Dict[str, Dict[str, Dict[str, Any]]] = {
            "General": {
                "mesh": {"type": "str"},
                "problem": {"type": "str", "options": PROBLEMS},
                "technique": {"type": "str", "options": TECHNIQUES},
                "output_directory": {"type": "str"},
            },
            "Mesh": {
                "nx": {"type": "int", "positive": True},
                "ny": {"type": "int", "positive": True},
                "lx": {"type": "float", "positive": True},
                "ly": {"type": "float", "positive": True},
            },
            "Elasticity": {
                "lambda": {"type": "float"},
                "mu": {"type": "float", "positive": True},
                "traction": {"type": "list", "length": 2},
                "dirichlet_tags": {"type": "list"},
                "traction_tags": {"type": "list"},
                "self_adjoint": {"type": "bool"},
            },
            "StokesEnergy": {
                "ux": {"type": "float"},
                "uy": {"type": "float"},
                "viscosity": {"type": "float", "positive": True},
                "inlet_tags": {"type": "list"},
                "symmetry_tags": {"type": "list"},
                "noslip_tags": {"type": "list"},
            },
            "Technique": {
                "step": {"type": "float", "positive": True},
                "max_iterations": {"type": "int", "positive": True},
                "tolerance": {"type": "float"},
                "volume_constraint": {"type": "bool"},
                "armijo_slope": {"type": "float", "range": (0.0, 1.0)},
                "derivative_form": {"type": "str", "options": ("volume", "boundary")},
            },
            "Geometry": {
                "bounding_box_sw": {"type": "list", "length": 2},
                "bounding_box_ne": {"type": "list", "length": 2},
            },
            "FFD": {
                "subdivisions_x": {"type": "int", "positive": True},
                "subdivisions_y": {"type": "int", "positive": True},
            },
            "FFD_LS": {
                "alpha": {"type": "float", "range": (0.0, 1.0)},
            },
            "DesignElement": {
                "order": {"type": "int", "positive": True},
            },
        }

        self.read_string(_DEFAULT_CONFIG)

        if config_file is not None:
            if not os.path.isfile(config_file):
                raise ConfigurationError(f"Could not find the config file {config_file}.")
            self.read(config_file)
            logger.info(f"Loaded config file {config_file}")

        self.validate_config()

    def getlist(self, section: str, option: str) -> list:
        """Parse a JSON list option."""
        raw = self.get(section, option)
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Key {option} in section {section} is not a list: {raw!r}.") from e
        if not isinstance(value, list):
            raise ConfigurationError(f"Key {option} in section {section} is not a list: {raw!r}.")
        return value

    def validate_config(self):
        """
        Check every section and key against the scheme.

        Raises
        ------
        ConfigurationError
            Listing every problem found
        """
        self.config_errors = []
        for section_name in self.sections():
            if section_name not in self.config_scheme:
                self.config_errors.append(f"The section {section_name} is not valid.")
                continue
            for key in self[section_name].keys():
                if key not in self.config_scheme[section_name]:
                    self.config_errors.append(f"Key {key} is not valid for section {section_name}.")
                else:
                    self._check_key(section_name, key)

        if len(self.config_errors) > 0:
            raise ConfigurationError("\n".join(self.config_errors))

    def _value(self, section, key):
        key_type = self.config_scheme[section][key]["type"]
        if key_type == "str":
            return self.get(section, key)
        if key_type == "bool":
            return self.getboolean(section, key)
        if key_type == "int":
            return self.getint(section, key)
        if key_type == "float":
            return self.getfloat(section, key)
        return self.getlist(section, key)

    def _check_key(self, section, key):
        scheme = self.config_scheme[section][key]
        try:
            value = self._value(section, key)
        except (ValueError, ConfigurationError):
            self.config_errors.append(f"Key {key} in section {section} has the wrong type, expected {scheme['type']}.")
            return

        if "options" in scheme and value not in scheme["options"]:
            self.config_errors.append(f"Key {key} in section {section} must be one of {list(scheme['options'])}, got {value!r}.")
        if "length" in scheme and len(value) != scheme["length"]:
            self.config_errors.append(f"Key {key} in section {section} must hold {scheme['length']} entries, got {len(value)}.")
        if scheme.get("positive", False) and not value > 0:
            self.config_errors.append(f"Key {key} in section {section} must be positive, got {value}.")
        if "range" in scheme:
            lo, hi = scheme["range"]
            if not lo < value < hi:
                self.config_errors.append(f"Key {key} in section {section} must be in ({lo}, {hi}), got {value}.")
        if scheme["type"] == "list":
            for item in value:
                if isinstance(item, bool) or not isinstance(item, (int, float)):
                    self.config_errors.append(f"Key {key} in section {section} must hold numbers, got {item!r}.")
                    break


def _build_mesh(config):
    from .geom.CPU._mesh import StructuredTriangleMesh2D
    from .geom.CPU._io import read_mesh

    path = config.get("General", "mesh")
    if path:
        if not os.path.isfile(path):
            raise ConfigurationError(f"Could not find the mesh file {path}.")
        return read_mesh(path)
    return StructuredTriangleMesh2D(nx=config.getint("Mesh", "nx"),
                                    ny=config.getint("Mesh", "ny"),
                                    lx=config.getfloat("Mesh", "lx"),
                                    ly=config.getfloat("Mesh", "ly"))


def _build_problem(config, mesh):
    from .Problem.CPU.Elasticity import ProblemElasticity
    from .Problem.CPU.StokesEnergy import ProblemStokesEnergy

    name = config.get("General", "problem")
    form = config.get("Technique", "derivative_form")
    if name == "Elasticity":
        return ProblemElasticity(mesh,
                                 lam=config.getfloat("Elasticity", "lambda"),
                                 mu=config.getfloat("Elasticity", "mu"),
                                 dirichlet_tags=config.getlist("Elasticity", "dirichlet_tags"),
                                 traction_tags=config.getlist("Elasticity", "traction_tags"),
                                 traction=config.getlist("Elasticity", "traction"),
                                 self_adjoint=config.getboolean("Elasticity", "self_adjoint"),
                                 derivative_form=form)
    return ProblemStokesEnergy(mesh,
                               ux=config.getfloat("StokesEnergy", "ux"),
                               uy=config.getfloat("StokesEnergy", "uy"),
                               viscosity=config.getfloat("StokesEnergy", "viscosity"),
                               inlet_tags=config.getlist("StokesEnergy", "inlet_tags"),
                               symmetry_tags=config.getlist("StokesEnergy", "symmetry_tags"),
                               noslip_tags=config.getlist("StokesEnergy", "noslip_tags"),
                               derivative_form=form)


def _build_shape(config, mesh, problem):
    from .Shape.CPU.FFD import FFD
    from .Shape.CPU.FFD_LS import FFD_LS
    from .Shape.CPU.DesignElement import DesignElement
    from .Shape.CPU.BoundaryDisplacement import BoundaryDisplacement

    technique = config.get("General", "technique")
    bb = (config.getlist("Geometry", "bounding_box_sw"), config.getlist("Geometry", "bounding_box_ne"))
    subdivisions = (config.getint("FFD", "subdivisions_x"), config.getint("FFD", "subdivisions_y"))

    if technique == "FFD":
        return FFD(mesh, bb, subdivisions, problem)
    if technique == "FFD_LS":
        return FFD_LS(mesh, bb, subdivisions, problem, alpha=config.getfloat("FFD_LS", "alpha"))
    if technique == "DesignElement":
        return DesignElement(mesh, bb, problem, order=config.getint("DesignElement", "order"))
    return BoundaryDisplacement(mesh, problem)


def build(config: Config):
    """
    Construct a ready-to-run optimization from a configuration.

    Parameters
    ----------
    config : Config
        Validated configuration

    Returns
    -------
    mesh : TriangleMesh
        Read from [General] mesh, or a StructuredTriangleMesh2D from [Mesh]
    problem : Problem
        ProblemElasticity or ProblemStokesEnergy
    shape : ShapeOptimization
        Parametrization named by [General] technique
    optimizer : ShapeGradientDescent
        Driver over ShapeProblem(problem, shape)
    """
    from .Problem.CPU.ShapeProblem import ShapeProblem
    from .Optimizers.CPU.ShapeGradientDescent import ShapeGradientDescent

    mesh = _build_mesh(config)
    problem = _build_problem(config, mesh)
    shape = _build_shape(config, mesh, problem)

    output_dir = config.get("General", "output_directory") or None
    optimizer = ShapeGradientDescent(ShapeProblem(problem, shape, config.getboolean("Technique", "volume_constraint")),
                                     step=config.getfloat("Technique", "step"),
                                     max_iter=config.getint("Technique", "max_iterations"),
                                     tolerance=config.getfloat("Technique", "tolerance"),
                                     armijo_slope=config.getfloat("Technique", "armijo_slope"),
                                     output_dir=output_dir)
    logger.info(f"Built {problem.name} with {type(shape).__name__}: {mesh.n_nodes} nodes, {shape.n_parameters} parameters")
    return mesh, problem, shape, optimizer
