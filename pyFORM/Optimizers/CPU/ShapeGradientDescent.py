import os
import numpy as np
import logging
from .._optimizer import Optimizer
from ...Problem.CPU.ShapeProblem import ShapeProblem
from ...geom.CPU._io import write_mesh
from ..._exceptions import ConfigurationError, GeometryError
from typing import Optional
logger = logging.getLogger(__name__)


class ShapeGradientDescent(Optimizer):
    """
    Gradient descent with Armijo backtracking for shape optimization.

    Every iteration updates the volume multiplier, asks the parametrization
    for a search direction d and tries the step p + step * d. The trial is
    accepted when the objective J decreases by at least
    armijo_slope * step * |slope|, with slope the derivative of
    J + lagrange * Vol along d; otherwise the step is halved and the last
    accepted design is restored. The multiplier only enters through the search
    direction, so J decreases on every accepted step. A trial that inverts
    elements is treated as a rejection.

    Parameters
    ----------
    problem : ShapeProblem
        Coupled problem and parametrization
    step : float, optional
        Initial step length (default: 0.125)
    max_iter : int, optional
        Iteration budget (default: 80)
    tolerance : float, optional
        Stop when an accepted step changes J by at most tolerance * |J| (default: 1e-3)
    armijo_slope : float, optional
        Sufficient decrease constant c (default: 1e-2)
    min_step : float, optional
        Stop when the step falls below this value (default: 1e-10)
    output_dir : str, optional
        Write <name>_Output.txt and the accepted meshes (.vtu) there
    name : str, optional
        Prefix of the output files (default: the problem name)

    Attributes
    ----------
    iteration : int
        Iterations performed
    history : list of dict
        logs() after every iteration
    reason : str
        Why the loop stopped ("tolerance", "step", "max_iter" or "stationary")

    Examples
    --------
    >>> optimizer = ShapeGradientDescent(ShapeProblem(problem, shape), step=0.125, max_iter=80)
    >>> history = optimizer.optimize()
    >>> history[-1]["objective"]
    """
    def __init__(self,
                 problem: ShapeProblem,
                 step: float = 0.125,
                 max_iter: int = 80,
                 tolerance: float = 1e-3,
                 armijo_slope: float = 1e-2,
                 min_step: float = 1e-10,
                 output_dir: Optional[str] = None,
                 name: Optional[str] = None):
        super().__init__(problem)

        if not step > 0:
            raise ConfigurationError(f"step must be positive, got {step}.")
        if int(max_iter) < 1:
            raise ConfigurationError(f"max_iter must be a positive integer, got {max_iter}.")
        if not tolerance >= 0:
            raise ConfigurationError(f"tolerance must be non-negative, got {tolerance}.")
        if not 0 < armijo_slope < 1:
            raise ConfigurationError(f"armijo_slope must be in (0, 1), got {armijo_slope}.")

        self.step = step
        self.max_iter = int(max_iter)
        self.tolerance = tolerance
        self.armijo_slope = armijo_slope
        self.min_step = min_step

        self.iteration = 0
        self.change = np.inf
        self.accepted = False
        self.reason = None
        self._converged = False
        self.history = []

        self.name = name if name is not None else getattr(problem.problem, "name", type(problem.problem).__name__)
        self.output_dir = output_dir
        self.output_file = None
        if output_dir is not None:
            os.makedirs(output_dir, exist_ok=True)
            self.output_file = os.path.join(output_dir, f"{self.name}_Output.txt")
            open(self.output_file, "w").close()
            write_mesh(os.path.join(output_dir, f"{self.name}_ReferenceMesh.vtu"), problem.mesh)

        logger.info(f"Initial objective {problem.current_objective():.6e}, initial volume {problem.initial_volume:.6e}")

    def _stop(self, reason):
        self._converged = True
        self.reason = reason
        logger.info(f"Optimization stopped after {self.iteration} iterations ({reason}).")

    def _record(self, J_old, J_new):
        rel = abs(J_new - J_old) / abs(J_old) if J_old != 0 else abs(J_new - J_old)
        if self.output_file is not None:
            with open(self.output_file, "a") as f:
                f.write(f"{self.iteration}, {J_new}, {min(1.0, rel)};\n")
            write_mesh(os.path.join(self.output_dir, f"{self.name}_Deformed{self.iteration}.vtu"), self.problem.mesh)

    def iter(self):
        """
        Perform one Armijo iteration.

        Notes
        -----
        - A search direction with a non-negative slope is replaced by
          -gradient (logged as a warning)
        - SolveError and AssemblyError propagate, the last accepted design is
          restored first
        """
        if self._converged:
            return

        sp = self.problem
        self.iteration += 1

        lagrange = sp.update_lagrange()
        grad = sp.current_gradient()
        if not np.any(grad):
            self._stop("stationary")
            self.history.append(self.logs())
            return

        d = sp.descent_direction()
        slope = float(grad @ d)
        if not slope < 0:
            logger.warning(f"Search direction is not a descent direction (slope {slope:.3e}). Using -gradient.")
            d = -grad
            slope = float(-(grad @ grad))

        J_old = sp.current_objective()
        p_old = sp.get_parameters()

        try:
            sp.set_parameters(p_old + self.step * d)
            self.accepted = sp.current_objective() <= J_old + self.armijo_slope * self.step * slope
        except GeometryError as e:
            logger.warning(f"Trial step {self.step:.3e} rejected: {e}")
            self.accepted = False
        else:
            if not self.accepted:
                sp.set_parameters(p_old)

        if self.accepted:
            J_new = sp.current_objective()
            self.change = abs(J_new - J_old)
            logger.info(f"Iteration {self.iteration}: step {self.step:.3e} accepted, J = {J_new:.6e}, lagrange = {lagrange:.4e}, volume = {sp.volume():.6e}")
            self._record(J_old, J_new)
            if self.change <= self.tolerance * abs(J_old):
                self._stop("tolerance")
        else:
            self.step /= 2.0
            logger.info(f"Iteration {self.iteration}: step rejected, new step {self.step:.3e}")
            if self.step < self.min_step:
                self._stop("step")

        if not self._converged and self.iteration >= self.max_iter:
            self._stop("max_iter")

        self.desvars = sp.get_parameters()
        self.history.append(self.logs())

    def converged(self):
        return self._converged

    def logs(self):
        return {
            "iteration": self.iteration,
            "objective": self.problem.current_objective(),
            "change": self.change,
            "step": self.step,
            "volume": self.problem.volume(),
            "lagrange": self.problem.lagrange,
            "accepted": self.accepted,
        }

    def optimize(self):
        """Iterate until convergence, returns the history of logs()."""
        while not self._converged:
            self.iter()
        return self.history
