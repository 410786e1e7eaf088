from ..Problem.CPU.ShapeProblem import ShapeProblem


class Optimizer:
    """Base class of the shape optimization drivers.

    A driver owns a :class:`pyFORM.Problem.CPU.ShapeProblem.ShapeProblem` and
    moves its design parameters one accepted (or rejected) step at a time.
    """
    def __init__(self, problem: ShapeProblem, *args, **kwargs):
        """
        Parameters
        ----------
        problem : ShapeProblem
            Coupled shape parametrization and PDE problem.
        """
        self.problem = problem
        self.desvars = problem.get_parameters()

    def iter(self, *args, **kwargs):
        """Advance the design by one line-search step and update `self.desvars`."""
        raise NotImplementedError("iter is provided by the concrete driver.")

    def converged(self, *args, **kwargs):
        """True once a stopping criterion has been met."""
        raise NotImplementedError("converged is provided by the concrete driver.")

    def logs(self, *args, **kwargs):
        """Dictionary describing the last iteration."""
        raise NotImplementedError("logs is provided by the concrete driver.")
