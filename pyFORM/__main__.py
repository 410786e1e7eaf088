"""Run a shape optimization described by a config file.

>>> python -m pyFORM cantilever.ini -v
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import load_config, build
from ._exceptions import PyFORMException


def _generate_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pyFORM", description="Run a 2D shape optimization from a config file.")
    parser.add_argument("config", type=str, help="Path to the .ini config file")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Show iteration summaries (-v) or solver residuals (-vv)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _generate_parser().parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s - %(name)s - %(message)s")

    try:
        config = load_config(args.config)
        _, problem, _, optimizer = build(config)
        history = optimizer.optimize()
    except PyFORMException as e:
        logging.getLogger("pyFORM").error(str(e))
        return 1

    last = history[-1] if len(history) > 0 else optimizer.logs()
    print(f"{problem.name}: J = {last['objective']:.6e} after {optimizer.iteration} iterations ({optimizer.reason})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
