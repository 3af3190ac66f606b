"""prodplan: plans and applies the productized subset of a multi-module Maven tree.

Typical use goes through the ``prodplan`` command; programmatic callers use
:func:`prodplan.orchestrator.run` with a :class:`prodplan.config.PlannerConfig`.
"""

from .config import PlannerConfig, load_config
from .errors import ExitCode, PlannerError
from .orchestrator import run
from .planner import Plan
from .taxonomy import Mode

__all__ = ["ExitCode", "Mode", "Plan", "PlannerConfig", "PlannerError", "load_config", "run"]
__version__ = "0.1.0"
