"""
Domain models for the provisioning engine.

All models are re-exported here for convenient access:

    from autorpi.core.models import Config, Receipt, UnitResult, Outcome, RunReport
"""

from autorpi.core.models.config import Config, ConfigValue
from autorpi.core.models.receipt import Receipt
from autorpi.core.models.report import RunReport
from autorpi.core.models.result import Outcome, UnitResult

__all__ = [
    # config.py
    "Config",
    "ConfigValue",
    # result.py
    "Outcome",
    # receipt.py
    "Receipt",
    # report.py
    "RunReport",
    "UnitResult",
]
