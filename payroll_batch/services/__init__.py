"""
payroll_batch.services -- run processing services.
"""

from payroll_batch.services.executor import PayrollCalculationExecutor
from payroll_batch.services.factory import build_data_source, build_run_service, init_runtime
from payroll_batch.services.run_service import PayrollRunService

__all__ = [
    "PayrollCalculationExecutor",
    "PayrollRunService",
    "build_data_source",
    "build_run_service",
    "init_runtime",
]
