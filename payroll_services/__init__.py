"""
Outer services: the backend gateway, its typed client and the run input
sources.
"""

from payroll_services.backend_client import PayrollBackendClient
from payroll_services.data_source import (
    BackendPayrollDataSource,
    EmployeeFetchError,
    PayrollDataSource,
    RunSnapshot,
    StaticPayrollDataSource,
)
from payroll_services.gateway import BackendGateway

__all__ = [
    "BackendGateway",
    "BackendPayrollDataSource",
    "EmployeeFetchError",
    "PayrollBackendClient",
    "PayrollDataSource",
    "RunSnapshot",
    "StaticPayrollDataSource",
]
