"""
Process wiring from PayrollSettings.

    init_runtime(settings)                   -- logging and database engine
    build_data_source(settings, clock)       -- YAML fixture or backend API
    build_run_service(session, settings)     -- PayrollRunService
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from payroll_config.settings import PayrollSettings
from payroll_kernel.db.engine import init_engine_from_url
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.logging_config import configure_logging, get_logger
from payroll_services.data_source import (
    BackendPayrollDataSource,
    PayrollDataSource,
    StaticPayrollDataSource,
)
from payroll_services.gateway import BackendGateway

from payroll_batch.services.run_service import PayrollRunService

logger = get_logger("batch.factory")


def init_runtime(settings: PayrollSettings) -> None:
    configure_logging(level=settings.log_level_value)
    init_engine_from_url(settings.database_url, echo=settings.db_echo)


def build_data_source(settings: PayrollSettings, clock: Clock | None = None) -> PayrollDataSource:
    if settings.input_fixture_path is not None:
        logger.info("data_source_selected", extra={"kind": "fixture"})
        return StaticPayrollDataSource.from_yaml(settings.input_fixture_path, clock=clock)

    logger.info(
        "data_source_selected",
        extra={"kind": "backend", "backend_base_url": settings.backend_base_url},
    )
    return BackendPayrollDataSource(
        BackendGateway.from_settings(settings),
        page_size=settings.backend_page_size,
        clock=clock,
    )


def build_run_service(
    session: Session,
    settings: PayrollSettings,
    clock: Clock | None = None,
    data_source: PayrollDataSource | None = None,
) -> PayrollRunService:
    clock = clock or SystemClock()
    return PayrollRunService(
        session,
        data_source or build_data_source(settings, clock),
        clock=clock,
        max_workers=settings.max_workers,
    )
