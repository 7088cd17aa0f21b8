"""
Import every ORM model so ``Base.metadata`` knows all tables.

Called by ``payroll_kernel.db.engine.create_tables`` before
``metadata.create_all``.
"""


def import_all_orm_models() -> None:
    import payroll_batch.models  # noqa: F401
    import payroll_modules.payslip.orm  # noqa: F401
