"""
payroll_batch -- Monthly payroll run processing.

Creates one run per (company, month, year), computes every employee's
payslip in a thread pool from a single input snapshot, persists payslips
and per-employee failure records from one writer, and locks the run.

Architecture:
    payroll_batch/ is a top-level package.  Nothing in kernel/, engines/
    or config/ imports from payroll_batch at module load time.
"""
