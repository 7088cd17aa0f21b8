"""
Payroll Kernel

Foundation for the statutory payroll engine:
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging
- Money/Currency value objects with minor-unit rounding
- Workflow definitions for run, payslip and declaration lifecycles
- SQLAlchemy persistence base with immutability enforcement
"""

__version__ = "0.1.0"
