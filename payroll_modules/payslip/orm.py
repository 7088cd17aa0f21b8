"""
Payslip ORM Persistence Model (``payroll_modules.payslip.orm``).

Responsibility:
    SQLAlchemy model persisting the frozen ``Payslip`` DTO, with
    ``to_dto()`` / ``from_dto()`` round-trip conversion.

Architecture position:
    **Modules layer** -- persistence companion to the pure payslip model.
    Inherits from ``TrackedBase`` which provides id, created_at,
    updated_at, created_by_id and updated_by_id.

Invariants enforced:
    - One payslip per (payroll run, employee) (uq_payslip_run_employee).
    - All monetary fields use Decimal (Numeric(38,9)) -- NEVER float.
    - Breakdown lines are stored as JSON lists with amounts as strings.
    - Financial columns never change after INSERT (see
      ``payroll_kernel.db.immutability.PAYSLIP_FINANCIAL_FIELDS``).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase, UUIDString
from payroll_modules.payslip.models import (
    ExemptionSummary,
    Payslip,
    PayslipLine,
    PayslipStatus,
)


class PayslipModel(TrackedBase):
    """
    ORM model for ``Payslip``.

    Guarantees:
        - ``status`` stores the PayslipStatus .value string.
        - ``total_exemptions`` equals the sum of the four exemption columns.
    """

    __tablename__ = "payroll_payslips"

    __table_args__ = (
        UniqueConstraint("payroll_run_id", "employee_id", name="uq_payslip_run_employee"),
        Index("ix_payslips_run_status", "payroll_run_id", "status"),
        Index("ix_payslips_employee_period", "employee_id", "year", "month"),
    )

    payslip_number: Mapped[str] = mapped_column(String(100), nullable=False)
    payroll_run_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_runs.id"),
        nullable=False,
    )
    employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    financial_year: Mapped[str] = mapped_column(String(20), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=PayslipStatus.GENERATED.value,
    )

    ctc: Mapped[Decimal]
    gross_salary: Mapped[Decimal]
    total_deductions: Mapped[Decimal]
    net_salary: Mapped[Decimal]
    taxable_earnings: Mapped[Decimal]
    taxable_income: Mapped[Decimal]
    annual_taxable_income: Mapped[Decimal]
    tds_amount: Mapped[Decimal]
    professional_tax_amount: Mapped[Decimal | None]
    social_security_employee: Mapped[Decimal | None]
    social_security_employer: Mapped[Decimal | None]
    health_insurance_employee: Mapped[Decimal | None]
    health_insurance_employer: Mapped[Decimal | None]

    housing_exemption: Mapped[Decimal]
    travel_exemption: Mapped[Decimal]
    standard_deduction_share: Mapped[Decimal]
    declared_exemption_share: Mapped[Decimal]
    total_exemptions: Mapped[Decimal]

    earnings_breakdown: Mapped[list] = mapped_column(JSON, nullable=False)
    deductions_breakdown: Mapped[list] = mapped_column(JSON, nullable=False)

    config_checksum: Mapped[str] = mapped_column(String(64), nullable=False)
    generated_at: Mapped[datetime]

    def to_dto(self) -> Payslip:
        return Payslip(
            id=self.id,
            payslip_number=self.payslip_number,
            payroll_run_id=self.payroll_run_id,
            employee_id=self.employee_id,
            company_id=self.company_id,
            month=self.month,
            year=self.year,
            financial_year=self.financial_year,
            currency=self.currency,
            ctc=self.ctc,
            gross_salary=self.gross_salary,
            total_deductions=self.total_deductions,
            net_salary=self.net_salary,
            taxable_earnings=self.taxable_earnings,
            taxable_income=self.taxable_income,
            annual_taxable_income=self.annual_taxable_income,
            tds_amount=self.tds_amount,
            professional_tax_amount=self.professional_tax_amount,
            social_security_employee=self.social_security_employee,
            social_security_employer=self.social_security_employer,
            health_insurance_employee=self.health_insurance_employee,
            health_insurance_employer=self.health_insurance_employer,
            exemptions=ExemptionSummary(
                housing=self.housing_exemption,
                travel=self.travel_exemption,
                standard_deduction=self.standard_deduction_share,
                declared=self.declared_exemption_share,
            ),
            earnings=tuple(PayslipLine.from_dict(d) for d in self.earnings_breakdown),
            deductions=tuple(PayslipLine.from_dict(d) for d in self.deductions_breakdown),
            config_checksum=self.config_checksum,
            generated_at=self.generated_at,
            status=PayslipStatus(self.status),
        )

    @classmethod
    def from_dto(cls, dto: Payslip, created_by_id: UUID) -> PayslipModel:
        if dto.payroll_run_id is None:
            raise ValueError("Persisted payslips must belong to a payroll run")
        return cls(
            id=dto.id,
            payslip_number=dto.payslip_number,
            payroll_run_id=dto.payroll_run_id,
            employee_id=dto.employee_id,
            company_id=dto.company_id,
            month=dto.month,
            year=dto.year,
            financial_year=dto.financial_year,
            currency=dto.currency,
            status=dto.status.value,
            ctc=dto.ctc,
            gross_salary=dto.gross_salary,
            total_deductions=dto.total_deductions,
            net_salary=dto.net_salary,
            taxable_earnings=dto.taxable_earnings,
            taxable_income=dto.taxable_income,
            annual_taxable_income=dto.annual_taxable_income,
            tds_amount=dto.tds_amount,
            professional_tax_amount=dto.professional_tax_amount,
            social_security_employee=dto.social_security_employee,
            social_security_employer=dto.social_security_employer,
            health_insurance_employee=dto.health_insurance_employee,
            health_insurance_employer=dto.health_insurance_employer,
            housing_exemption=dto.exemptions.housing,
            travel_exemption=dto.exemptions.travel,
            standard_deduction_share=dto.exemptions.standard_deduction,
            declared_exemption_share=dto.exemptions.declared,
            total_exemptions=dto.exemptions.total,
            earnings_breakdown=[line.to_dict() for line in dto.earnings],
            deductions_breakdown=[line.to_dict() for line in dto.deductions],
            config_checksum=dto.config_checksum,
            generated_at=dto.generated_at,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
