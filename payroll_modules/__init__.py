"""
Payroll domain modules.

    salary         -- salary structures and component resolution
    declarations   -- employee tax declarations and capping
    adjustments    -- variable pay, arrears, reimbursements, loans
    workflows      -- run, payslip and declaration lifecycles
    payslip        -- payslip models, assembler and persistence
"""
