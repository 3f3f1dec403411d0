"""
Cooperative Lending

Loan lifecycle engine for a member cooperative: applications, checklist
verification, approval, release with amortized payment schedules,
repayment tracking, penalties and applicant compliance.
"""

__version__ = "1.0.0"
