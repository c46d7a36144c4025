"""Loan relations between a user and their trust circle."""
from .loan_relations import BalanceSummary, LoanRelation, LoanRelationReader

__all__ = [
    "BalanceSummary",
    "LoanRelation",
    "LoanRelationReader",
]
