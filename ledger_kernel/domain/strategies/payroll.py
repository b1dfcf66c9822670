"""Payroll run strategy."""

from collections.abc import Mapping
from uuid import UUID

from ledger_kernel.domain.documents import PayrollRunDocument
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.domain.strategy import PostingStrategy


class PayrollRunStrategy(PostingStrategy):
    """
    Dr salaries_expense (gross); Cr salaries_payable (net);
    Cr deductions_payable (gross - net).

    Withheld deductions (tax, social contributions) stay payable until
    remitted.  No deductions line when gross equals net.
    """

    document_type = "payroll_run"
    document_class = PayrollRunDocument
    roles = ("salaries_expense", "salaries_payable", "deductions_payable")

    def required_roles(self, document: PayrollRunDocument) -> tuple[str, ...]:
        if document.deductions > 0:
            return self.roles
        return ("salaries_expense", "salaries_payable")

    def build_lines(
        self, document: PayrollRunDocument, accounts: Mapping[str, UUID]
    ) -> tuple[LineSpec, ...]:
        lines = [
            self._dr(accounts, "salaries_expense", document.gross_amount, document),
            self._cr(accounts, "salaries_payable", document.net_amount, document),
        ]
        if document.deductions > 0:
            lines.append(
                self._cr(accounts, "deductions_payable", document.deductions, document)
            )
        return tuple(lines)
