"""Fixed asset disposal strategy."""

from collections.abc import Mapping
from uuid import UUID

from ledger_kernel.domain.documents import AssetDisposalDocument
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.domain.strategy import PostingStrategy


class AssetDisposalStrategy(PostingStrategy):
    """
    Remove a fixed asset from the books.

    Lines:
        Cr fixed_asset                 cost
        Dr accumulated_depreciation    accumulated depreciation (if > 0)
        Dr cash                        proceeds (if > 0)
        Cr gain_on_disposal            proceeds - book value (if > 0)
        Dr loss_on_disposal            book value - proceeds (if > 0)
    """

    document_type = "asset_disposal"
    document_class = AssetDisposalDocument
    roles = (
        "fixed_asset",
        "accumulated_depreciation",
        "cash",
        "gain_on_disposal",
        "loss_on_disposal",
    )

    def required_roles(self, document: AssetDisposalDocument) -> tuple[str, ...]:
        roles = ["fixed_asset"]
        if document.accumulated_depreciation > 0:
            roles.append("accumulated_depreciation")
        if document.proceeds > 0:
            roles.append("cash")
        if document.gain > 0:
            roles.append("gain_on_disposal")
        elif document.gain < 0:
            roles.append("loss_on_disposal")
        return tuple(roles)

    def build_lines(
        self, document: AssetDisposalDocument, accounts: Mapping[str, UUID]
    ) -> tuple[LineSpec, ...]:
        lines = [self._cr(accounts, "fixed_asset", document.cost, document)]
        if document.accumulated_depreciation > 0:
            lines.append(
                self._dr(
                    accounts, "accumulated_depreciation", document.accumulated_depreciation, document
                )
            )
        if document.proceeds > 0:
            lines.append(self._dr(accounts, "cash", document.proceeds, document))

        gain = document.gain
        if gain > 0:
            lines.append(self._cr(accounts, "gain_on_disposal", gain, document))
        elif gain < 0:
            lines.append(self._dr(accounts, "loss_on_disposal", -gain, document))
        return tuple(lines)
