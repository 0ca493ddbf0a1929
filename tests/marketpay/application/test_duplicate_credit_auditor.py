"""Application tests for finding and correcting duplicate wallet credits."""

import pytest
from protean import current_domain

from marketpay.wallet import ledger
from marketpay.wallet.auditor import (
    REVERSAL_REASON,
    CorrectDuplicateCredits,
    find_duplicate_credits,
    preview_correction,
    verify_reference,
)
from marketpay.wallet.history import get_balance
from marketpay.wallet.transaction import Transaction, TransactionStatus, TransactionType
from marketpay.wallet.wallet import InsufficientFunds


def _triple_credit(fund, user_id="user-001"):
    for _ in range(3):
        fund(user_id, 2000, reference_id="PAY-DUP", description="Payment for order ord-9")


def _correct(user_id="user-001"):
    return current_domain.process(CorrectDuplicateCredits(user_id=user_id), asynchronous=False)


class TestFindDuplicates:
    def test_three_identical_credits_form_one_cluster(self, fund):
        _triple_credit(fund)

        clusters = find_duplicate_credits("user-001")

        assert len(clusters) == 1
        cluster = clusters[0]
        assert cluster.reference_id == "PAY-DUP"
        assert len(cluster.excess) == 2
        assert cluster.removable_amount == 4000.0
        assert cluster.kept.created_at <= cluster.excess[0].created_at

    def test_same_reference_different_amount_is_not_duplicate(self, fund):
        fund("user-001", 2000, reference_id="PAY-1")
        fund("user-001", 1500, reference_id="PAY-1")
        assert find_duplicate_credits("user-001") == []

    def test_credits_without_reference_are_ignored(self):
        ledger.credit("user-001", 100)
        ledger.credit("user-001", 100)
        assert find_duplicate_credits("user-001") == []


class TestPreviewCorrection:
    def test_preview_totals(self, fund):
        _triple_credit(fund)

        preview = preview_correction("user-001")

        assert preview["duplicate_groups"] == 1
        assert preview["transactions_to_remove"] == 2
        assert preview["total_amount_to_remove"] == 4000.0
        assert preview["current_balance"] == 6000.0
        assert preview["balance_after_fix"] == 2000.0
        assert preview["warning"] is None

    def test_warning_when_duplicated_funds_were_spent(self, fund):
        _triple_credit(fund)
        ledger.debit("user-001", 6000, reference_id="SPENT")

        preview = preview_correction("user-001")

        assert preview["balance_after_fix"] == -4000.0
        assert "negative" in preview["warning"]


class TestCorrectDuplicateCredits:
    def test_correction_debits_excess_and_reverses_rows(self, fund):
        _triple_credit(fund)

        result = _correct()

        assert result["total_amount_removed"] == 4000.0
        assert result["correction_reference"].startswith("CORRECTION_")
        assert get_balance("user-001")["balance"] == 2000.0

        rows = verify_reference("user-001", "PAY-DUP")
        assert rows["credit_count"] == 3
        assert rows["active_credit_count"] == 1
        assert rows["is_duplicated"] is False
        reversed_rows = [t for t in rows["transactions"] if t.status == TransactionStatus.REVERSED.value]
        assert len(reversed_rows) == 2
        assert all(t.reversal_reason == REVERSAL_REASON for t in reversed_rows)
        assert all(t.metadata_dict["correction_applied"] is True for t in reversed_rows)

    def test_correction_row_metadata(self, fund):
        _triple_credit(fund)
        result = _correct()

        correction_id = result["corrections"][0]["correction_transaction_id"]
        correction = current_domain.repository_for(Transaction).get(correction_id)
        assert correction.transaction_type == TransactionType.DEBIT.value
        assert correction.amount == 4000.0
        metadata = correction.metadata_dict
        assert metadata["correction_type"] == "duplicate_credit_removal"
        assert metadata["original_reference"] == "PAY-DUP"
        assert metadata["duplicate_count"] == 3
        assert len(metadata["transactions_removed"]) == 2
        assert metadata["performed_by"] == "system:auditor"

    def test_correction_is_idempotent(self, fund):
        _triple_credit(fund)
        _correct()

        second = _correct()

        assert second["corrections"] == []
        assert find_duplicate_credits("user-001") == []
        assert get_balance("user-001")["balance"] == 2000.0

    def test_correction_refuses_to_overdraw(self, fund):
        _triple_credit(fund)
        ledger.debit("user-001", 6000, reference_id="SPENT")

        with pytest.raises(InsufficientFunds):
            _correct()

        assert get_balance("user-001")["balance"] == 0.0
        assert len(find_duplicate_credits("user-001")[0].excess) == 2

    def test_clean_wallet_is_left_alone(self, fund):
        fund("user-001", 500, reference_id="PAY-1")
        result = _correct()
        assert result["corrections"] == []
        assert get_balance("user-001")["balance"] == 500.0
