"""Integration tests for the wallet, withdrawal, admin and bank endpoints."""

from marketpay.actors import Actor
from marketpay.collaborators.ports import NotificationKind


def _withdrawal_body(otp_id, code, amount=1000.0, **overrides):
    body = {
        "user_id": "user-001",
        "otp_id": otp_id,
        "otp_code": code,
        "amount": amount,
        "currency": "NGN",
        "country": "NG",
        "bank_name": "First Bank",
        "account_number": "0123456789",
        "account_name": "Ada Obi",
    }
    body.update(overrides)
    return body


def _otp(client, notifier, amount=1000.0):
    response = client.post("/withdrawals/otp", json={"user_id": "user-001", "amount": amount})
    assert response.status_code == 201
    code = notifier.sent_to(Actor.user("user-001"), NotificationKind.WITHDRAWAL_OTP)[-1]["payload"]["otp_code"]
    return response.json()["otp_id"], code


def _wrong(code):
    return "000000" if code != "000000" else "111111"


class TestWalletAPI:
    def test_open_and_read_wallet(self, client):
        created = client.post("/wallet", json={"user_id": "user-009"})
        assert created.status_code == 201

        wallet = client.get("/wallet/user-009").json()
        assert wallet["wallet_id"] == created.json()["wallet_id"]
        assert wallet["balance"] == 0.0
        assert wallet["currency"] == "NGN"

    def test_duplicate_wallet_is_400(self, client):
        client.post("/wallet", json={"user_id": "user-009"})
        assert client.post("/wallet", json={"user_id": "user-009"}).status_code == 400

    def test_missing_wallet_is_404(self, client):
        assert client.get("/wallet/nobody").status_code == 404

    def test_transaction_history(self, client, fund):
        fund("user-001", 100, reference_id="A")
        fund("user-001", 200, reference_id="B")

        page = client.get("/wallet/user-001/transactions", params={"page_size": 1}).json()

        assert page["total"] == 2
        assert [t["reference_id"] for t in page["transactions"]] == ["B"]
        assert page["transactions"][0]["metadata"] == {}

    def test_page_size_over_limit_is_422(self, client, fund):
        fund("user-001", 100)
        assert client.get("/wallet/user-001/transactions", params={"page_size": 500}).status_code == 422

    def test_fund_and_complete(self, client):
        client.post("/wallet", json={"user_id": "user-001"})
        funding = client.post(
            "/wallet/fund",
            json={"user_id": "user-001", "amount": 750, "payment_method": "CARD_GATEWAY_A", "payer_email": "u@example.com"},
        )
        assert funding.status_code == 201
        reference = funding.json()["payment_reference"]
        assert reference.startswith("WF_")

        completed = client.post(f"/wallet/funding/{reference}/complete", json={"external_reference": "ext-9"})

        assert completed.json()["status"] == "COMPLETED"
        assert client.get("/wallet/user-001").json()["balance"] == 750.0


class TestWithdrawalAPI:
    def test_otp_then_withdrawal(self, client, fund, notifier):
        fund("user-001", 5000)
        otp_id, code = _otp(client, notifier)

        check = client.post("/withdrawals/otp/validate", json={"otp_id": otp_id, "otp_code": code})
        assert check.json()["valid"] is True

        response = client.post("/withdrawals", json=_withdrawal_body(otp_id, code))

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["account_number"] == "******6789"
        assert [w["id"] for w in client.get("/withdrawals/user/user-001").json()] == [data["id"]]
        assert client.get(f"/withdrawals/{data['id']}").json()["amount"] == 1000.0

    def test_wrong_code_is_403(self, client, fund, notifier):
        fund("user-001", 5000)
        otp_id, code = _otp(client, notifier)

        response = client.post("/withdrawals", json=_withdrawal_body(otp_id, _wrong(code)))

        assert response.status_code == 403
        assert response.json() == {"error": "Invalid OTP code. 2 attempt(s) remaining"}

    def test_validate_wrong_code_is_403(self, client, fund, notifier):
        fund("user-001", 5000)
        otp_id, code = _otp(client, notifier)

        response = client.post("/withdrawals/otp/validate", json={"otp_id": otp_id, "otp_code": _wrong(code)})

        assert response.status_code == 403

    def test_otp_needs_funds(self, client, fund):
        fund("user-001", 10)
        response = client.post("/withdrawals/otp", json={"user_id": "user-001", "amount": 1000})
        assert response.status_code == 400


class TestAdminAPI:
    def _pending(self, client, fund, notifier, amount=1000.0):
        fund("user-001", 1000)
        otp_id, code = _otp(client, notifier, amount=amount)
        return client.post("/withdrawals", json=_withdrawal_body(otp_id, code, amount=amount)).json()

    def test_mark_done_debits_wallet(self, client, fund, notifier):
        withdrawal = self._pending(client, fund, notifier)

        response = client.post(
            f"/admin/withdrawals/{withdrawal['id']}/done",
            json={"admin_id": "admin-001", "transaction_reference": "NIP-1"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"
        assert client.get("/wallet/user-001").json()["balance"] == 0.0

    def test_reject_needs_notes(self, client, fund, notifier):
        withdrawal = self._pending(client, fund, notifier)
        response = client.post(f"/admin/withdrawals/{withdrawal['id']}/rejected", json={"admin_id": "admin-001"})
        assert response.status_code == 400

    def test_final_status_is_400(self, client, fund, notifier):
        withdrawal = self._pending(client, fund, notifier)
        client.post(f"/admin/withdrawals/{withdrawal['id']}/rejected", json={"admin_id": "admin-001", "notes": "No"})

        response = client.post(f"/admin/withdrawals/{withdrawal['id']}/done", json={"admin_id": "admin-001"})

        assert response.status_code == 400

    def test_unknown_decision_is_404(self, client, fund, notifier):
        withdrawal = self._pending(client, fund, notifier)
        response = client.post(f"/admin/withdrawals/{withdrawal['id']}/approve", json={"admin_id": "admin-001"})
        assert response.status_code == 404

    def test_list_and_stats(self, client, fund, notifier):
        self._pending(client, fund, notifier, amount=400)

        pending = client.get("/admin/withdrawals", params={"status": "pending"}).json()
        stats = client.get("/admin/withdrawals/stats").json()

        assert len(pending) == 1
        assert stats["pending_count"] == 1
        assert stats["pending_amount"] == 400.0

    def test_duplicate_credit_endpoints(self, client, fund):
        for _ in range(2):
            fund("user-001", 300, reference_id="PAY-X")

        found = client.get("/admin/wallets/user-001/duplicates").json()
        preview = client.get("/admin/wallets/user-001/duplicates/preview").json()
        corrected = client.post("/admin/wallets/user-001/duplicates/correct").json()
        check = client.get("/admin/wallets/user-001/duplicates/PAY-X").json()

        assert found["duplicate_groups"] == 1
        assert preview["balance_after_fix"] == 300.0
        assert corrected["total_amount_removed"] == 300.0
        assert check["is_duplicated"] is False
        assert check["credit_count"] == 2


class TestBankAPI:
    def test_bank_lifecycle(self, client):
        created = client.post(
            "/banks",
            json={"user_id": "user-001", "bank_name": "First Bank", "account_number": "0123456789", "account_name": "Ada Obi"},
        )
        assert created.status_code == 201
        bank_id = created.json()["id"]

        updated = client.put(f"/banks/{bank_id}", json={"user_id": "user-001", "account_name": "Ada N. Obi"})
        assert updated.json()["account_name"] == "Ada N. Obi"
        assert len(client.get("/banks/user/user-001").json()) == 1

        assert client.delete(f"/banks/{bank_id}", params={"user_id": "user-002"}).status_code == 404
        assert client.delete(f"/banks/{bank_id}", params={"user_id": "user-001"}).status_code == 200
        assert client.get("/banks/user/user-001").json() == []
