"""Bank aggregate: a saved payout destination.

A user can keep several accounts, but never the same account at the same
bank twice. One of them may be flagged as the default.
"""

from datetime import UTC, datetime

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Boolean, DateTime, Identifier, String
from protean.utils.globals import current_domain

from marketpay.domain import marketpay
from marketpay.withdrawal.withdrawal import Country, currency_for_country, mask_account_number


@marketpay.aggregate
class Bank:
    user_id = Identifier(required=True)
    bank_name = String(max_length=255, required=True)
    account_number = String(max_length=50, required=True)
    account_name = String(max_length=255, required=True)
    country = String(choices=Country, default=Country.NG.value)
    currency = String(max_length=3, required=True)
    routing_number = String(max_length=50)
    sort_code = String(max_length=20)
    is_default = Boolean(default=False)
    created_at = DateTime()
    updated_at = DateTime()

    @property
    def masked_account_number(self) -> str:
        return mask_account_number(self.account_number)

    def to_response(self) -> dict:
        data = self.to_dict()
        data["masked_account_number"] = self.masked_account_number
        return data


@marketpay.repository(part_of=Bank)
class BankRepository:
    def for_user(self, user_id) -> list[Bank]:
        return self.query.filter(user_id=str(user_id)).order_by("created_at").limit(None).all().items

    def find_duplicate(self, user_id, bank_name, account_number, exclude_id=None) -> Bank | None:
        matches = self.query.filter(
            user_id=str(user_id),
            bank_name=bank_name,
            account_number=account_number,
        ).all()
        return next((b for b in matches.items if str(b.id) != str(exclude_id)), None)


def _ensure_unique(user_id, bank_name, account_number, exclude_id=None) -> None:
    if current_domain.repository_for(Bank).find_duplicate(user_id, bank_name, account_number, exclude_id):
        raise ValidationError({"account_number": ["Bank account with this account number already exists"]})


def _clear_other_defaults(user_id, keep_id) -> None:
    repo = current_domain.repository_for(Bank)
    for bank in repo.for_user(user_id):
        if bank.is_default and str(bank.id) != str(keep_id):
            bank.is_default = False
            bank.updated_at = datetime.now(UTC)
            repo.add(bank)


def list_banks(user_id) -> list[Bank]:
    return current_domain.repository_for(Bank).for_user(user_id)


@marketpay.command(part_of="Bank")
class AddBank:
    user_id = Identifier(required=True)
    bank_name = String(required=True, max_length=255)
    account_number = String(required=True, max_length=50)
    account_name = String(required=True, max_length=255)
    country = String(max_length=2)
    currency = String(max_length=3)
    routing_number = String(max_length=50)
    sort_code = String(max_length=20)
    is_default = Boolean(default=False)


@marketpay.command(part_of="Bank")
class UpdateBank:
    bank_id = Identifier(required=True)
    user_id = Identifier(required=True)
    bank_name = String(max_length=255)
    account_number = String(max_length=50)
    account_name = String(max_length=255)
    routing_number = String(max_length=50)
    sort_code = String(max_length=20)
    is_default = Boolean()


@marketpay.command(part_of="Bank")
class RemoveBank:
    bank_id = Identifier(required=True)
    user_id = Identifier(required=True)


@marketpay.command_handler(part_of=Bank)
class BankHandler:
    def _owned(self, bank_id, user_id) -> Bank:
        bank = current_domain.repository_for(Bank).get(bank_id)
        if str(bank.user_id) != str(user_id):
            raise ObjectNotFoundError(f"Bank {bank_id} not found")
        return bank

    @handle(AddBank)
    def add_bank(self, command):
        _ensure_unique(command.user_id, command.bank_name, command.account_number)

        country = (command.country or Country.NG.value).upper()
        now = datetime.now(UTC)
        bank = Bank(
            user_id=command.user_id,
            bank_name=command.bank_name,
            account_number=command.account_number,
            account_name=command.account_name,
            country=country,
            currency=(command.currency or currency_for_country(country)).upper(),
            routing_number=command.routing_number,
            sort_code=command.sort_code,
            is_default=bool(command.is_default),
            created_at=now,
            updated_at=now,
        )
        repo = current_domain.repository_for(Bank)
        if not repo.for_user(command.user_id):
            bank.is_default = True
        repo.add(bank)
        if bank.is_default:
            _clear_other_defaults(command.user_id, bank.id)
        return bank.to_response()

    @handle(UpdateBank)
    def update_bank(self, command):
        bank = self._owned(command.bank_id, command.user_id)
        bank_name = command.bank_name or bank.bank_name
        account_number = command.account_number or bank.account_number
        if (bank_name, account_number) != (bank.bank_name, bank.account_number):
            _ensure_unique(bank.user_id, bank_name, account_number, exclude_id=bank.id)

        for name in ("bank_name", "account_number", "account_name", "routing_number", "sort_code"):
            value = getattr(command, name)
            if value:
                setattr(bank, name, value)
        if command.is_default is not None:
            bank.is_default = command.is_default
        bank.updated_at = datetime.now(UTC)

        current_domain.repository_for(Bank).add(bank)
        if bank.is_default:
            _clear_other_defaults(bank.user_id, bank.id)
        return bank.to_response()

    @handle(RemoveBank)
    def remove_bank(self, command):
        bank = self._owned(command.bank_id, command.user_id)
        current_domain.repository_for(Bank)._dao.delete(bank)
        return {"bank_id": str(bank.id), "deleted": True}
