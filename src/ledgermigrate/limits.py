"""
Transfer-limit invariants for multi-currency accounts.

Pure functions with no I/O, shared by live account creation/update request
handlers and by the migration engine, so that reconstructed historical
accounts obey exactly the same rules as accounts created live.

Validation uses first-failure semantics: fields are checked in a fixed
order and the first violation raises a ValidationError naming the field.

Usage:
    >>> validate_limits({"dailyTransferLimit": 3000, "monthlyTransferLimit": 5000})
    TransferLimits(daily=Decimal('3000'), monthly=Decimal('5000'))
    >>> validate_account_update({})
    Traceback (most recent call last):
    ...
    ValidationError: no fields to update
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from ledgermigrate.config import DEFAULT_SUPPORTED_CURRENCIES
from ledgermigrate.exceptions import ValidationError
from ledgermigrate.models import AccountStatus, AccountType, SourceAccount

ACCOUNT_TYPES: frozenset[str] = frozenset(t.value for t in AccountType)
UPDATABLE_STATUSES: frozenset[str] = frozenset(s.value for s in AccountStatus)
UPDATABLE_FIELDS: tuple[str, ...] = (
    "name",
    "status",
    "dailyTransferLimit",
    "monthlyTransferLimit",
)
CRYPTO_CURRENCIES: frozenset[str] = frozenset({"USDT"})


@dataclass(frozen=True)
class TransferLimits:
    """
    Daily and monthly transfer caps for one account.

    Attributes:
        daily: Maximum total of outgoing transfers per calendar day.
        monthly: Maximum total of outgoing transfers per calendar month.
    """

    daily: Decimal
    monthly: Decimal

    def within(self, daily_total: Decimal, monthly_total: Decimal) -> bool:
        """Check that running totals do not exceed the caps."""
        return daily_total <= self.daily and monthly_total <= self.monthly

    def permits_transfer(
        self,
        amount: Decimal,
        daily_total: Decimal,
        monthly_total: Decimal,
    ) -> bool:
        """Check that a new outgoing transfer keeps both totals within the caps."""
        return self.within(daily_total + amount, monthly_total + amount)


# Tiers
FIAT_TIER = TransferLimits(daily=Decimal("5000.00"), monthly=Decimal("50000.00"))
EXTERNAL_TIER = TransferLimits(daily=Decimal("2000.00"), monthly=Decimal("20000.00"))
CRYPTO_TIER = TransferLimits(daily=Decimal("10000.00"), monthly=Decimal("100000.00"))

DEFAULT_LIMIT_POLICY: dict[tuple[AccountType, str], TransferLimits] = {
    (AccountType.INTERNAL, "USD"): FIAT_TIER,
    (AccountType.INTERNAL, "EUR"): FIAT_TIER,
    (AccountType.INTERNAL, "USDT"): CRYPTO_TIER,
    (AccountType.EXTERNAL, "USD"): EXTERNAL_TIER,
    (AccountType.EXTERNAL, "EUR"): EXTERNAL_TIER,
    (AccountType.EXTERNAL, "USDT"): CRYPTO_TIER,
    (AccountType.CRYPTO, "USD"): CRYPTO_TIER,
    (AccountType.CRYPTO, "EUR"): CRYPTO_TIER,
    (AccountType.CRYPTO, "USDT"): CRYPTO_TIER,
}
"""Default transfer limits keyed by (account type, currency)."""

# Currencies missing from the table fall back per account type.
_TYPE_FALLBACK: dict[AccountType, TransferLimits] = {
    AccountType.INTERNAL: FIAT_TIER,
    AccountType.EXTERNAL: EXTERNAL_TIER,
    AccountType.CRYPTO: CRYPTO_TIER,
}


def default_limits_for(account_type: AccountType, currency: str) -> TransferLimits:
    """
    Look up the default transfer limits for an account.

    The lookup is total: every account type and currency yields a tier.
    Crypto currencies get the crypto tier regardless of the table.

    Args:
        account_type: Account type of the account.
        currency: ISO-style currency code.

    Returns:
        The default TransferLimits.
    """
    currency = currency.upper()
    policy = DEFAULT_LIMIT_POLICY.get((account_type, currency))
    if policy is not None:
        return policy
    if currency in CRYPTO_CURRENCIES:
        return CRYPTO_TIER
    return _TYPE_FALLBACK[account_type]


def apply_default_limits(account: SourceAccount) -> SourceAccount:
    """
    Return a copy of the account with missing transfer limits filled in.

    Limits already present on the account are kept as they are (they are
    validated afterwards, not replaced). The input is never mutated.

    Args:
        account: Source account, possibly without limits.

    Returns:
        A new SourceAccount whose limit fields are both populated.
    """
    defaults = default_limits_for(account.account_type, account.currency)
    updates: dict[str, Any] = {}
    if account.daily_transfer_limit is None:
        updates["daily_transfer_limit"] = defaults.daily
    if account.monthly_transfer_limit is None:
        updates["monthly_transfer_limit"] = defaults.monthly
    if not updates:
        return account
    return account.model_copy(update=updates)


def validate_account_creation(
    payload: Mapping[str, Any],
    supported_currencies: frozenset[str] = DEFAULT_SUPPORTED_CURRENCIES,
) -> None:
    """
    Validate an account creation payload.

    Fields are checked in the order userId, accountType, name, currency.

    Args:
        payload: Request payload with camelCase keys.
        supported_currencies: Currencies an account may be opened in.

    Raises:
        ValidationError: For the first violated field.
    """
    if not payload.get("userId"):
        raise ValidationError("userId", "userId is required")

    account_type = payload.get("accountType")
    if not account_type:
        raise ValidationError("accountType", "accountType is required")
    if account_type not in ACCOUNT_TYPES:
        raise ValidationError(
            "accountType",
            f"accountType must be one of {', '.join(sorted(ACCOUNT_TYPES))}",
        )

    if not payload.get("name"):
        raise ValidationError("name", "name is required")

    currency = payload.get("currency")
    if not currency:
        raise ValidationError("currency", "currency is required")
    if currency not in supported_currencies:
        raise ValidationError(
            "currency",
            f"currency must be one of {', '.join(sorted(supported_currencies))}",
        )


def validate_limits(payload: Mapping[str, Any]) -> TransferLimits:
    """
    Validate a pair of transfer limits.

    Args:
        payload: Mapping holding ``dailyTransferLimit`` and
            ``monthlyTransferLimit``.

    Returns:
        The parsed TransferLimits.

    Raises:
        ValidationError: If a limit is missing, is not a number, is
            negative, or the monthly limit is below the daily limit.
    """
    raw_daily = payload.get("dailyTransferLimit")
    raw_monthly = payload.get("monthlyTransferLimit")

    if raw_daily is None:
        raise ValidationError("dailyTransferLimit", "dailyTransferLimit is required")
    if raw_monthly is None:
        raise ValidationError("monthlyTransferLimit", "monthlyTransferLimit is required")

    daily = _parse_amount(raw_daily)
    if daily is None:
        raise ValidationError("dailyTransferLimit", "dailyTransferLimit must be a valid number")
    monthly = _parse_amount(raw_monthly)
    if monthly is None:
        raise ValidationError(
            "monthlyTransferLimit", "monthlyTransferLimit must be a valid number"
        )

    if daily < 0:
        raise ValidationError("dailyTransferLimit", "dailyTransferLimit cannot be negative")
    if monthly < 0:
        raise ValidationError("monthlyTransferLimit", "monthlyTransferLimit cannot be negative")

    if monthly < daily:
        raise ValidationError(
            "monthlyTransferLimit",
            "monthlyTransferLimit must be greater than or equal to dailyTransferLimit",
        )

    return TransferLimits(daily=daily, monthly=monthly)


def validate_account_update(payload: Mapping[str, Any]) -> None:
    """
    Validate an account update payload.

    At least one updatable field must be present. When only one of the two
    limits is given, the other defaults to 0 before both go through
    validate_limits.

    Args:
        payload: Request payload with camelCase keys.

    Raises:
        ValidationError: If nothing is being updated, the status is unknown,
            or the limits are invalid.
    """
    if not any(_is_present(payload.get(name)) for name in UPDATABLE_FIELDS):
        raise ValidationError("payload", "no fields to update")

    status = payload.get("status")
    if _is_present(status) and status not in UPDATABLE_STATUSES:
        raise ValidationError(
            "status",
            f"status must be one of {', '.join(sorted(UPDATABLE_STATUSES))}",
        )

    daily = payload.get("dailyTransferLimit")
    monthly = payload.get("monthlyTransferLimit")
    if daily is not None or monthly is not None:
        validate_limits(
            {
                "dailyTransferLimit": daily if daily is not None else 0,
                "monthlyTransferLimit": monthly if monthly is not None else 0,
            }
        )


def _is_present(value: Any) -> bool:
    return value is not None and value != ""


def _parse_amount(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount
