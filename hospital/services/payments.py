"""Payment method catalogue and validation of client-supplied payment details."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping

from hospital.core import config
from hospital.core.errors import FeeMismatchError, InvalidPaymentError

CENTS = Decimal('0.01')
MAX_REFERENCE_LENGTH = 128


@dataclass(frozen=True)
class PaymentMethod:
    value: str
    label: str
    requires_reference: bool


PAYMENT_METHODS = {
    method.value: method
    for method in (
        PaymentMethod('bkash', 'bKash', requires_reference=True),
        PaymentMethod('nagad', 'Nagad', requires_reference=True),
        PaymentMethod('rocket', 'Rocket', requires_reference=True),
        PaymentMethod('card', 'Card', requires_reference=False),
        PaymentMethod('visa', 'Visa', requires_reference=False),
        PaymentMethod('mastercard', 'Mastercard', requires_reference=False),
    )
}


@dataclass(frozen=True)
class NormalizedPayment:
    method: str
    amount: Decimal
    currency: str
    reference: str | None


def find_payment_method(value: Any) -> PaymentMethod | None:
    if not isinstance(value, str):
        return None

    normalized = value.strip().lower()
    if not normalized:
        return None

    return PAYMENT_METHODS.get(normalized)


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_amount(value: Any) -> Decimal:
    if value is None:
        raise InvalidPaymentError('Payment amount is required.')
    # bool is an int subclass; True must not pass as an amount of 1.
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise InvalidPaymentError('Payment amount must be a number.')

    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise InvalidPaymentError('Payment amount must be a number.') from exc

    if not amount.is_finite():
        raise InvalidPaymentError('Payment amount must be a finite number.')
    if amount < 0:
        raise InvalidPaymentError('Payment amount cannot be negative.')

    return to_cents(amount)


def normalize_currency(value: Any, default_currency: str) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default_currency
    if not isinstance(value, str):
        raise InvalidPaymentError('Payment currency must be a three-letter code.')

    currency = value.strip().upper()
    if len(currency) != 3 or not currency.isalpha():
        raise InvalidPaymentError('Payment currency must be a three-letter code.')
    return currency


def normalize_payment(payment: Any, default_currency: str = config.DEFAULT_CURRENCY) -> NormalizedPayment:
    """Validate a raw payment payload and return it in canonical form.

    Raises ``InvalidPaymentError`` for an unknown method, a missing, negative or
    non-finite amount, a malformed currency, or a wallet payment without a
    transaction reference. Card payments may omit the reference.
    """
    if not isinstance(payment, Mapping):
        raise InvalidPaymentError('Payment details are required.')

    method = find_payment_method(payment.get('method'))
    if method is None:
        supported = ', '.join(PAYMENT_METHODS)
        raise InvalidPaymentError(f'Payment method must be one of: {supported}.')

    amount = parse_amount(payment.get('amount'))
    currency = normalize_currency(payment.get('currency'), default_currency)

    raw_reference = payment.get('reference')
    if raw_reference is not None and not isinstance(raw_reference, str):
        raise InvalidPaymentError('Transaction reference must be text.')
    reference = (raw_reference or '').strip() or None

    if method.requires_reference and reference is None:
        raise InvalidPaymentError(f'A transaction reference is required for {method.label} payments.')
    if reference is not None and len(reference) > MAX_REFERENCE_LENGTH:
        raise InvalidPaymentError(f'Transaction reference must be {MAX_REFERENCE_LENGTH} characters or fewer.')

    return NormalizedPayment(method=method.value, amount=amount, currency=currency, reference=reference)


def amounts_match(amount: Decimal, fee: Decimal, tolerance: Decimal) -> bool:
    return abs(to_cents(amount) - to_cents(fee)) <= tolerance


def ensure_amount_matches_fee(
    payment: NormalizedPayment,
    fee: Any,
    tolerance: Decimal = Decimal(config.FEE_TOLERANCE),
) -> None:
    expected = to_cents(Decimal(str(fee)))
    if not amounts_match(payment.amount, expected, tolerance):
        raise FeeMismatchError(
            f'Payment amount {payment.amount} {payment.currency} does not match '
            f'the consultation fee of {expected}.'
        )
