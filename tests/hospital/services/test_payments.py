from decimal import Decimal

import pytest

from hospital.core.errors import FeeMismatchError, InvalidPaymentError
from hospital.services.payments import (
    NormalizedPayment,
    amounts_match,
    ensure_amount_matches_fee,
    find_payment_method,
    normalize_payment,
)


def test_find_payment_method_ignores_case_and_whitespace() -> None:
    assert find_payment_method('  NaGaD ').value == 'nagad'
    assert find_payment_method('') is None
    assert find_payment_method(None) is None
    assert find_payment_method(7) is None


def test_normalize_payment_fills_default_currency_and_rounds_amount() -> None:
    payment = normalize_payment({'method': 'Visa', 'amount': 1799.999}, default_currency='BDT')

    assert payment == NormalizedPayment(method='visa', amount=Decimal('1800.00'), currency='BDT', reference=None)


def test_normalize_payment_keeps_wallet_reference() -> None:
    payment = normalize_payment({'method': 'rocket', 'amount': '150', 'reference': '  RKT-77 '}, default_currency='BDT')

    assert payment.reference == 'RKT-77'
    assert payment.amount == Decimal('150.00')


@pytest.mark.parametrize(
    ('payload', 'message'),
    [
        ('bkash', 'Payment details are required.'),
        ({'amount': 10}, 'Payment method must be one of: bkash, nagad, rocket, card, visa, mastercard.'),
        ({'method': 'card'}, 'Payment amount is required.'),
        ({'method': 'card', 'amount': True}, 'Payment amount must be a number.'),
        ({'method': 'card', 'amount': 'ten'}, 'Payment amount must be a number.'),
        ({'method': 'card', 'amount': [10]}, 'Payment amount must be a number.'),
        ({'method': 'card', 'amount': float('inf')}, 'Payment amount must be a finite number.'),
        ({'method': 'card', 'amount': -0.5}, 'Payment amount cannot be negative.'),
        ({'method': 'card', 'amount': 10, 'currency': 'TAKA'}, 'Payment currency must be a three-letter code.'),
        ({'method': 'nagad', 'amount': 10, 'reference': '   '}, 'A transaction reference is required for Nagad payments.'),
        ({'method': 'nagad', 'amount': 10, 'reference': 42}, 'Transaction reference must be text.'),
    ],
)
def test_normalize_payment_rejects_invalid_payloads(payload, message: str) -> None:
    with pytest.raises(InvalidPaymentError) as exception_info:
        normalize_payment(payload, default_currency='BDT')

    assert exception_info.value.message == message


def test_amounts_match_uses_cent_tolerance() -> None:
    tolerance = Decimal('0.01')

    assert amounts_match(Decimal('2200.01'), Decimal('2200'), tolerance)
    assert not amounts_match(Decimal('2200.02'), Decimal('2200'), tolerance)


def test_ensure_amount_matches_fee_reports_expected_fee() -> None:
    payment = NormalizedPayment(method='card', amount=Decimal('100.00'), currency='BDT', reference=None)

    with pytest.raises(FeeMismatchError) as exception_info:
        ensure_amount_matches_fee(payment, Decimal('2200'), Decimal('0.01'))

    assert '2200.00' in exception_info.value.message
