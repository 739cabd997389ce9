# tests/test_validator.py

import pytest

from card_crawler.aggregator import CardDataAggregator
from card_crawler.config_behavior import CARD_SCHEMA
from card_crawler.models import ContentType
from card_crawler.validator import (
    is_valid_amount,
    is_valid_percentage,
    is_valid_phone,
    validate_card_record,
)

PAGE = "https://www.hdfcbank.com/personal/pay/cards/credit-cards/regalia-gold-credit-card"
MITC = "https://www.hdfcbank.com/content/regalia-gold/MITC.pdf"

GOOD_FIELDS = {
    "card_name": "Regalia Gold Credit Card",
    "annual_fee": "₹2,500",
    "joining_fee": "₹2,500",
    "interest_rate": "Interest rate of 3.75% per month",
    "foreign_currency_markup": "2%",
    "other_charges": ["Late payment charges range from ₹100 to ₹1,300 per statement."],
    "links": {"card_page": PAGE, "pdfs": [MITC], "terms_and_conditions": MITC},
    "contact_info": {"phone": "1800 202 6161", "email": "support@hdfcbank.com"},
}


def _record(fields):
    agg = CardDataAggregator()
    agg.add_source(fields, ContentType.HTML, PAGE)
    return agg.merge().fields


@pytest.mark.parametrize("value", ["₹2,500", "Rs. 500", "INR 1,000", "2,500.00", " ₹ 499 "])
def test_amount_formats_accepted(value):
    assert is_valid_amount(value)


@pytest.mark.parametrize("value", ["two thousand", "₹", "Nil", None, 2500])
def test_amount_formats_rejected(value):
    assert not is_valid_amount(value)


def test_percentage_and_phone_formats():
    assert is_valid_percentage("3.75% per month")
    assert is_valid_percentage("2 %")
    assert not is_valid_percentage("varies by customer")
    assert is_valid_phone("1800 202 6161")
    assert is_valid_phone("+91 98765 43210")
    assert not is_valid_phone("12345")


def test_complete_record_is_valid():
    result = validate_card_record(_record(GOOD_FIELDS))

    assert result.is_valid
    assert result.errors == []
    assert result.warnings == []
    assert result.score == pytest.approx(8 * 100 / len(CARD_SCHEMA))


def test_missing_required_and_bad_formats_are_errors():
    fields = dict(GOOD_FIELDS, card_name=None, annual_fee="two thousand", interest_rate="varies")

    result = validate_card_record(_record(fields))

    assert not result.is_valid
    assert "Required field 'card_name' is missing or empty" in result.errors
    assert any("annual_fee" in e for e in result.errors)
    assert any("interest rate" in e for e in result.errors)
    assert len(result.errors) == 3


def test_suspicious_values_are_warnings():
    fields = dict(
        GOOD_FIELDS,
        annual_fee="₹2,00,000",
        foreign_currency_markup="none",
        other_charges=["Something odd applies here"],
        links={"pdfs": ["not a url"]},
        contact_info={"phone": "12345", "email": "support@"},
    )

    result = validate_card_record(_record(fields))

    assert result.is_valid
    assert len(result.warnings) == 6
    assert any("unusually high" in w for w in result.warnings)
    assert any("PDF URL 1" in w for w in result.warnings)


def test_wrong_shapes_are_errors():
    fields = {name: None for name in CARD_SCHEMA}
    fields.update(GOOD_FIELDS, rewards="4 points per ₹150", insurance=["travel"])

    result = validate_card_record(fields)

    assert "Field 'rewards' should be a list, got str" in result.errors
    assert "Field 'insurance' should be an object, got list" in result.errors


def test_score_penalties_and_clamp():
    empty = validate_card_record(_record({}))
    assert not empty.is_valid
    assert empty.score == 0.0

    warned = validate_card_record(_record(dict(GOOD_FIELDS, foreign_currency_markup="none")))
    assert warned.score == pytest.approx(8 * 100 / len(CARD_SCHEMA) - 1)
    assert warned.to_serializable_dict()["score"] == round(warned.score, 1)
