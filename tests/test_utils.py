"""Tests for referral code and commission helpers."""

import re

from diamondtier.affiliates.utils import (
    calculate_commission,
    generate_reference_id,
    generate_referral_code,
    normalize_referral_code,
    parse_funding_amount,
)


class TestReferralCode:
    def test_initials_and_suffix(self):
        code = generate_referral_code("Jane", "Doe")
        assert re.fullmatch(r"JADO[A-Z0-9]{6}", code)

    def test_short_and_accented_names(self):
        code = generate_referral_code("J", "O'Brien")
        assert re.fullmatch(r"JOB[A-Z0-9]{6}", code)

    def test_normalize_keeps_case(self):
        assert normalize_referral_code("  abc123 ") == "abc123"
        assert normalize_referral_code(None) == ""


class TestCommission:
    def test_percentage_of_amount(self):
        assert calculate_commission(50000, 10) == 5000.0

    def test_rounded_to_cents(self):
        assert calculate_commission(333.33, 7.5) == 25.0


class TestParseFundingAmount:
    def test_range_takes_first_figure(self):
        assert parse_funding_amount("$50,000-$100,000", 1000) == 50000.0

    def test_plain_number(self):
        assert parse_funding_amount("250000", 1000) == 250000.0

    def test_decimal(self):
        assert parse_funding_amount("$1,250.50", 1000) == 1250.5

    def test_text_without_numbers_uses_default(self):
        assert parse_funding_amount("Not sure yet", 1000) == 1000

    def test_empty_uses_default(self):
        assert parse_funding_amount(None, 1000) == 1000
        assert parse_funding_amount("", 1000) == 1000


def test_reference_id_format():
    assert re.fullmatch(r"APP[A-Z0-9]{5}", generate_reference_id())
    assert generate_reference_id("TEST").startswith("TEST")
