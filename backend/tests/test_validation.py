# Overview: Pytest coverage for money parsing, field rules and payload validation.

from datetime import date

import pytest

from estate.models import Contract, Customer
from estate.money import from_cents, percentage, to_cents
from estate.time_utils import add_months
from estate.validation import ModelValidationPolicy, ValidationError, enforce_field_rules, validate_payload


CONTRACT_TERMS = ModelValidationPolicy(
    writable_fields={"start_date", "total_price", "installment_count", "broker_name"},
    required_on_create={"start_date", "total_price"},
    money_fields={"total_price": "total_price_cents"},
)


class TestMoney:

    @pytest.mark.parametrize("value,cents", [
        (10, 1000),
        (12.5, 1250),
        ("1,234.565", 123457),
        (" 0.005 ", 1),
        ("-3.335", -334),
    ])
    def test_to_cents(self, value, cents):
        assert to_cents(value) == cents

    @pytest.mark.parametrize("value", [None, True, "", "abc", "NaN", "inf"])
    def test_to_cents_rejects(self, value):
        with pytest.raises(ValueError):
            to_cents(value)

    def test_from_cents(self):
        assert from_cents(123457) == 1234.57
        assert from_cents(None) is None

    def test_percentage(self):
        assert percentage(1, 3) == 33.33
        assert percentage(5, 0) == 0.0


class TestAddMonths:

    def test_clamps_to_month_end(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)

    def test_rolls_over_year(self):
        assert add_months(date(2025, 11, 15), 3) == date(2026, 2, 15)


class TestFieldRules:

    def test_customer_phone(self):
        enforce_field_rules("customer", {"phone": "01012345678"})
        with pytest.raises(ValidationError, match="^phone "):
            enforce_field_rules("customer", {"phone": "0101234567"})

    def test_null_is_skipped(self):
        enforce_field_rules("customer", {"national_id": None})

    def test_unit_code_and_share(self):
        with pytest.raises(ValidationError):
            enforce_field_rules("unit", {"code": "a101"})
        with pytest.raises(ValidationError):
            enforce_field_rules("unit_partner", {"share_bps": 10_001})

    def test_voucher_amount_must_be_positive(self):
        with pytest.raises(ValidationError, match="amount_cents"):
            enforce_field_rules("voucher", {"amount_cents": 0})


class TestValidatePayload:

    def test_create_translates_money(self):
        patch = validate_payload(
            model=Contract,
            payload={"start_date": "2026-01-01", "total_price": "1500.25", "installment_count": "12"},
            policy=CONTRACT_TERMS,
            partial=False,
        )
        assert patch == {
            "start_date": date(2026, 1, 1),
            "total_price_cents": 150025,
            "installment_count": 12,
        }

    def test_missing_required(self):
        with pytest.raises(ValidationError, match="Missing required fields: total_price"):
            validate_payload(model=Contract, payload={"start_date": "2026-01-01"},
                             policy=CONTRACT_TERMS, partial=False)

    def test_partial_skips_required(self):
        patch = validate_payload(model=Contract, payload={"broker_name": "  Samir "},
                                 policy=CONTRACT_TERMS, partial=True)
        assert patch == {"broker_name": "Samir"}

    @pytest.mark.parametrize("value,message", [
        ("12.5", "no decimals"),
        ("1e3", "scientific notation"),
        (12.0, "not a decimal"),
        ("", "must be an integer"),
    ])
    def test_integer_columns_are_strict(self, value, message):
        with pytest.raises(ValidationError, match=message):
            validate_payload(model=Contract, payload={"installment_count": value},
                             policy=CONTRACT_TERMS, partial=True)

    def test_bad_date(self):
        with pytest.raises(ValidationError, match="YYYY-MM-DD"):
            validate_payload(model=Contract, payload={"start_date": "01/02/2026"},
                             policy=CONTRACT_TERMS, partial=True)

    def test_not_nullable_and_blank(self):
        policy = ModelValidationPolicy(writable_fields={"name", "address"})
        with pytest.raises(ValidationError, match="cannot be null"):
            validate_payload(model=Customer, payload={"name": None}, policy=policy, partial=True)
        with pytest.raises(ValidationError, match="cannot be blank"):
            validate_payload(model=Customer, payload={"name": "   "}, policy=policy, partial=True)
        assert validate_payload(model=Customer, payload={"address": ""}, policy=policy, partial=True) == {
            "address": None,
        }

    def test_max_length(self):
        policy = ModelValidationPolicy(writable_fields={"name"})
        with pytest.raises(ValidationError, match="max length 255"):
            validate_payload(model=Customer, payload={"name": "x" * 256}, policy=policy, partial=True)

    def test_non_dict_payload(self):
        with pytest.raises(ValidationError, match="Invalid JSON payload"):
            validate_payload(model=Customer, payload=["name"], policy=CONTRACT_TERMS, partial=True)
