"""
Unit Tests for Lead Snapshots
Phone normalization, name handling and validation of submitted leads
"""
import pytest
from pydantic import ValidationError

from dialer.domain.models.lead import LeadSnapshot, to_e164, is_e164


class TestToE164:
    """Tests for phone normalization"""

    def test_ten_digits_get_default_country_code(self):
        assert to_e164("(555) 123-4567") == "+15551234567"

    def test_eleven_digits_starting_with_one(self):
        assert to_e164("1-555-123-4567") == "+15551234567"

    def test_plus_prefix_is_kept(self):
        assert to_e164("+44 20 7946 0958") == "+442079460958"

    def test_empty_input(self):
        assert to_e164("") == ""
        assert to_e164(None) == ""
        assert to_e164("call me") == ""

    def test_is_e164(self):
        assert is_e164("+15551234567")
        assert not is_e164("5551234567")
        assert not is_e164("+123")
        assert not is_e164("")


class TestLeadSnapshot:
    """Tests for LeadSnapshot validation"""

    def test_dashboard_field_names(self):
        lead = LeadSnapshot.model_validate({
            "first": "Ann",
            "last": "Lee",
            "phone": "555-123-4567",
            "email": "ann@example.com",
        })

        assert lead.first_name == "Ann"
        assert lead.last_name == "Lee"
        assert lead.phone == "+15551234567"
        assert lead.email == "ann@example.com"
        assert lead.display_name == "Ann Lee"

    def test_canonical_field_names(self):
        lead = LeadSnapshot.model_validate({
            "first_name": "Bo",
            "last_name": "Chen",
            "phone": "+15550000002",
        })

        assert lead.first_name == "Bo"
        assert lead.last_name == "Chen"

    def test_missing_last_name_is_allowed(self):
        lead = LeadSnapshot.model_validate({"first": "Cy", "phone": "+15550000003"})

        assert lead.last_name == ""
        assert lead.display_name == "Cy"

    def test_none_last_name_becomes_empty(self):
        lead = LeadSnapshot.model_validate({"first": "Cy", "last": None, "phone": "+15550000003"})

        assert lead.last_name == ""

    def test_full_name_is_split(self):
        lead = LeadSnapshot.model_validate({"name": "Dana Marie Scott", "phone": "5550000004"})

        assert lead.first_name == "Dana"
        assert lead.last_name == "Marie Scott"

    def test_numeric_id_and_phone_are_stringified(self):
        lead = LeadSnapshot.model_validate({"id": 42, "first": "Ed", "phone": 5550000005})

        assert lead.id == "42"
        assert lead.phone == "+15550000005"

    def test_missing_first_name_rejected(self):
        with pytest.raises(ValidationError):
            LeadSnapshot.model_validate({"last": "Lee", "phone": "+15550000001"})

    def test_blank_first_name_rejected(self):
        with pytest.raises(ValidationError):
            LeadSnapshot.model_validate({"first": "   ", "phone": "+15550000001"})

    def test_invalid_phone_rejected(self):
        with pytest.raises(ValidationError):
            LeadSnapshot.model_validate({"first": "Ann", "phone": "12345"})

    def test_missing_phone_rejected(self):
        with pytest.raises(ValidationError):
            LeadSnapshot.model_validate({"first": "Ann"})

    def test_snapshot_is_frozen(self):
        lead = LeadSnapshot.model_validate({"first": "Ann", "phone": "+15550000001"})

        with pytest.raises(ValidationError):
            lead.first_name = "Changed"

    def test_unknown_fields_ignored(self):
        lead = LeadSnapshot.model_validate({
            "first": "Ann",
            "phone": "+15550000001",
            "listing_price": 450000,
        })

        assert "listing_price" not in lead.model_dump()
