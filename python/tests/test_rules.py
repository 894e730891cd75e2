"""
Tests for the static rule tables, identifier validators and document rules
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from document_rules import RuleTier, detect_instruments, extract_bill_of_lading
from rule_tables import (
    JurisdictionTier, assess_jurisdiction, classify_email, country_to_code, find_sanctioned_bank,
    verify_port,
)
from validators import looks_like_imo, validate_iban, validate_imo, validate_swift


# ============================================
# JURISDICTIONS
# ============================================

class TestJurisdictions:

    def test_iran_is_blacklisted_and_sanctioned(self):
        result = assess_jurisdiction("Tehran, Iran")
        assert result.fatf_blacklist
        assert result.sanctioned
        assert result.tier == JurisdictionTier.FATF_BLACKLIST

    def test_free_text_city_implies_country(self):
        result = assess_jurisdiction("Dubai")
        assert result.fatf_greylist
        assert not result.sanctioned

    def test_secrecy_jurisdiction(self):
        assert assess_jurisdiction("Cayman Islands").tier == JurisdictionTier.HIGH_SECRECY

    def test_standard_jurisdiction(self):
        result = assess_jurisdiction("Germany")
        assert result.tier == JurisdictionTier.STANDARD
        assert result.to_dict()['risk'] == 'low'

    def test_whole_word_containment(self):
        # "Iranian" must not hit the "iran" entry
        assert not assess_jurisdiction("Iranian Street, London").fatf_blacklist

    def test_country_codes(self):
        assert country_to_code("United Kingdom") == "GB"
        assert country_to_code("Seoul, South Korea") == "KR"
        assert country_to_code("SG") == "SG"
        assert country_to_code("Atlantis") is None
        assert country_to_code(None) is None


# ============================================
# EMAIL
# ============================================

class TestEmailClassification:

    def test_disposable(self):
        result = classify_email("foo@mailinator.com")
        assert result.disposable
        assert not result.corporate

    def test_free_provider(self):
        result = classify_email("buyer@gmail.com")
        assert result.free_provider
        assert not result.disposable

    def test_corporate(self):
        result = classify_email("ops@acme-trading.com")
        assert result.corporate
        assert result.domain == "acme-trading.com"

    def test_malformed(self):
        result = classify_email("not-an-email")
        assert not result.well_formed
        assert result.domain is None


# ============================================
# PORTS
# ============================================

class TestPorts:

    def test_locode_in_table(self):
        result = verify_port("NLRTM")
        assert result.valid and result.known
        assert result.name == "Rotterdam"

    def test_port_name(self):
        result = verify_port("Jebel Ali, UAE")
        assert result.locode == "AEJEA"
        assert result.country == "UAE"

    def test_five_letter_name_resolves_by_name(self):
        assert verify_port("Dubai").locode == "AEDXB"

    def test_alias(self):
        assert verify_port("Mumbai").locode == "INNSA"

    def test_unknown_well_formed_locode(self):
        result = verify_port("ZZXYZ")
        assert result.valid
        assert not result.known

    def test_unknown_name(self):
        assert not verify_port("Port of Nowhere Special").valid


# ============================================
# IBAN / SWIFT / IMO
# ============================================

class TestIban:

    def test_valid(self):
        result = validate_iban("GB82 WEST 1234 5698 7654 32")
        assert result.valid
        assert result.country == "GB"
        assert result.bank_code == "WEST"
        assert result.formatted == "GB82 WEST 1234 5698 7654 32"

    def test_checksum_mismatch(self):
        result = validate_iban("GB82WEST12345698765431")
        assert not result.valid
        assert result.error == "Checksum mismatch"

    def test_any_single_digit_flip_detected(self):
        iban = "GB82WEST12345698765432"
        for i, ch in enumerate(iban):
            if i < 2 or not ch.isdigit():
                continue
            flipped = iban[:i] + str((int(ch) + 1) % 10) + iban[i + 1:]
            assert not validate_iban(flipped).valid, flipped

    def test_wrong_length(self):
        result = validate_iban("GB82WEST123456")
        assert not result.valid
        assert result.expected_length == 22

    def test_garbage(self):
        assert validate_iban("hello").error == "Invalid format"


class TestSwift:

    def test_valid_clean(self):
        result = validate_swift("DEUTDEFF")
        assert result.valid
        assert result.country_code == "DE"
        assert result.sanctioned_bank is None
        assert result.risk_level == "LOW"

    def test_sanctioned_bank(self):
        result = validate_swift("SABRRUMM")
        assert result.valid
        assert result.sanctioned_bank.name == "Sberbank"
        assert result.to_dict()['riskLevel'] == "CRITICAL"

    def test_high_risk_country(self):
        result = validate_swift("ABCDIRTH")
        assert result.high_risk_country
        assert result.sanctioned_bank is None

    def test_longest_prefix_wins(self):
        assert find_sanctioned_bank("BKCHCNBJXXX").name == "Bank of China"

    @pytest.mark.parametrize("code", ["DEUT", "DEUTDEFF1", "1234DEFF", "DEUT12FF"])
    def test_invalid(self, code):
        assert not validate_swift(code).valid


class TestImo:

    def test_valid_check_digit(self):
        result = validate_imo("IMO 9074729")
        assert result.valid
        assert result.imo == "9074729"

    def test_check_digit_mismatch(self):
        result = validate_imo("9074728")
        assert not result.valid
        assert result.error == "Check digit mismatch"

    def test_looks_like_imo(self):
        assert looks_like_imo("IMO9074729")
        assert not looks_like_imo("MSC OSCAR")


# ============================================
# DOCUMENT RULES
# ============================================

class TestInstrumentDetection:

    def test_high_and_verify_tiers(self):
        matches = detect_instruments("Seller will issue a BCL via MT799 before the SBLC.")
        tiers = {m.code: m.tier for m in matches}
        assert tiers['BCL'] == RuleTier.HIGH
        assert tiers['MT799'] == RuleTier.HIGH
        assert tiers['SBLC'] == RuleTier.VERIFY

    def test_standby_is_not_documentary(self):
        codes = [m.code for m in detect_instruments("Standby letter of credit at sight")]
        assert 'SBLC' in codes
        assert 'DLC' not in codes

    def test_no_text(self):
        assert detect_instruments(None) == []
        assert detect_instruments("Invoice for 20 pallets of tiles") == []


class TestBillOfLading:

    SAMPLE = (
        "OCEAN BILL OF LADING\n"
        "B/L NO: HLCUSH4455667\n"
        "SHIPPER:\n"
        "  Acme Trading LLC\n"
        "CONSIGNEE: TO ORDER\n"
        "NOTIFY PARTY: Global Imports Ltd\n"
        "VESSEL: MSC OSCAR VOY 123E\n"
        "PORT OF LOADING: Shanghai\n"
        "PORT OF DISCHARGE: Hamburg\n"
        "CONTAINER NO: MSCU1234567 / TGHU7654321\n"
        "SEAL NO: SL998877\n"
        "FREIGHT PREPAID\n"
    )

    def test_not_a_bill_of_lading(self):
        assert extract_bill_of_lading("Proforma invoice 2024-001") is None
        assert extract_bill_of_lading(None) is None

    def test_fields(self):
        bill = extract_bill_of_lading(self.SAMPLE)
        assert bill.get('bl_number') == 'HLCUSH4455667'
        assert bill.get('shipper') == 'Acme Trading LLC'
        assert bill.get('notify_party') == 'Global Imports Ltd'
        assert bill.get('vessel') == 'MSC OSCAR'
        assert bill.get('port_of_loading') == 'Shanghai'
        assert bill.get('port_of_discharge') == 'Hamburg'

    def test_containers_and_terms(self):
        bill = extract_bill_of_lading(self.SAMPLE)
        assert bill.container_numbers == ('MSCU1234567', 'TGHU7654321')
        assert bill.seal_numbers == ('SL998877',)
        assert bill.freight_terms == 'PREPAID'

    def test_screenable_fields(self):
        bill = extract_bill_of_lading(self.SAMPLE)
        screen = dict(bill.fields_by_tier(RuleTier.SCREEN))
        assert screen['shipper'] == 'Acme Trading LLC'
        assert 'vessel' not in screen
