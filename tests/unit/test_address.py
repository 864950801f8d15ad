"""Unit tests for address block normalization.

Tests cover:
- Canonical two-line blocks and fixed points
- Comma-joined single lines
- Run-together token repairs
- Phone extraction into the last line
- Legacy item description splitting
"""

import re

import pytest

from intake.normalize.address import (
    SPACING_RULES,
    SpacingRule,
    normalize_address_block,
    normalize_line_spacing,
    normalize_locality_line,
    parse_description_fields,
)


class TestNormalizeAddressBlock:
    def test_two_line_block(self) -> None:
        result = normalize_address_block("123 Main St\nSpringfield, IL 62704")
        assert result == "123 Main St\nSpringfield, IL 62704"

    def test_state_is_uppercased_and_comma_spaced(self) -> None:
        result = normalize_address_block("123 Main St\nSpringfield ,il 62704")
        assert result == "123 Main St\nSpringfield, IL 62704"

    @pytest.mark.parametrize(
        "raw",
        [
            "123 Main St\nSpringfield, IL 62704",
            "123 Main St, Suite 200, Springfield, IL 62704",
            "286 HEMLOCK STREPUBLIC, MI 49879 (906) 555-0199",
            "Springfield IL 62704",
            "Unit 4\n55 Elm Ave\nDenver 80203 co",
            "Springfield, IL 62704, 123 Main St",
            "Suite 4, 123 Main St",
            "Suite 4, Springfield, IL 62704, 123 Main St",
            "123 Main St, Springfield, IL 62704, Suite 9",
            "Attn Billing, Suite 4\nSpringfield, IL 62704\nGate code 12",
            "123 Main St\nAttn, Bo\nSpringfield, IL 62704",
        ],
    )
    def test_normalizing_twice_is_fixed_point(self, raw: str) -> None:
        once = normalize_address_block(raw)
        assert normalize_address_block(once) == once

    def test_comma_joined_single_line(self) -> None:
        result = normalize_address_block("123 Main St, Springfield, IL 62704")
        assert result == "123 Main St\nSpringfield, IL 62704"

    def test_suite_stays_on_street_line(self) -> None:
        result = normalize_address_block("123 Main St, Suite 200, Springfield, IL 62704")
        assert result == "123 Main St, Suite 200\nSpringfield, IL 62704"

    def test_separate_suite_line_is_appended_to_street(self) -> None:
        result = normalize_address_block("Unit 4\n55 Elm Ave\nDenver 80203 co")
        assert result == "55 Elm Ave, Unit 4\nDenver, CO 80203"

    def test_locality_before_street(self) -> None:
        result = normalize_address_block("Springfield, IL 62704, 123 Main St")
        assert result == "123 Main St\nSpringfield, IL 62704"

    def test_leading_suite_part_joins_street(self) -> None:
        assert normalize_address_block("Suite 4, 123 Main St") == "123 Main St, Suite 4"

    def test_trailing_suite_part_joins_street(self) -> None:
        result = normalize_address_block("123 Main St, Springfield, IL 62704, Suite 9")
        assert result == "123 Main St, Suite 9\nSpringfield, IL 62704"

    def test_zip_line_wins_over_state_token(self) -> None:
        result = normalize_address_block("123 Main St\nAttn, Bo\nSpringfield, IL 62704")
        assert result == "123 Main St\nSpringfield, IL 62704\nAttn, Bo"

    def test_city_fused_to_street_without_comma(self) -> None:
        result = normalize_address_block("123 Main St Springfield, IL 62704")
        assert result == "123 Main St\nSpringfield, IL 62704"

    def test_phone_moves_to_last_line(self) -> None:
        result = normalize_address_block("Phone: 555.123.4567\n123 Main St\nSpringfield, IL 62704")
        assert result == "123 Main St\nSpringfield, IL 62704\n(555) 123-4567"

    def test_phone_left_in_place_when_excluded(self) -> None:
        result = normalize_address_block("123 Main St 5551234567", include_phone=False)
        assert "5551234567" in result

    def test_locality_only(self) -> None:
        assert normalize_address_block("Springfield IL 62704") == "Springfield, IL 62704"

    def test_unclassified_lines_are_kept(self) -> None:
        result = normalize_address_block("Attn: Billing\n123 Main St\nSpringfield, IL 62704")
        assert result.split("\n") == ["123 Main St", "Springfield, IL 62704", "Attn: Billing"]

    def test_empty(self) -> None:
        assert normalize_address_block("") == ""
        assert normalize_address_block(None) == ""


class TestSpacingRules:
    def test_street_suffix_fused_to_city(self) -> None:
        result = normalize_line_spacing("286 HEMLOCK STREPUBLIC, MI 49879")
        assert result == "286 HEMLOCK ST REPUBLIC, MI 49879"

    def test_county_road_route_fused_to_city(self) -> None:
        result = normalize_line_spacing("COUNTY ROAD CKLCHAMPION, MI 49814")
        assert result == "COUNTY ROAD CKL CHAMPION, MI 49814"

    def test_title_case_boundary(self) -> None:
        assert normalize_line_spacing("123 Main StSpringfield") == "123 Main St Springfield"

    def test_name_particles_are_not_split(self) -> None:
        assert normalize_line_spacing("McAllen, TX 78501") == "McAllen, TX 78501"
        assert normalize_line_spacing("DeKalb, IL 60115") == "DeKalb, IL 60115"

    def test_legitimate_city_name_is_not_split(self) -> None:
        assert normalize_line_spacing("STAMFORD, CT 06901") == "STAMFORD, CT 06901"

    def test_rule_table_is_extensible(self) -> None:
        rule = SpacingRule(name="po-box", pattern=re.compile(r"\bPOBOX\b"), replacement="PO BOX")
        assert normalize_line_spacing("POBOX 12", rules=[*SPACING_RULES, rule]) == "PO BOX 12"


class TestLocalityLine:
    def test_city_zip_state_order(self) -> None:
        assert normalize_locality_line("Denver 80203 co") == "Denver, CO 80203"

    def test_city_label_is_stripped(self) -> None:
        assert normalize_locality_line("City: Springfield, il 62704-1234") == "Springfield, IL 62704-1234"

    def test_unrecognized_is_returned_cleaned(self) -> None:
        assert normalize_locality_line("Somewhere ,  Far") == "Somewhere, Far"


class TestParseDescriptionFields:
    def test_multi_line(self) -> None:
        assert parse_description_fields("12 Oak Rd\nPaint fence") == ("12 Oak Rd", "Paint fence")

    def test_separator(self) -> None:
        assert parse_description_fields("12 Oak Rd | Paint fence") == ("12 Oak Rd", "Paint fence")

    def test_text_after_last_zip_is_work(self) -> None:
        assert parse_description_fields("12 Oak Rd Springfield, IL 62704 Paint fence") == (
            "12 Oak Rd Springfield, IL 62704",
            "Paint fence",
        )

    def test_plain_text_is_address(self) -> None:
        assert parse_description_fields("Consulting") == ("Consulting", "")

    def test_empty(self) -> None:
        assert parse_description_fields("") == ("", "")
