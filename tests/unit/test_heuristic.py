"""Unit tests for the heuristic text parser.

Tests cover:
- Section detection (company, client, date, notes)
- Item row parsing with description buffering
- Totals (tax, percentage and fixed discounts)
- Full documents end to end
"""

from intake.normalize.canonical import has_meaningful_data
from intake.parsing.heuristic import (
    extract_client_section,
    extract_company_section,
    extract_notes,
    find_invoice_date,
    find_item_header_index,
    parse_invoice_lines,
    parse_invoice_text,
    parse_items,
    parse_totals,
)

SAMPLE_TEXT = (
    "ACME LLC\n123 Oak St\nSpringfield, IL 62704\nBill To\nJane Doe\nDate: 2024-03-05\n"
    "Description Qty Rate Amount\nConsulting 3 100.00 300.00\nSubtotal $300.00\nTax 5%\nTotal $315.00"
)


class TestParseInvoiceText:
    def test_sample_invoice(self) -> None:
        record = parse_invoice_text(SAMPLE_TEXT)

        assert record.document_type == "Invoice"
        assert record.company_name == "ACME LLC"
        assert record.company_details == "123 Oak St\nSpringfield, IL 62704"
        assert record.client_name == "Jane Doe"
        assert record.invoice_date == "2024-03-05"
        assert len(record.items) == 1
        assert record.items[0].quantity == 3
        assert record.items[0].rate == 100
        assert "Consulting" in record.items[0].description
        assert record.tax_rate == 5
        assert record.discount_value == 0

    def test_bid_in_file_name(self) -> None:
        record = parse_invoice_text("ACME LLC\nRoof repair 1 500.00 500.00", "spring-bid.txt")
        assert record.document_type == "Bid"

    def test_bid_in_text(self) -> None:
        record = parse_invoice_text("Please submit your BID by Friday\nACME LLC")
        assert record.document_type == "Bid"

    def test_windows_line_endings(self) -> None:
        record = parse_invoice_text(SAMPLE_TEXT.replace("\n", "\r\n"))
        assert record.client_name == "Jane Doe"

    def test_empty_text_is_not_meaningful(self) -> None:
        record = parse_invoice_text("")
        assert has_meaningful_data(record) is False

    def test_notes_section(self) -> None:
        record = parse_invoice_text(SAMPLE_TEXT + "\nNotes\nThank you for your business\nPay within 30 days")
        assert record.notes == "Thank you for your business\nPay within 30 days"


class TestSections:
    def test_company_section_stops_at_first_anchor(self) -> None:
        lines = ["ACME LLC", "123 Oak St", "INVOICE #42", "Bill To", "Jane"]
        assert extract_company_section(lines) == ("ACME LLC", "123 Oak St")

    def test_company_section_without_anchors_takes_first_lines(self) -> None:
        lines = ["ACME LLC", "1 A St", "Town, ST 12345", "555-123-4567", "extra"]
        name, details = extract_company_section(lines)
        assert name == "ACME LLC"
        assert details.split("\n") == ["1 A St", "Town, ST 12345", "555-123-4567"]

    def test_client_section_skips_date_and_column_lines(self) -> None:
        lines = ["ACME", "Client: ", "Jane Doe", "Date 03/05/2024", "9 Pine Ct", "Qty", "Total $5"]
        assert extract_client_section(lines) == ("Jane Doe", "9 Pine Ct")

    def test_client_section_missing(self) -> None:
        assert extract_client_section(["ACME", "Consulting 1 5.00 5.00"]) == ("", "")

    def test_date_on_following_line(self) -> None:
        assert find_invoice_date(["ACME", "Date", "March 5, 2024"]) == "2024-03-05"

    def test_date_anywhere(self) -> None:
        assert find_invoice_date(["ACME", "Issued 3/5/24"]) == "2024-03-05"

    def test_no_date(self) -> None:
        assert find_invoice_date(["ACME"]) == ""

    def test_item_header_requires_description_and_qty(self) -> None:
        assert find_item_header_index(["Description", "Description Qty Rate"]) == 1
        assert find_item_header_index(["Qty only"]) == -1

    def test_notes_after_anchor(self) -> None:
        assert extract_notes(["Total $5", "Additional Notes", "Gate code 1234"]) == "Gate code 1234"
        assert extract_notes(["Total $5"]) == ""


class TestParseItems:
    def test_single_row_without_buffer(self) -> None:
        items = parse_items(["Install handrail 2 150.00 300.00"])

        assert len(items) == 1
        assert items[0].quantity == 2
        assert items[0].rate == 150
        assert "Install handrail" in items[0].description

    def test_buffered_lines_attach_to_next_row(self) -> None:
        lines = ["Description Qty Rate Amount", "12 Oak Rd", "Springfield, IL 62704", "Paint fence 1 $400.00"]
        items = parse_items(lines)

        assert len(items) == 1
        assert items[0].address == "12 Oak Rd"
        assert items[0].work == "Springfield, IL 62704\nPaint fence"
        assert items[0].rate == 400

    def test_compact_row_needs_buffer(self) -> None:
        items = parse_items(["Description Qty Rate", "Paint 2 50"])

        assert len(items) == 1
        assert items[0].quantity == 1
        assert items[0].rate == 0
        assert items[0].description == "Paint 2 50"

    def test_stops_at_totals(self) -> None:
        lines = ["Description Qty Rate Amount", "Mow lawn 1 40.00 40.00", "Total $40.00", "Rake 1 10.00 10.00"]
        assert [item.rate for item in parse_items(lines)] == [40]

    def test_trailing_buffer_becomes_item(self) -> None:
        items = parse_items(["Description Qty", "Consulting"])

        assert len(items) == 1
        assert items[0].description == "Consulting"
        assert items[0].quantity == 1

    def test_thousands_separator_in_rate(self) -> None:
        items = parse_items(["Roof 1 $1,250.00 $1,250.00"])
        assert items[0].rate == 1250


class TestParseTotals:
    def test_percentage_discount(self) -> None:
        totals = parse_totals(["Discount 10%"])
        assert totals["discountType"] == "percentage"
        assert totals["discountValue"] == 10

    def test_fixed_discount_is_positive(self) -> None:
        totals = parse_totals(["Discount -$25.00"])
        assert totals["discountType"] == "fixed"
        assert totals["discountValue"] == 25

    def test_parenthesized_discount(self) -> None:
        assert parse_totals(["Discount ($12.50)"])["discountValue"] == 12.5

    def test_tax_rate(self) -> None:
        assert parse_totals(["Tax (8.25%) $24.75"])["taxRate"] == 8.25

    def test_tax_without_percentage_is_ignored(self) -> None:
        assert parse_totals(["Tax $24.75"])["taxRate"] == 0

    def test_defaults(self) -> None:
        assert parse_totals([]) == {"taxRate": 0.0, "discountType": "fixed", "discountValue": 0.0}


def test_parse_invoice_lines_full_bid() -> None:
    lines = [
        "Oak & Sons Roofing",
        "55 Elm Ave",
        "Denver, CO 80203",
        "BID",
        "Bill To",
        "Jane Doe",
        "123 Main St",
        "Springfield, IL 62704",
        "Date: March 5th, 2024",
        "Description Qty Rate Amount",
        "Replace shingles 2 1,250.00 2,500.00",
        "Subtotal $2,500.00",
        "Discount 10%",
        "Total $2,250.00",
        "Notes",
        "Valid for 30 days",
    ]
    record = parse_invoice_lines(lines, "quote.pdf")

    assert record.document_type == "Bid"
    assert record.company_name == "Oak & Sons Roofing"
    assert record.company_details == "55 Elm Ave\nDenver, CO 80203"
    assert record.client_name == "Jane Doe"
    assert record.client_details == "123 Main St\nSpringfield, IL 62704"
    assert record.invoice_date == "2024-03-05"
    assert record.items[0].quantity == 2
    assert record.items[0].rate == 1250
    assert record.discount_type == "percentage"
    assert record.discount_value == 10
    assert record.notes == "Valid for 30 days"
