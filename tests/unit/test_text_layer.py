"""Unit tests for PDF text layer reading and HTML flattening."""

from unittest.mock import patch

from intake.parsing.text_layer import (
    extract_pdf_text,
    html_to_text,
    looks_like_html,
    split_lines,
)


class TestHtml:
    def test_block_tags_become_line_breaks(self) -> None:
        html = "<div>ACME LLC</div><p>123 Oak St<br/>Springfield, IL 62704</p><span>Total</span> $5"
        assert split_lines(html_to_text(html)) == [
            "ACME LLC",
            "123 Oak St",
            "Springfield, IL 62704",
            "Total $5",
        ]

    def test_table_rows(self) -> None:
        html = "<table><tr><td>Paint</td><td>2</td><td>50.00</td></tr></table>"
        assert split_lines(html_to_text(html)) == ["Paint 2 50.00"]

    def test_character_entities_are_decoded(self) -> None:
        html = "<p>Smith &amp; Sons</p><p>Bill To</p><p>O&#39;Neil&nbsp;Jr</p>"
        assert split_lines(html_to_text(html)) == ["Smith & Sons", "Bill To", "O'Neil Jr"]

    def test_looks_like_html(self) -> None:
        assert looks_like_html("<html><body>x</body></html>") is True
        assert looks_like_html("Total 5 and 3") is False
        assert looks_like_html("") is False


class TestSplitLines:
    def test_drops_blank_lines_and_collapses_spaces(self) -> None:
        assert split_lines("  ACME   LLC \r\n\r\n  \n123 Oak St") == ["ACME LLC", "123 Oak St"]

    def test_empty(self) -> None:
        assert split_lines("") == []


class TestExtractPdfText:
    def test_reads_text_layer(self, make_pdf) -> None:
        result = extract_pdf_text(make_pdf(["ACME LLC", "123 Oak St", "Total $315.00"]))

        assert result.success is True
        assert result.error is None
        assert result.text.split("\n") == ["ACME LLC", "123 Oak St", "Total $315.00"]

    def test_empty_bytes(self) -> None:
        result = extract_pdf_text(b"")

        assert result.success is False
        assert result.error == "PDF file is empty"

    def test_reader_failure(self) -> None:
        with patch("intake.parsing.text_layer.extract_text", side_effect=ValueError("broken xref")):
            result = extract_pdf_text(b"%PDF-1.4 truncated")

        assert result.success is False
        assert "broken xref" in result.error

    def test_form_feeds_between_pages(self) -> None:
        with patch("intake.parsing.text_layer.extract_text", return_value="Page one\n\x0cPage two\n\x0c"):
            result = extract_pdf_text(b"%PDF-1.4")

        assert result.text == "Page one\nPage two"

    def test_no_text_layer_is_still_success(self) -> None:
        with patch("intake.parsing.text_layer.extract_text", return_value="\x0c"):
            result = extract_pdf_text(b"%PDF-1.4")

        assert result.success is True
        assert result.text == ""
