"""
Unit tests for the delimited-text row source.
"""
import io

import pytest

from contact_loader.core.exceptions import SourceReadError
from contact_loader.core.importing.source import CsvRowSource


def read_all(text, **kwargs):
    source = CsvRowSource(io.StringIO(text, newline=""), **kwargs)
    headers = source.read_header()
    return headers, list(source)


class TestCsvRowSource:

    def test_reads_header_and_rows(self):
        headers, rows = read_all("email,first_name\na@example.com,Ann\nb@example.com,Bob\n")
        assert headers == ["email", "first_name"]
        assert [r.fields for r in rows] == [["a@example.com", "Ann"], ["b@example.com", "Bob"]]
        assert [r.number for r in rows] == [2, 3]

    @pytest.mark.parametrize("delimiter", [";", "\t", "|"])
    def test_sniffs_delimiter(self, delimiter):
        text = delimiter.join(["email", "first_name", "last_name"]) + "\n"
        text += delimiter.join(["a@example.com", "Ann", "Lee"]) + "\n"
        text += delimiter.join(["b@example.com", "Bob", "Ray"]) + "\n"
        headers, rows = read_all(text)
        assert headers == ["email", "first_name", "last_name"]
        assert rows[1].fields == ["b@example.com", "Bob", "Ray"]

    def test_explicit_delimiter(self):
        headers, rows = read_all("email;first_name\na@example.com;Ann\n", delimiter=";")
        assert headers == ["email", "first_name"]
        assert rows[0].fields == ["a@example.com", "Ann"]

    def test_quoted_fields(self):
        _, rows = read_all('email,first_name,last_name\na@example.com,"Ann, Jr.","Lee\nSmith"\n')
        assert rows[0].fields == ["a@example.com", "Ann, Jr.", "Lee\nSmith"]

    def test_blank_lines_are_skipped(self):
        _, rows = read_all("\nemail,first_name\n\na@example.com,Ann\n\n\nb@example.com,Bob\n")
        assert [r.fields[0] for r in rows] == ["a@example.com", "b@example.com"]
        assert [r.number for r in rows] == [4, 7]

    def test_binary_stream_with_bom(self):
        data = "\ufeffemail,first_name\na@example.com,Zoë\n".encode("utf-8")
        source = CsvRowSource(io.BytesIO(data), delimiter=",")
        assert source.read_header() == ["email", "first_name"]
        assert next(iter(source)).fields == ["a@example.com", "Zoë"]

    def test_empty_input_has_no_header(self):
        with pytest.raises(SourceReadError, match="no header"):
            read_all("")
        with pytest.raises(SourceReadError, match="no header"):
            read_all("\n\n")

    def test_malformed_quoting_raises(self):
        source = CsvRowSource(io.StringIO('email,first_name\n"a@example.com"x,Ann\n', newline=""), delimiter=",")
        source.read_header()
        with pytest.raises(SourceReadError) as exc:
            list(source)
        assert exc.value.line_number == 2

    def test_undecodable_bytes_raise(self):
        source = CsvRowSource(io.BytesIO(b"email,first_name\n\xff\xfe\xfa,Ann\n"), delimiter=",")
        with pytest.raises(SourceReadError, match="Unable to read input"):
            source.read_header()
            list(source)

    def test_rows_are_read_lazily(self):
        stream = io.StringIO("email,first_name\n" + "".join(f"u{i}@example.com,U\n" for i in range(100)))
        source = CsvRowSource(stream, delimiter=",")
        source.read_header()
        rows = iter(source)
        next(rows)
        assert stream.tell() < len(stream.getvalue())

    def test_as_dict(self):
        headers, rows = read_all("email,first_name\na@example.com,Ann\n")
        assert rows[0].as_dict(headers) == {"email": "a@example.com", "first_name": "Ann"}
