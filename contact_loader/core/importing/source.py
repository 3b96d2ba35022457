"""
Delimited-text row source.

Reads the header once, then yields data rows lazily so the pipeline can hold
the reader back while a batch is being written.
"""
import csv
import io
import itertools
from dataclasses import dataclass
from typing import IO, Iterator, List, Optional, Union

from ..exceptions import SourceReadError

SNIFF_SAMPLE_SIZE = 4096
SNIFF_DELIMITERS = ",;\t|"


@dataclass(frozen=True)
class RawRow:
    """One data row as read from the input, with its 1-based line number."""
    number: int
    fields: List[str]

    def as_dict(self, headers: List[str]) -> dict:
        return dict(zip(headers, self.fields))


class CsvRowSource:
    """
    Iterates the data rows of a delimited-text stream.

    Accepts text streams and binary streams (decoded with `encoding`).
    With `delimiter="auto"` the dialect is sniffed from the first 4KB.
    """

    def __init__(self, stream: Union[IO[str], IO[bytes]], delimiter: str = "auto",
                 encoding: str = "utf-8-sig"):
        if isinstance(stream, (io.RawIOBase, io.BufferedIOBase)):
            stream = io.TextIOWrapper(stream, encoding=encoding, newline="")
        self._stream = stream
        self._delimiter = delimiter
        self._reader = None
        self.headers: Optional[List[str]] = None

    def _build_reader(self):
        try:
            if self._delimiter != "auto":
                return csv.reader(self._stream, delimiter=self._delimiter, strict=True)

            sample = self._stream.read(SNIFF_SAMPLE_SIZE)
            # Complete the last partial line so the sample ends on a row boundary
            if sample and not sample.endswith("\n"):
                sample += self._stream.readline()
            try:
                dialect = csv.Sniffer().sniff(sample, delimiters=SNIFF_DELIMITERS)
                delimiter = dialect.delimiter
            except csv.Error:
                delimiter = ","
            lines = itertools.chain(io.StringIO(sample, newline=""), self._stream)
            return csv.reader(lines, delimiter=delimiter, strict=True)
        except (OSError, UnicodeDecodeError) as e:
            raise SourceReadError(f"Unable to read input: {e}") from e

    def read_header(self) -> List[str]:
        """
        Read the header row (first non-blank row).

        Raises:
            SourceReadError: If the input is unreadable or has no header.
        """
        if self.headers is not None:
            return self.headers

        self._reader = self._build_reader()
        for fields in self._next_rows():
            if any(f.strip() for f in fields):
                self.headers = fields
                return fields
        raise SourceReadError("Input has no header row")

    def _next_rows(self) -> Iterator[List[str]]:
        while True:
            try:
                fields = next(self._reader)
            except StopIteration:
                return
            except csv.Error as e:
                raise SourceReadError(f"Malformed delimited text: {e}", self._reader.line_num) from e
            except (OSError, UnicodeDecodeError) as e:
                raise SourceReadError(f"Unable to read input: {e}", self._reader.line_num) from e
            yield fields

    def __iter__(self) -> Iterator[RawRow]:
        if self.headers is None:
            self.read_header()
        for fields in self._next_rows():
            # Blank lines carry no row
            if not fields or (len(fields) == 1 and not fields[0].strip()):
                continue
            yield RawRow(number=self._reader.line_num, fields=fields)
