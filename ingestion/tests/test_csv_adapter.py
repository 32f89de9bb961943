"""
Tests for the CSV quote source.
"""

import pytest

from ingestion.providers.csv_adapter import CsvSourceError, read_quotes_csv


def write(tmp_path, text, name='quotes.csv'):
    path = tmp_path / name
    path.write_text(text)
    return path


class TestReadQuotesCsv:

    def test_reads_rows_as_strings(self, tmp_path):
        path = write(tmp_path, "date,price\n2024-06-27,184.10\n2024-06-28, 185.40 \n")

        assert read_quotes_csv(path) == [
            {'date': '2024-06-27', 'price': '184.10'},
            {'date': '2024-06-28', 'price': '185.40'},
        ]

    def test_alternative_column_names(self, tmp_path):
        path = write(tmp_path, "Date,Open,Close\n2024-06-28,180,185.4\n")

        assert read_quotes_csv(str(path)) == [{'date': '2024-06-28', 'price': '185.4'}]

    def test_empty_cells_kept_as_empty_strings(self, tmp_path):
        path = write(tmp_path, "date,price\n2024-06-28,\n")

        assert read_quotes_csv(path) == [{'date': '2024-06-28', 'price': ''}]

    def test_header_only(self, tmp_path):
        path = write(tmp_path, "date,price\n")

        assert read_quotes_csv(path) == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(CsvSourceError, match='not found'):
            read_quotes_csv(tmp_path / 'missing.csv')

    def test_missing_price_column(self, tmp_path):
        path = write(tmp_path, "date,volume\n2024-06-28,1000\n")

        with pytest.raises(CsvSourceError, match='price column'):
            read_quotes_csv(path)

    def test_empty_file(self, tmp_path):
        path = write(tmp_path, "")

        with pytest.raises(CsvSourceError, match='Failed to read'):
            read_quotes_csv(path)
