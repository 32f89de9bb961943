"""
Data Ingestion Module

Reads quotes from external files and brings them into canonical shape:
- CSV quote files (date + price columns)
- Normalization and validation of (date, price) rows
"""

__version__ = "0.1.0"
