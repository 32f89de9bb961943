"""
Test Suite for the Quote Analytics Workbench

Includes:
- CLI tests covering register, ingest, evaluate and reporting commands
- Unit and pipeline tests live beside each package (<package>/tests)
"""
