"""
Apex Progression Test Suite
===========================

Test Organization
-----------------
- tests/unit/          : Fast unit tests on the in-memory store (no external dependencies)
- tests/integration/   : PostgreSQL tests with testcontainers
- tests/fakes.py       : In-memory ProgressionStore and test data factories

Run a subset with markers, e.g. ``pytest -m unit``.
"""
