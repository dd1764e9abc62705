"""
Questline Test Suite
====================

Test Organization
-----------------
- tests/unit/          : Fast unit tests on the in-memory store and mocks
- tests/integration/   : SQL store tests against a throwaway SQLite file (aiosqlite)

Markers
-------
- unit, integration, database (registered in conftest.py)
"""
