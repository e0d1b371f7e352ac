"""
Questline Test Suite
====================

Test Organization
-----------------
- tests/unit/          : Pure logic and services with mocked collaborators
- tests/integration/   : Engine against a temporary SQLite database (aiosqlite)

Testing Philosophy
------------------
- Unit tests: fast, isolated, no database
- Integration tests: real SQLAlchemy sessions, transactions and version checks
- Use pytest markers (``unit``, ``integration``) to select suites
- Follow AAA pattern: Arrange, Act, Assert
"""
