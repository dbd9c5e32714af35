"""
Test suite for the orders import backend.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_rule_engine.py -v
"""
