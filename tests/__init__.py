"""
Test suite for the order dispatch allocation service.

Run all tests: pytest
Run with coverage: pytest --cov=. --cov-report=html
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_allocation_service.py -v
"""
