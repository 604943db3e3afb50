"""
Integration tests for the eventrelay library.

These tests require a real Redis instance, provisioned via testcontainers.
Tests are skipped automatically if Docker or testcontainers is not available.

Run integration tests:
    pytest tests/integration/ -v

Skip integration tests:
    pytest tests/ -v -m "not integration"
"""
