"""
Tests for orders app.

- test_services.py: OrderService lookups and the guarded cancel update
"""
