"""Checkout, pricing and order status transitions."""
