"""Stripe gateway, payment operations and webhook reconciliation."""
