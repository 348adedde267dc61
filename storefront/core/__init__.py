"""
Core package: configuration, logging, security and the domain error types.
"""
