"""Core utilities and shared application primitives.

Modules in this package should be framework-agnostic where possible and
focused on configuration, the store client, errors, validation, and small
reusable helpers.
"""
