"""
Shared Layer - Cross-Cutting Concerns
Configuration, error taxonomy and structured logging used by every bounded context.
"""
