"""
Core pipeline for rootpilot: configuration, logging, errors, scripts,
resolution and execution.
"""
