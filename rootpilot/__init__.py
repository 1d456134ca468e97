"""
rootpilot - natural-language automation for rooted Android devices.
"""
__version__ = "0.1.0"
