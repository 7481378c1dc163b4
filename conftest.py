"""
Root pytest configuration.

This file contains pytest plugins and configuration that should apply
to the entire test suite.
"""

# Register pytest plugins at the root level
pytest_plugins = ["pytest_asyncio"]
