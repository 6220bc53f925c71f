"""
Kunstpakket natural-language product search API
"""

__version__ = "1.0.0"
