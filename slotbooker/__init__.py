"""
slotbooker - service availability and reservation conflict checking.
"""

__version__ = "0.1.0"
