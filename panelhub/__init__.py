"""
PanelHub - device-provider plugin runtime for the wall panel hub.
"""

__version__ = "1.0.0"
