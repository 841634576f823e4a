"""
RouteRover - appointment scheduling for home service technicians.
"""

__version__ = "0.1.0"
