"""
LabRoute: route dispatch and real-time synchronization for dental-lab logistics.
"""

__version__ = "1.0.0"
