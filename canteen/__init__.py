"""
                Canteen Orders

Order placement, a strict status lifecycle and live order tracking for
a canteen counter, with hybrid Mock/Real collaborators.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
