"""
Test Utilities
==============

Fake browser engine and helpers for testing.
"""

from .mocks import *
from .helpers import *
