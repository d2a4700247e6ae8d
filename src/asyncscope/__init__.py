"""
asyncscope - asyncio task profiler

Runs a Python program under instrumentation, records its asyncio task
lifecycles and renders them into one self-contained HTML file.
"""

__version__ = "0.1.0"
__author__ = "asyncscope contributors"

from asyncscope.collector import collect
from asyncscope.pipeline import visualize
