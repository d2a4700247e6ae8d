"""
Loaded automatically by the interpreter when this directory is on PYTHONPATH.

collect() puts it there so the asyncscope instrumentation starts before the
profiled program's own code.
"""

import sys

try:
    from asyncscope.instrument import install
    install()
except Exception as e:
    sys.stderr.write(f"asyncscope: instrumentation not loaded: {e!r}\n")
