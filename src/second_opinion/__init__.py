"""
second-opinion -- ask other AI coding agents before committing to an approach.

The orchestrator spawns one agent process per enabled provider, fans a
question out to them, and reduces their answers to a single Decision:
consensus, decided, or needs_input.
"""

__version__ = "1.1.0"
