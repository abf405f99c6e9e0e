"""Deal Scout: LLM-orchestrated acquisition scouting for small internet businesses."""

__version__ = "0.1.0"
