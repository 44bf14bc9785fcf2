"""CodeOrbit dispatch core.

Routes a free-text prompt to named agents through a capability-indexed
registry, aggregates their results and keeps a bounded per-agent context
memory with optional file or sqlite persistence.
"""

__version__ = "0.1.0"
