"""Mirror assistant replies from a source channel to a messaging target."""

__version__ = "0.1.0"
