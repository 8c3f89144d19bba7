"""Health log analytics: migraine summaries, medical reports and adherence scoring."""

__version__ = "0.1.0"
