"""taskyard - durable background jobs for the application.

Routes slow, retryable side effects (outbound email, webhook redelivery,
report generation) through a prioritized job store consumed by a bounded,
rate-limited async worker pool.

Note: The whole subsystem is optional infrastructure. Without store
credentials every enqueue returns None and callers run their work inline.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
