from .retry import RetryPolicy, compute_backoff, retry_async

__all__ = ["RetryPolicy", "compute_backoff", "retry_async"]
