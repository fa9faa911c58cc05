from icc_checker.middleware.request_log import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
