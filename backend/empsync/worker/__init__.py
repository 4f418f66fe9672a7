# Celery Worker Module
# Lazy import so pipelines can be used (and tested) without a broker configured

def __getattr__(name):
    """Lazy import celery_app only when explicitly accessed."""
    if name == "celery_app":
        from empsync.worker.celery_app import celery_app
        return celery_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = ["celery_app"]
