from . import generation_jobs, providers

__all__ = ["generation_jobs", "providers"]
