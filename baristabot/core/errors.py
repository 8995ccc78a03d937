"""Errors raised across worker boundaries."""


class WorkerInitError(RuntimeError):
    """A worker could not be initialized; the orchestrator skips it and keeps the others."""
