"""Executor adapters for concurrent task execution."""

from fhircache.adapters.executor.runner import TaskRunner


__all__ = ["TaskRunner"]
