"""Executor implementations; each module imports its driver library on use."""
