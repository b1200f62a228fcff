"""Stages, executor and scheduler of the call pipeline."""
