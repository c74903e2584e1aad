"""Application package for the exam platform backend.

This package exposes the aggregators, credential manager, services,
repositories and models used by the FastAPI application. Individual
modules contain the concrete implementations and documentation.
"""
