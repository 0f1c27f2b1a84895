"""Window counter store adapters.

This package provides a small abstraction layer so the service can run with
an in-process store during development and a shared Redis store in
production without changing the admission engine or the API layer.
"""
