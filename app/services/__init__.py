"""Upstream clients and orchestration for the widget backend."""
