"""Frontends - User interfaces for canvasflow.

Submodules:
    cli/    Command-line interface
"""
