"""
CLI layer - Typer commands.
"""
