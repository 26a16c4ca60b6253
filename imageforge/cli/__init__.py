"""Imageforge CLI: Typer application."""
