"""Grounded question answering over policy documents."""
