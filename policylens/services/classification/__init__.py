"""LLM document type and section classification."""
