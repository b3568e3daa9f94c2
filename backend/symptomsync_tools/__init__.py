"""Extraction, resolution and model-client helpers for the SymptomSync assistant."""
