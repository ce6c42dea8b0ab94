"""Transcription engines and the workers that call them."""
