"""Durable storage for audio, segment state and transcripts."""
