"""Video ingestion pipeline for ChatPye.

This package fetches YouTube transcripts, chunks them by character length,
embeds the chunks and stores them per job so questions about a video can be
answered from its own transcript.
"""
