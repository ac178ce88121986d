"""Question answering over ingested video transcripts.

Ranks embedded transcript chunks against a question, grounds the LLM in the
best matches (or hands it the video directly when no transcript exists) and
memoizes answers per job, question and model.
"""
