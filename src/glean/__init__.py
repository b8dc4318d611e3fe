"""glean: pick the single most valuable note from a Notion page and summarize it.

Pages are fetched and materialized, classified by structure, split into
candidate content units, scored, filtered against summary history, and the
one winning unit is handed to an LLM for perspective-aware summarization.
"""

__version__ = "0.3.0"
