"""
pdfdigest — queue PDF documents for LLM summarization and keep a history.

Each PDF is sent to an OpenAI-compatible backend (OpenRouter, LM Studio) and
the returned Markdown/LaTeX summary is recorded in a persistent history.
Completed summaries can be synthesized into one global summary and exported
as an HTML or Markdown report.
"""

__version__ = "0.1.0"
