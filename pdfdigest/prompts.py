"""Prompt builders for document analysis and global synthesis.

Every prompt is self-contained so each call is stateless.  The section layout
of the analysis prompt is what the report renderer and the synthesis prompt
expect to find in a summary.
"""

from collections.abc import Sequence

_ANALYSIS_SECTIONS = """\
## 📄 Overview
(Two or three sentences on what the document is about.)

## 🔑 Key Concepts
(The most important terms and their definitions, as bullet points.)
* **Concept 1:** Definition...
* **Concept 2:** Definition...

## 🧠 Detailed Analysis
(A detailed, lecture-note style summary following the logical flow of the
document, using sub-headings.  Highlight important formulas, dates and
people.)

## 🎯 Conclusion and Recommendations
(The main takeaway and concrete study advice for a student.)"""


def build_analysis_prompt(language: str) -> str:
    """Prompt for summarizing one attached PDF document.

    Args:
        language: Language the summary must be written in.
    """
    return f"""\
You are an expert teaching assistant. Analyze the attached PDF document in
detail and summarize it in {language}.

Respond in exactly this Markdown format:

{_ANALYSIS_SECTIONS}

Write mathematical notation as LaTeX: $...$ inline, $$...$$ for display
equations.

Note: Focus only on the content of the document. Do not add outside
information."""


def build_text_analysis_prompt(language: str, document_text: str) -> str:
    """Like ``build_analysis_prompt`` but with the document text inlined.

    Used when the backend cannot read PDF attachments and the text was
    extracted locally.
    """
    return (
        build_analysis_prompt(language).replace(
            "Analyze the attached PDF document", "Analyze the document below"
        )
        + f"\n\n---\n\nDocument text:\n{document_text}"
    )


def build_synthesis_prompt(summaries: Sequence[str], language: str) -> str:
    """Prompt asking for one global summary across several document summaries.

    Args:
        summaries: Per-document summaries, at least two.
        language:  Output language.
    """
    rendered = "\n\n".join(
        f"### Document {i}\n\n{summary.strip()}" for i, summary in enumerate(summaries, start=1)
    )
    return f"""\
You are an expert teaching assistant. Below are summaries of {len(summaries)}
separate documents from the same course or reading list. Write one global
summary in {language} that connects them.

Respond in exactly this Markdown format:

## 🌐 Big Picture
(What the documents cover together, in three to five sentences.)

## 🔗 Connections Between Documents
(Shared concepts, dependencies and contrasts, as bullet points.)

## 🧩 Combined Key Concepts
(The consolidated glossary of the most important concepts.)

## 🎯 Study Plan
(A suggested order and strategy for studying the material.)

Keep LaTeX notation from the summaries intact. Use only the information in
the summaries.

---

{rendered}"""
