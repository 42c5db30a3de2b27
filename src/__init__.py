"""
Content Factory

Batch blog post generation tool that:
- Reads topic lists from spreadsheets, CSV, JSON, pasted text or a single entry
- Drafts an outline, sections and sources per topic with an LLM backend
- Streams ordered progress events while the batch runs
- Supports cooperative cancellation of a running batch
- Exports posts as Excel, CSV, Markdown, JSON, PDF or a shared Google Sheet
"""

__version__ = "0.1.0"
