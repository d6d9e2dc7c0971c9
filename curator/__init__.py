"""
Paperless AI Curator

A metadata maintenance service for Paperless-ngx that performs:
- AI-assisted tagging (tags, correspondent, document type, title)
- Fuzzy consolidation of near-duplicate tags, correspondents and document types
- AI-generated document summaries stored as document notes
"""

__version__ = "1.1.0"
