"""
LLM Client

Metadata extraction and summaries using Claude or OpenAI.
"""

import json
import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional

from curator.errors import LLMError

logger = logging.getLogger(__name__)

# Characters of document content sent to the model
MAX_PROMPT_CONTENT = 24000

_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_LANGUAGE_RE = re.compile(r'^[a-z]{2}(-[A-Z]{2})?$')

METADATA_PROMPT = """You are a document analysis AI. Analyze the document and extract structured information.

{existing}IMPORTANT: You MUST return a valid JSON object with the following structure. The response MUST include ALL fields:
{{
  "title": "string - document title",
  "correspondent": "string - sender name",
  "tags": ["array of strings - at least one tag"],
  "document_type": "string - document type",
  "document_date": "YYYY-MM-DD",
  "language": "en/de/es/..."
}}

Validation rules:
1. The tags array MUST contain at least one tag
2. The correspondent MUST be the sender, not the receiver
3. The title MUST be a non-empty string
4. The document_type MUST be a non-empty string
5. The document_date MUST be in YYYY-MM-DD format
6. The language MUST be a valid language code

All text fields (title, correspondent, tags, document_type) MUST be in the language that is used in the document.

DOCUMENT CONTENT:
{content}
"""

SUMMARY_PROMPT = """Please provide a concise summary of the following document titled "{title}".
Focus on key information such as dates, amounts, parties involved, and main points.
The summary should be comprehensive while remaining under {max_length} characters.
Format the response as plain text only.

DOCUMENT CONTENT:
{content}

SUMMARY:"""


class LLMClient:
    """Client for AI-assisted metadata extraction and summaries."""

    def __init__(self,
                 provider: str = 'openai',
                 api_key: Optional[str] = None,
                 model: Optional[str] = None,
                 max_tokens: int = 1024):
        """
        Initialize LLM client.

        Args:
            provider: 'anthropic' or 'openai'
            api_key: API key for the provider
            model: Model name (optional, uses defaults)
            max_tokens: Response token limit
        """
        self.provider = provider
        self.api_key = api_key
        self.model = model or self._get_default_model()
        self.max_tokens = max_tokens
        self.client = None

        if api_key:
            self._initialize_client()
        else:
            logger.warning("No LLM API key provided, AI features disabled")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _get_default_model(self) -> str:
        """Get default model for provider."""
        defaults = {
            'anthropic': 'claude-3-5-sonnet-20241022',
            'openai': 'gpt-4o-mini'
        }
        return defaults.get(self.provider, 'gpt-4o-mini')

    def _initialize_client(self) -> None:
        """Initialize the LLM client."""
        try:
            if self.provider == 'anthropic':
                import anthropic
                self.client = anthropic.Anthropic(api_key=self.api_key)
            elif self.provider == 'openai':
                import openai
                self.client = openai.OpenAI(api_key=self.api_key)
            else:
                logger.error(f"Unknown LLM provider: {self.provider}")
        except ImportError as e:
            logger.error(f"Failed to import {self.provider} library: {e}")

    def _call_llm(self, prompt: str) -> str:
        """Send one user prompt and return the text of the reply."""
        if not self.client:
            raise LLMError("LLM client not initialized")

        try:
            if self.provider == 'anthropic':
                response = self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    messages=[{"role": "user", "content": prompt}]
                )
                return response.content[0].text

            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
                temperature=0.3
            )
            return response.choices[0].message.content or ''
        except Exception as e:
            logger.error(f"{self.provider} call with model {self.model} failed: {e}")
            raise LLMError(f"{self.provider} request failed: {e}") from e

    def analyze_document(self, content: str,
                         existing_tags: Optional[List[str]] = None,
                         existing_correspondents: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Extract title, correspondent, tags, document type, date and language.

        Args:
            content: Document text
            existing_tags: Tag names already in Paperless (hint for reuse)
            existing_correspondents: Correspondent names already in Paperless

        Returns:
            Validated metadata dict
        """
        existing = ''
        if existing_tags:
            existing += f"Preexisting tags: {', '.join(existing_tags)}\n\n"
        if existing_correspondents:
            existing += f"Preexisting correspondents: {', '.join(existing_correspondents)}\n\n"

        prompt = METADATA_PROMPT.format(existing=existing, content=content[:MAX_PROMPT_CONTENT])
        response = self._call_llm(prompt)
        return self._validate_metadata(self._parse_response(response))

    def summarize(self, content: str, title: str, max_length: int) -> str:
        """Plain-text summary of a document."""
        prompt = SUMMARY_PROMPT.format(
            title=title, max_length=max_length, content=content[:MAX_PROMPT_CONTENT]
        )
        return self._call_llm(prompt)

    def _parse_response(self, response: str) -> Dict[str, Any]:
        """Extract the JSON object from a model reply."""
        text = re.sub(r'```(?:json)?', '', response or '').strip()
        json_match = re.search(r'\{.*\}', text, re.DOTALL)
        if not json_match:
            raise LLMError("Could not find JSON in LLM response")
        try:
            parsed = json.loads(json_match.group())
        except json.JSONDecodeError as e:
            raise LLMError(f"Failed to parse LLM response as JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise LLMError("LLM response is not a JSON object")
        return parsed

    def _validate_metadata(self, parsed: Dict[str, Any]) -> Dict[str, Any]:
        """Normalize and validate extracted metadata."""
        tags = parsed.get('tags')
        if not isinstance(tags, list):
            raise LLMError("Invalid response: tags must be an array")
        tags = [t.strip() for t in tags if isinstance(t, str) and t.strip()]
        if not tags:
            logger.warning("No tags provided by AI, adding fallback 'untagged' tag")
            tags = ['untagged']

        correspondent = parsed.get('correspondent')
        if not isinstance(correspondent, str) or not correspondent.strip():
            correspondent = None

        title = parsed.get('title')
        if not isinstance(title, str) or not title.strip():
            raise LLMError("Invalid response: title must be a non-empty string")

        document_type = parsed.get('document_type')
        if not isinstance(document_type, str) or not document_type.strip():
            raise LLMError("Invalid response: document_type must be a non-empty string")

        document_date = parsed.get('document_date')
        if not isinstance(document_date, str) or not _DATE_RE.match(document_date):
            logger.warning(f"Invalid document_date {document_date!r}, defaulting to today")
            document_date = date.today().isoformat()

        language = parsed.get('language')
        if not isinstance(language, str) or not _LANGUAGE_RE.match(language):
            raise LLMError(f"Invalid response: language {language!r} is not a language code")

        return {
            'title': title.strip(),
            'correspondent': correspondent.strip() if correspondent else None,
            'tags': tags,
            'document_type': document_type.strip(),
            'document_date': document_date,
            'language': language,
        }
