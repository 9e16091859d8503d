import json
import logging
import re
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

from anthropic import Anthropic
from openai import OpenAI

from scatterbrain.config import Settings, get_settings
from scatterbrain.error_handler import ProviderError

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)


def parse_json_content(text: Optional[str], fallback: Any) -> Any:
    """Parse model output that should be JSON, returning fallback if it isn't."""
    if not text:
        logger.warning("Empty AI response, using fallback structure")
        return fallback

    cleaned = _CODE_FENCE.sub('', text.strip())
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        # Models sometimes wrap the object in prose
        start, end = cleaned.find('{'), cleaned.rfind('}')
        if start != -1 and end > start:
            try:
                return json.loads(cleaned[start:end + 1])
            except json.JSONDecodeError:
                pass
        logger.error(f"Failed to parse AI response as JSON: {cleaned[:200]}")
        return fallback


class OpenAIClient:
    def __init__(self, client: Optional[OpenAI] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.client = client or OpenAI(api_key=settings.openai_api_key)
        self.model = settings.openai_model

    def complete(
        self,
        system_prompt: str,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000
    ) -> Tuple[str, int]:
        """Return the completion text and the total tokens it used."""
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt}
                ],
                temperature=temperature,
                max_tokens=max_tokens
            )
        except Exception as e:
            raise ProviderError('OpenAI', str(e)) from e

        usage = getattr(response, 'usage', None)
        tokens = getattr(usage, 'total_tokens', 0) or 0
        return response.choices[0].message.content, tokens

    def transcribe(self, audio_file: BinaryIO) -> str:
        """
        Transcribe audio file using OpenAI Whisper API
        """
        try:
            return self.client.audio.transcriptions.create(
                model="whisper-1",
                file=audio_file,
                response_format="text"
            )
        except Exception as e:
            raise ProviderError('OpenAI', f"Transcription failed: {str(e)}") from e


class PerplexityClient:
    """Perplexity exposes an OpenAI-compatible chat completions API."""

    def __init__(self, client: Optional[OpenAI] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.client = client or OpenAI(
            api_key=settings.perplexity_api_key,
            base_url=settings.perplexity_base_url
        )
        self.model = settings.perplexity_model

    def search(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.2,
        max_tokens: int = 1000
    ) -> Tuple[str, List[str]]:
        """Return the answer text and the citation URLs Perplexity attached."""
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                extra_body={'return_citations': True, 'search_recency_filter': 'week'}
            )
        except Exception as e:
            raise ProviderError('Perplexity', str(e)) from e

        citations = getattr(response, 'citations', None) or []
        return response.choices[0].message.content, list(citations)


class AnthropicClient:
    def __init__(self, client: Optional[Anthropic] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.client = client or Anthropic(api_key=settings.anthropic_api_key)
        self.model = settings.anthropic_model

    def complete(self, system_prompt: str, prompt: str, temperature: float = 0.7, max_tokens: int = 2000) -> str:
        try:
            response = self.client.messages.create(
                model=self.model,
                system=system_prompt,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens
            )
        except Exception as e:
            raise ProviderError('Anthropic', str(e)) from e

        return ''.join(
            block.text for block in response.content if getattr(block, 'type', None) == 'text'
        )
