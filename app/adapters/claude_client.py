"""
Claude API Client for the text rewrite collaborator.
Rewrites weak product listing text into clean card copy.

DESIGN PRINCIPLES:
- Never invent product facts
- Only rephrase what the scraped text already says
- Output is strict JSON, validated before use
- Any failure returns None and the scraped text is kept
"""
import json
import re
from typing import Dict, Optional

import anthropic

from app.utils.logger import LayerLogger


# System prompt enforcing strict non-hallucination
SYSTEM_PROMPT = """You are a strict copy-editing assistant for an affiliate product catalogue.

Your role is NOT to invent or infer information.

You may ONLY:
• Shorten and clean noisy product titles
• Rephrase the provided product text into clear, neutral copy
• Drop marketing filler, emoji, and repeated keywords

ABSOLUTE RULES:
• Never add specifications, prices, ratings, or claims absent from the input
• Never use external knowledge about the product or brand
• Keep the language of the input
• Output MUST be a single JSON object and nothing else"""

REWRITE_KEYS = ("title", "short", "description")

MAX_LENGTHS = {"title": 120, "short": 200, "description": 1200}


class ClaudeClient:
    """
    Claude API client implementing the text rewrite collaborator.

    Temperature=0 for deterministic output. Availability is decided at
    construction: no API key means no client.
    """

    MODEL_FAST = "claude-3-5-haiku-20241022"

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        timeout: float = 20.0,
    ):
        self.logger = LayerLogger("claude_client")
        self.model = model or self.MODEL_FAST

        if not api_key:
            self.logger.log_error("CLAUDE_API_KEY not provided", error_type="config_error")
            self.client = None
        else:
            self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=1)
            self.logger.log_action("init", "completed", model=self.model)

    def is_available(self) -> bool:
        """Check if Claude client is properly configured."""
        return self.client is not None

    async def rewrite_listing(
        self,
        title: Optional[str],
        short_description: Optional[str],
        long_description: Optional[str],
    ) -> Optional[Dict[str, str]]:
        """
        Rewrite listing text.

        Returns:
            Dict with any of "title", "short", "description", or None when
            the call fails or the answer does not validate
        """
        if not self.client or not (title or short_description or long_description):
            return None

        try:
            self.logger.log_action(
                "rewrite_listing",
                "started",
                title_length=len(title or ""),
                short_length=len(short_description or ""),
                long_length=len(long_description or "")
            )

            response = await self.client.messages.create(
                model=self.model,
                max_tokens=600,
                temperature=0,
                system=SYSTEM_PROMPT,
                messages=[{
                    "role": "user",
                    "content": f"""Rewrite this product listing.

Return JSON with exactly these keys:
"title" - the product title, max 120 characters
"short" - one sentence for a product card, max 200 characters
"description" - 2 to 4 sentences, max 1200 characters

Use ONLY facts present below. If a field cannot be written from the input, use an empty string.

Title: {(title or '')[:300]}
Short description: {(short_description or '')[:500]}
Details: {(long_description or '')[:2000]}

JSON:"""
                }]
            )

            text = response.content[0].text.strip()
            result = self._parse_rewrite(text)

            if result:
                self.logger.log_action(
                    "rewrite_listing",
                    "success",
                    fields=sorted(result),
                    tokens=response.usage.input_tokens + response.usage.output_tokens
                )
                return result

            self.logger.log_action(
                "rewrite_listing",
                "rejected",
                reason="invalid_json_or_empty",
                output=text[:200]
            )
            return None

        except anthropic.APIError as e:
            self.logger.log_error(f"Claude API error: {str(e)}", error_type="api_error")
            return None

    def _parse_rewrite(self, text: str) -> Optional[Dict[str, str]]:
        """Validate the model output: JSON object, known keys, bounded lengths."""
        match = re.search(r"\{.*\}", text, re.S)
        if not match:
            return None
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict):
            return None

        result = {}
        for key in REWRITE_KEYS:
            value = data.get(key)
            if isinstance(value, str):
                value = re.sub(r"\s+", " ", value).strip()
                if value and len(value) <= MAX_LENGTHS[key]:
                    result[key] = value
        return result or None
