"""Listing and negotiation-reply generation through a hosted multimodal model."""

import json
import re
import time
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from openai import OpenAI

from .config import Config
from .images import ImageFile
from .models import (
    LISTING_FIELDS,
    NEGOTIATION_TONES,
    ListingResult,
    NegotiationResponse,
    check_style,
    parse_replies,
)

LISTING_ERROR = "Could not analyse the photo. Please try again."
REPLIES_ERROR = "Could not draft replies. Please try again."

LISTING_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "photo_score": {
            "type": "integer",
            "description": "Photo quality score from 1 (poor) to 10 (excellent).",
        },
        "photo_advice": {
            "type": "string",
            "description": "One short, concrete tip to make the photo sell better.",
        },
        "title": {
            "type": "string",
            "description": "A catchy, attention-grabbing title for the product listing.",
        },
        "description": {
            "type": "string",
            "description": "A detailed description including condition, color, brand, and key features.",
        },
        "suggested_price": {
            "type": "integer",
            "description": "Suggested selling price as a whole number in the listing currency.",
        },
        "hashtags": {
            "type": "string",
            "description": "Relevant hashtags for social media visibility, space separated.",
        },
    },
    "required": list(LISTING_FIELDS),
    "additionalProperties": False,
}

REPLY_ITEM_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "type": {"type": "string", "enum": list(NEGOTIATION_TONES)},
        "text": {"type": "string"},
    },
    "required": ["type", "text"],
    "additionalProperties": False,
}

REPLIES_SCHEMA: Dict[str, Any] = {"type": "array", "items": REPLY_ITEM_SCHEMA}

BASE_INSTRUCTION = "You are an expert e-commerce copywriter and professional reseller."

STYLE_INSTRUCTIONS = {
    "casual": (
        " Use a CASUAL, fun, and energetic tone suitable for Instagram/TikTok. Use emojis, slang, "
        "and exclamation marks. Make it feel like a friend recommending a product."
    ),
    "formal": (
        " Use a FORMAL, professional, and trustworthy tone suitable for marketplaces like Tokopedia "
        "or LinkedIn. Be concise, factual, and polite. Do not use emojis."
    ),
}


class GenerationError(Exception):
    """Any failure of a generation call, carrying one user-facing message."""


def gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Translate a JSON schema into the subset Gemini accepts (upper-case types, no extras)."""
    out: Dict[str, Any] = {"type": schema["type"].upper()}
    for key in ("description", "enum", "required"):
        if key in schema:
            out[key] = schema[key]
    if "properties" in schema:
        out["properties"] = {k: gemini_schema(v) for k, v in schema["properties"].items()}
    if "items" in schema:
        out["items"] = gemini_schema(schema["items"])
    return out


def parse_json_text(text: str) -> Any:
    """Parse a JSON response, tolerating a fenced ```json block around it."""
    if not text or not text.strip():
        raise ValueError("Empty response text.")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    fence_match = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text, re.IGNORECASE)
    if fence_match:
        return json.loads(fence_match.group(1).strip())
    raise ValueError(f"Response is not JSON: {text[:80]!r}")


def listing_prompt(currency: str) -> str:
    return (
        "Analyze this image and generate a sales listing. Rate the photo quality from 1 to 10 "
        "and give one tip to improve it. Provide a catchy title, a detailed description covering "
        f"visual condition/brand/color, a suggested selling price in {currency} as a whole number, "
        "and relevant hashtags."
    )


def replies_prompt(buyer_message: str) -> str:
    return (
        "You are a seller on a secondhand marketplace. A buyer sent you this chat message:\n"
        f'"{buyer_message}"\n\n'
        "Write exactly three short replies you could send back, one for each tone: "
        "Polite (friendly and accommodating), Firm (holds the price, courteous but clear), "
        "and Playful (light-hearted and witty). Tag each reply with its tone."
    )


class ListingGenerator:
    """Talks to the configured provider for listings and negotiation replies."""

    def __init__(self, config: Config):
        self.config = config

        # Initialize LLM per ENV-configured provider/model
        api_key, provider = config.validate_api_key()
        self.provider = provider
        self.model = config.model_for(provider)
        if provider == "google":
            print(f"[llm] Using Google Gemini {self.model} (key: ...{api_key[-8:]})")
            genai.configure(api_key=api_key)
            self.client = None
        elif provider == "openai":
            print(f"[llm] Using OpenAI {self.model} (key: ...{api_key[-8:]})")
            self.client = OpenAI(api_key=api_key, timeout=config.timeout)
        else:
            raise ValueError(f"[llm] Unsupported provider '{provider}' from config")

    def generate_listing(self, image: ImageFile, style: str) -> ListingResult:
        """Analyse one photo and return a validated listing, or raise GenerationError."""
        style = check_style(style)
        system = BASE_INSTRUCTION + STYLE_INSTRUCTIONS[style]
        try:
            raw = self._complete(
                system=system,
                prompt=listing_prompt(self.config.currency),
                schema=LISTING_SCHEMA,
                name="listing",
                image=image,
            )
            return ListingResult.from_dict(parse_json_text(raw))
        except Exception as e:
            print(f"[error] Listing generation failed ({self.provider}/{self.model}): {e!r}")
            raise GenerationError(LISTING_ERROR) from e

    def generate_replies(self, buyer_message: str) -> List[NegotiationResponse]:
        """Draft one reply per tone for a buyer's message, or raise GenerationError."""
        message = (buyer_message or "").strip()
        if not message:
            raise ValueError("Please paste the buyer's message first.")
        try:
            raw = self._complete(
                system=None,
                prompt=replies_prompt(message),
                schema=REPLIES_SCHEMA,
                name="replies",
            )
            return parse_replies(parse_json_text(raw))
        except Exception as e:
            print(f"[error] Reply generation failed ({self.provider}/{self.model}): {e!r}")
            raise GenerationError(REPLIES_ERROR) from e

    def check_connection(self) -> str:
        """Send a plain 'hello' and return the reply text."""
        start = time.time()
        text = self._complete(system=None, prompt="hello", schema=None, name="hello")
        print(f"[timing] {time.time() - start:.2f}s")
        return text

    def _complete(
        self,
        system: Optional[str],
        prompt: str,
        schema: Optional[Dict[str, Any]],
        name: str,
        image: Optional[ImageFile] = None,
    ) -> str:
        """One request/response round trip; returns the raw response text."""
        if self.provider == "google":
            return self._complete_google(system, prompt, schema, image)
        return self._complete_openai(system, prompt, schema, name, image)

    def _complete_google(self, system, prompt, schema, image) -> str:
        model = genai.GenerativeModel(self.model, system_instruction=system)
        parts: List[Any] = []
        if image is not None:
            parts.append({"mime_type": image.mime_type, "data": image.data})
        parts.append(prompt)

        config_kwargs: Dict[str, Any] = {"temperature": self.config.temperature}
        if schema is not None:
            config_kwargs["response_mime_type"] = "application/json"
            config_kwargs["response_schema"] = gemini_schema(schema)

        resp = model.generate_content(
            parts,
            generation_config=genai.GenerationConfig(**config_kwargs),
            request_options={"timeout": self.config.timeout},
        )
        text = resp.text
        if not text:
            raise ValueError("No text response from Gemini.")
        return text

    def _complete_openai(self, system, prompt, schema, name, image) -> str:
        messages: List[Dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        if image is not None:
            content: Any = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": image.base64_data}},
            ]
        else:
            content = prompt
        messages.append({"role": "user", "content": content})

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.config.temperature,
        }
        if schema is not None:
            # Strict structured output needs an object at the root
            if schema["type"] != "object":
                schema = {
                    "type": "object",
                    "properties": {name: schema},
                    "required": [name],
                    "additionalProperties": False,
                }
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": name, "schema": schema, "strict": True},
            }

        resp = self.client.chat.completions.create(**kwargs)
        text = resp.choices[0].message.content if resp.choices else None
        if not text:
            raise ValueError("No text response from OpenAI.")
        return text
