"""
Vendor Response Decoding

Text-producing SDKs return several response shapes. Each known shape
has one decoder; ``decode_text`` tries them in order and raises
``UnrecognizedResponseShape`` when none applies.

Known shapes:
- plain ``str``
- mapping with a ``text`` string (``{"text": "..."}``)
- object with a ``text`` string attribute (Gemini ``GenerateContentResponse``)
- candidates/content/parts (raw Gemini REST payload, dict or object)
- list of content blocks with ``type == "text"`` (Anthropic messages)
"""

from typing import Any, Callable, List, Optional

from ..errors import UnrecognizedResponseShape

# A decoder returns the text, or None when the response is not its shape.
Decoder = Callable[[Any], Optional[str]]


def _field(value: Any, name: str) -> Any:
    if isinstance(value, dict):
        return value.get(name)
    return getattr(value, name, None)


def decode_plain_string(response: Any) -> Optional[str]:
    if isinstance(response, str):
        return response
    return None


def decode_text_mapping(response: Any) -> Optional[str]:
    if isinstance(response, dict) and isinstance(response.get("text"), str):
        return response["text"]
    return None


def decode_text_attribute(response: Any) -> Optional[str]:
    if isinstance(response, (dict, str, list)):
        return None
    try:
        text = getattr(response, "text", None)
    except ValueError:
        # Gemini raises when .text is read on a response without text parts
        return None
    return text if isinstance(text, str) else None


def decode_candidates(response: Any) -> Optional[str]:
    candidates = _field(response, "candidates")
    if not isinstance(candidates, (list, tuple)) or not candidates:
        return None
    content = _field(candidates[0], "content")
    parts = _field(content, "parts") if content is not None else None
    if not isinstance(parts, (list, tuple)):
        return None
    texts = [_field(part, "text") for part in parts]
    texts = [t for t in texts if isinstance(t, str)]
    if not texts:
        return None
    return "".join(texts)


def decode_content_blocks(response: Any) -> Optional[str]:
    blocks = _field(response, "content")
    if isinstance(response, list):
        blocks = response
    if not isinstance(blocks, (list, tuple)):
        return None
    texts = [
        _field(block, "text")
        for block in blocks
        if _field(block, "type") == "text"
    ]
    texts = [t for t in texts if isinstance(t, str)]
    if not texts:
        return None
    return "\n".join(texts)


DECODERS: List[Decoder] = [
    decode_plain_string,
    decode_text_mapping,
    decode_text_attribute,
    decode_candidates,
    decode_content_blocks,
]


def decode_text(response: Any) -> str:
    """
    Extract the generated text from a vendor response.

    Returns:
        The text, possibly empty; emptiness is judged by the caller

    Raises:
        UnrecognizedResponseShape: If no decoder recognizes the response
    """
    if response is None:
        raise UnrecognizedResponseShape("The model returned no response.")

    for decoder in DECODERS:
        text = decoder(response)
        if text is not None:
            return text

    raise UnrecognizedResponseShape(
        f"Unrecognized model response ({type(response).__name__})."
    )
