"""
Google Gen AI client construction.

Clients are built once from GoogleConfig at process start and passed to the
collaborators that need them.
"""

import os
import base64
from typing import Any, Dict, Optional, List
import logging

from google import genai
from google.genai import types

from .config import GoogleConfig
from .utils import RemoteCallError

logger = logging.getLogger(__name__)


def resolve_project(config: GoogleConfig) -> Optional[str]:
    return (
        config.project
        or os.getenv("GOOGLE_CLOUD_PROJECT")
        or os.getenv("GCP_PROJECT_ID")
        or os.getenv("GCLOUD_PROJECT")
    )


def build_genai_client(config: GoogleConfig, location: Optional[str] = None) -> genai.Client:
    """
    Create a Vertex AI backed Gen AI client.

    Args:
        config: Google settings (project, timeout)
        location: Region override, defaults to config.location

    Returns:
        genai.Client with the configured request timeout
    """
    project = resolve_project(config)
    if not project:
        raise RuntimeError("No GCP project configured (google.project or GOOGLE_CLOUD_PROJECT)")

    client_kwargs: Dict[str, Any] = {
        "vertexai": True,
        "project": project,
        "location": location or config.location,
        "http_options": types.HttpOptions(timeout=config.timeout_ms),
    }
    logger.info(f"Gen AI client: project={project}, location={client_kwargs['location']}")
    return genai.Client(**client_kwargs)


def first_inline_image(response: Any) -> Optional[bytes]:
    """Return the first inline image payload of a generate_content response."""
    candidates = getattr(response, "candidates", None) or []
    for candidate in candidates:
        content = getattr(candidate, "content", None)
        parts = getattr(content, "parts", None) or []
        for part in parts:
            inline_data = getattr(part, "inline_data", None)
            if inline_data is None or getattr(inline_data, "data", None) is None:
                continue
            data = inline_data.data
            if isinstance(data, str):
                data = base64.b64decode(data)
            return data
    return None


def response_text(response: Any) -> List[str]:
    """All text parts of a generate_content response."""
    texts = []
    candidates = getattr(response, "candidates", None) or []
    for candidate in candidates:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            text = getattr(part, "text", None)
            if text:
                texts.append(text)
    return texts


def first_edited_image(response: Any) -> bytes:
    """
    Extract the first image from an Imagen edit_image response.

    Raises:
        RemoteCallError: if the response carries no image
    """
    generated = getattr(response, "generated_images", None) or []
    if not generated:
        raise RemoteCallError("No predictions returned from Imagen")

    image = getattr(generated[0], "image", None)
    data = getattr(image, "image_bytes", None) if image is not None else None
    if not data:
        reason = getattr(generated[0], "rai_filtered_reason", None)
        detail = f" (filtered: {reason})" if reason else ""
        raise RemoteCallError(f"No image data in Imagen response{detail}")
    return data
