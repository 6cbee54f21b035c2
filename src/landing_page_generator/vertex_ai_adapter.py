from __future__ import annotations

import logging

import vertexai
from google.api_core import exceptions as google_exceptions
from vertexai.generative_models import GenerationConfig, GenerativeModel

from .errors import ModelError
from .settings import MODEL_MAX_OUTPUT_TOKENS, MODEL_TEMPERATURE, VERTEX_LOCATION, VERTEX_MODEL

logger = logging.getLogger(__name__)

# Worth another attempt after a backoff
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    google_exceptions.ResourceExhausted,
    google_exceptions.TooManyRequests,
    google_exceptions.DeadlineExceeded,
    google_exceptions.ServiceUnavailable,
    google_exceptions.InternalServerError,
    google_exceptions.Aborted,
)


class VertexAIAdapter:
    """Adapter for Vertex AI Gemini models."""

    def __init__(
        self,
        *,
        project_id: str,
        location: str = VERTEX_LOCATION,
        model_name: str = VERTEX_MODEL,
        temperature: float = MODEL_TEMPERATURE,
        max_output_tokens: int = MODEL_MAX_OUTPUT_TOKENS,
    ) -> None:
        """Initialize Vertex AI adapter.

        Args:
            project_id: GCP project ID
            location: Vertex AI location
            model_name: Model name (e.g., "gemini-2.0-flash")
            temperature: Default sampling temperature
            max_output_tokens: Default output token cap
        """
        self.project_id = project_id
        self.location = location
        self.model_name = model_name
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

        vertexai.init(project=project_id, location=location)
        self.model = GenerativeModel(model_name)

    def generate(self, prompt: str) -> str:
        return self.generate_content(
            prompt,
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
        )

    def generate_content(
        self,
        prompt: str,
        *,
        temperature: float = 0.7,
        max_output_tokens: int = 8192,
    ) -> str:
        """Generate text using Vertex AI.

        Args:
            prompt: Input prompt
            temperature: Sampling temperature (0.0 - 1.0)
            max_output_tokens: Maximum output tokens

        Returns:
            Generated text

        Raises:
            ModelError: transient for quota, timeout and availability
                failures; non-transient for blocked or invalid requests.
        """
        generation_config = GenerationConfig(
            temperature=temperature,
            max_output_tokens=max_output_tokens,
        )

        try:
            response = self.model.generate_content(
                prompt,
                generation_config=generation_config,
            )
        except TRANSIENT_ERRORS as exc:
            logger.warning(
                "Transient Vertex AI failure",
                extra={"model": self.model_name, "error": str(exc)},
            )
            raise ModelError(f"Vertex AI unavailable: {exc}", transient=True) from exc
        except google_exceptions.GoogleAPICallError as exc:
            logger.error(
                "Vertex AI rejected the request",
                exc_info=True,
                extra={"model": self.model_name},
            )
            raise ModelError(f"Vertex AI request failed: {exc}", transient=False) from exc

        try:
            generated_text = response.text
        except ValueError as exc:
            # Raised when the candidate was blocked by safety filters
            raise ModelError("Vertex AI response was blocked", transient=False) from exc

        logger.info(
            "Generated content with Vertex AI",
            extra={
                "model": self.model_name,
                "temperature": temperature,
                "input_length": len(prompt),
                "output_length": len(generated_text),
            },
        )

        return generated_text


__all__ = ["VertexAIAdapter", "TRANSIENT_ERRORS"]
