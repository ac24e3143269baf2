# backend/convoflow/services/ai_service.py

import json
import asyncio
import logging
from typing import Any, Dict, List, Optional

from google import genai
from google.genai.types import GenerateContentConfig, HttpOptions
from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError

from convoflow.config.persona import AI_SYSTEM_PROMPT, INTENT_PROMPT_TEMPLATE
from convoflow.utils.circuit_breaker import CircuitBreaker
from convoflow.utils.metrics import ai_requests_counter

# This service is the free-conversation collaborator: it asks an AI model for
# a reply plus the guided workflows the message seems to ask for. Gemini is
# tried first and OpenAI is the fallback; both answer in JSON mode.

logger = logging.getLogger(__name__)


class AIIntent(BaseModel):
    workflow_id: str
    confidence: float = Field(ge=0.0, le=1.0)


class AIResponse(BaseModel):
    message: str = ""
    intents: List[AIIntent] = Field(default_factory=list)


class AIService:
    def __init__(
        self,
        gemini_api_key: str | None = None,
        openai_api_key: str | None = None,
        gemini_model: str = "gemini-1.5-flash",
        openai_model: str = "gpt-4o-mini",
    ):
        if gemini_api_key:
            self.gemini_client = genai.Client(api_key=gemini_api_key, http_options=HttpOptions(api_version="v1"))
            self.gemini_model = gemini_model
            logger.info(f"Using Gemini model: {self.gemini_model}")
        else:
            self.gemini_client = None
            self.gemini_model = None

        self.openai_client = AsyncOpenAI(api_key=openai_api_key) if openai_api_key else None
        self.openai_model = openai_model

        self.gemini_breaker = CircuitBreaker(name="gemini")
        self.openai_breaker = CircuitBreaker(name="openai")

    @property
    def is_configured(self) -> bool:
        return self.gemini_client is not None or self.openai_client is not None

    def build_prompt(self, message: str, context: Dict[str, Any]) -> str:
        catalog = "\n".join(
            f"- {w['id']}: {w['name']} ({w.get('description', '')})" for w in context.get("workflows", [])
        ) or "- (none)"
        user_context = json.dumps(context.get("user", {}), ensure_ascii=False, default=str)
        return INTENT_PROMPT_TEMPLATE.format(
            system_prompt=AI_SYSTEM_PROMPT.format(language=context.get("language", "fr")),
            workflow_catalog=catalog,
            user_context=user_context,
            message=message,
        )

    async def generate_response(self, message: str, context: Dict[str, Any] | None = None) -> Optional[AIResponse]:
        """
        Generates a reply and intent list for a free-conversation message.

        Returns:
            AIResponse, or None when no provider could produce a usable answer.
        """
        prompt = self.build_prompt(message, context or {})

        if self.gemini_client:
            try:
                payload = await self.gemini_breaker.call(self._generate_gemini_json, prompt)
                ai_requests_counter.labels(model="gemini-json", status="success").inc()
                return self._parse(payload)
            except Exception as e:
                logger.error(f"Gemini JSON response generation failed: {e}. Trying OpenAI fallback.")
                ai_requests_counter.labels(model="gemini-json", status="error").inc()

        if self.openai_client:
            try:
                payload = await self.openai_breaker.call(self._generate_openai_json, prompt)
                ai_requests_counter.labels(model="openai-json", status="success").inc()
                return self._parse(payload)
            except Exception as e:
                logger.error(f"OpenAI JSON response generation failed: {e}")
                ai_requests_counter.labels(model="openai-json", status="error").inc()

        return None

    def _parse(self, payload: Dict[str, Any]) -> AIResponse:
        try:
            response = AIResponse.model_validate(payload)
        except ValidationError as e:
            # Keep the reply even when the intent list is malformed.
            logger.warning(f"AI payload did not match the expected shape: {e.error_count()} error(s)")
            response = AIResponse(message=str(payload.get("message", "")) if isinstance(payload, dict) else "")
        response.intents.sort(key=lambda intent: intent.confidence, reverse=True)
        return response

    async def _generate_gemini_json(self, prompt: str) -> Dict[str, Any]:
        response = await asyncio.to_thread(
            self.gemini_client.models.generate_content,
            model=self.gemini_model,
            contents=f"{prompt}\n\nPlease respond with valid JSON only.",
            config=GenerateContentConfig(temperature=0.1, response_mime_type="application/json"),
        )
        return json.loads(response.text)

    async def _generate_openai_json(self, prompt: str) -> Dict[str, Any]:
        response = await self.openai_client.chat.completions.create(
            model=self.openai_model,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": "You are a helpful assistant designed to output JSON."},
                {"role": "user", "content": prompt},
            ],
        )
        return json.loads(response.choices[0].message.content)
