"""
Language model gateway.

One `generate()` call walks an ordered list of provider stages. Each stage
has its own retry policy; a stage whose provider reports itself unavailable
is skipped. When every stage is exhausted the caller gets ModelUnavailable
with one cause per stage.
"""
import asyncio
import json
from dataclasses import dataclass, field
from typing import Optional, Protocol

import anthropic
import httpx
from loguru import logger
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

import config
from errors import ModelUnavailable

JSON_ONLY_DIRECTIVE = "IMPORTANT: Respond with valid JSON only. No markdown, no explanations, just pure JSON."
RESPONSE_TOOL_NAME = "submit_response"


class ProviderNotReady(Exception):
    """Raised into the cause list when a provider is skipped as unavailable."""


@dataclass
class ModelRequest:
    prompt: str
    system_instruction: Optional[str] = None
    response_schema: Optional[dict] = None  # structured-output hint (JSON Schema)
    expect_json: bool = True


@dataclass
class RawModelOutput:
    text: str
    provider: str


class ModelProvider(Protocol):
    name: str

    async def is_available(self) -> bool: ...

    async def generate(self, request: ModelRequest) -> str: ...


@dataclass
class RetryPolicy:
    """attempts total tries; delay before retry n is base_delay * 2^(n-1), capped at max_delay."""
    attempts: int = 1
    base_delay: float = 0.0
    max_delay: float = 0.0

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(max(1, self.attempts)),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            reraise=True,
        )


@dataclass
class ProviderStage:
    provider: ModelProvider
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    timeout: Optional[float] = None


class AnthropicProvider:
    """Hosted primary provider. Structured output is requested through a forced tool call."""

    name = "anthropic"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = config.ANTHROPIC_MODEL,
        max_tokens: int = config.ANTHROPIC_MAX_TOKENS,
        timeout: float = config.PRIMARY_TIMEOUT_SECONDS,
        client=None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        if client is None and api_key and api_key != "your-api-key-here":
            # Retries belong to the gateway, not the SDK
            client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self.client = client

    async def is_available(self) -> bool:
        return self.client is not None

    async def generate(self, request: ModelRequest) -> str:
        kwargs = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system_instruction:
            kwargs["system"] = request.system_instruction

        schema = request.response_schema
        if schema and schema.get("type") == "object":
            kwargs["tools"] = [{
                "name": RESPONSE_TOOL_NAME,
                "description": "Return the response in the required structure.",
                "input_schema": schema,
            }]
            kwargs["tool_choice"] = {"type": "tool", "name": RESPONSE_TOOL_NAME}

        response = await self.client.messages.create(**kwargs)

        for block in response.content:
            if block.type == "tool_use":
                return json.dumps(block.input)

        text = "".join(block.text for block in response.content if block.type == "text")
        if not text.strip():
            raise ValueError("Empty response from Anthropic")
        return text


class OllamaProvider:
    """Local fallback provider talking to Ollama's REST API."""

    name = "ollama"

    def __init__(
        self,
        base_url: str = config.OLLAMA_URL,
        model: str = config.OLLAMA_MODEL,
        health_timeout: float = config.OLLAMA_HEALTH_TIMEOUT_SECONDS,
        generate_timeout: float = config.OLLAMA_GENERATE_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.health_timeout = health_timeout
        self.generate_timeout = generate_timeout
        self.transport = transport
        self._checked = False
        self._available = False

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=self.transport)

    async def is_available(self) -> bool:
        """Check /api/tags once; the answer is cached until reset()."""
        if self._checked:
            return self._available

        self._available = False
        try:
            async with self._client(self.health_timeout) as client:
                response = await client.get("/api/tags")
            if response.status_code == 200:
                data = response.json()
                models = data.get("models") if isinstance(data, dict) else None
                names = [
                    m["name"] for m in (models if isinstance(models, list) else [])
                    if isinstance(m, dict) and isinstance(m.get("name"), str)
                ]
                family = self.model.split(":")[0]
                self._available = any(n == self.model or n.startswith(family) for n in names)
                if not self._available:
                    logger.warning(f"Ollama running but model {self.model} not found. Available: {', '.join(names)}")
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Ollama health check failed: {e}")

        self._checked = True
        return self._available

    def reset(self) -> None:
        self._checked = False
        self._available = False

    async def generate(self, request: ModelRequest) -> str:
        full_prompt = request.prompt
        if request.system_instruction:
            full_prompt = f"{request.system_instruction}\n\n---\n\n{request.prompt}"
        if request.expect_json:
            full_prompt += f"\n\n{JSON_ONLY_DIRECTIVE}"

        payload = {
            "model": self.model,
            "prompt": full_prompt,
            "stream": False,
            "options": {"temperature": 0.7, "num_predict": 2048},
        }
        if request.expect_json:
            payload["format"] = "json"

        async with self._client(self.generate_timeout) as client:
            response = await client.post("/api/generate", json=payload)
        response.raise_for_status()

        text = response.json().get("response")
        if not text:
            raise ValueError("Ollama returned empty response")
        return text


class ModelGateway:
    def __init__(self, stages: list[ProviderStage]):
        self.stages = stages

    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        response_schema: Optional[dict] = None,
        expect_json: bool = True,
    ) -> RawModelOutput:
        request = ModelRequest(prompt, system_instruction, response_schema, expect_json)
        causes: list[tuple[str, BaseException]] = []

        for stage in self.stages:
            name = stage.provider.name
            if not await stage.provider.is_available():
                logger.debug(f"[GATEWAY] {name} unavailable, skipping")
                causes.append((name, ProviderNotReady(f"{name} is not available")))
                continue
            try:
                text = await self._run_stage(stage, request)
            except Exception as e:
                logger.warning(f"[GATEWAY] {name} exhausted after {stage.retry.attempts} attempt(s): {e}")
                causes.append((name, e))
                continue
            logger.debug(f"[GATEWAY] {name} answered ({len(text)} chars)")
            return RawModelOutput(text=text, provider=name)

        raise ModelUnavailable(causes)

    async def _run_stage(self, stage: ProviderStage, request: ModelRequest) -> str:
        async for attempt in stage.retry.retrying():
            with attempt:
                logger.debug(
                    f"[GATEWAY] {stage.provider.name} attempt {attempt.retry_state.attempt_number}"
                    f"/{stage.retry.attempts} ({len(request.prompt)} chars)"
                )
                call = stage.provider.generate(request)
                if stage.timeout:
                    return await asyncio.wait_for(call, timeout=stage.timeout)
                return await call

    def reset_availability(self) -> None:
        """Forget cached liveness checks so the next call re-checks."""
        for stage in self.stages:
            reset = getattr(stage.provider, "reset", None)
            if reset:
                reset()


def build_gateway(preference: str = config.AI_MODEL_PREFERENCE) -> ModelGateway:
    primary = ProviderStage(
        AnthropicProvider(api_key=config.ANTHROPIC_API_KEY),
        RetryPolicy(
            attempts=config.PRIMARY_RETRY_ATTEMPTS,
            base_delay=config.PRIMARY_RETRY_BASE_DELAY,
            max_delay=config.PRIMARY_RETRY_MAX_DELAY,
        ),
        timeout=config.PRIMARY_TIMEOUT_SECONDS,
    )
    secondary = ProviderStage(
        OllamaProvider(),
        RetryPolicy(attempts=1),
        timeout=config.OLLAMA_GENERATE_TIMEOUT_SECONDS,
    )

    if preference == "primary":
        stages = [primary]
    elif preference == "secondary":
        stages = [secondary, primary]
    else:
        stages = [primary, secondary]
    logger.debug(f"[GATEWAY] preference={preference} stages={[s.provider.name for s in stages]}")
    return ModelGateway(stages)
