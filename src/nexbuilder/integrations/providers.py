"""LLM completion providers: the Claude CLI and the OpenRouter HTTP API."""

import json
import logging
import shutil
import subprocess
from abc import ABC, abstractmethod

import httpx

from nexbuilder.config import Config
from nexbuilder.db.models import AIConfig, Provider
from nexbuilder.errors import CollaboratorError, ConfigurationError

logger = logging.getLogger(__name__)


class CompletionProvider(ABC):
    name: str = ""

    @abstractmethod
    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Send one prompt and return the model's text response."""


class ClaudeCLIProvider(CompletionProvider):
    """Runs ``claude -p`` in print mode and reads the JSON result."""

    name = "claude"

    def __init__(self, binary: str = "claude", model: str | None = None, timeout: float | None = None):
        self.binary = binary
        self.model = model
        self.timeout = timeout

    def build_command(self, system_prompt: str, user_prompt: str) -> list[str]:
        cmd = [self.binary, "-p", user_prompt, "--output-format", "json"]
        if self.model:
            cmd += ["--model", self.model]
        if system_prompt:
            cmd += ["--system-prompt", system_prompt]
        return cmd

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        if shutil.which(self.binary) is None:
            raise ConfigurationError(
                f"Claude CLI not found: {self.binary}. Install it or set NB_CLAUDE_BINARY."
            )

        cmd = self.build_command(system_prompt, user_prompt)
        logger.debug("Running %s (model=%s)", self.binary, self.model)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise CollaboratorError(
                f"Claude CLI timed out after {self.timeout}s", provider=self.name
            ) from e

        if result.returncode != 0:
            raise CollaboratorError(
                f"Claude CLI failed with exit code {result.returncode}: "
                f"{result.stderr.strip() or result.stdout.strip()}",
                provider=self.name,
                status=str(result.returncode),
            )

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError:
            return result.stdout.strip()

        if not isinstance(data, dict):
            return result.stdout.strip()
        if data.get("is_error"):
            raise CollaboratorError(
                str(data.get("result") or "Claude CLI reported an error"),
                provider=self.name,
                status=data.get("subtype"),
            )
        return str(data.get("result", ""))


class OpenRouterProvider(CompletionProvider):
    """OpenAI-compatible chat completions on OpenRouter."""

    name = "openrouter"

    def __init__(
        self,
        api_key: str | None,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout: float = 300.0,
        client: httpx.Client | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def _post(self, payload: dict) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "X-Title": "NexBuilder",
        }
        url = f"{self.base_url}/chat/completions"
        if self._client is not None:
            return self._client.post(url, headers=headers, json=payload)
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(url, headers=headers, json=payload)

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        if not self.api_key:
            raise ConfigurationError(
                "OpenRouter API key missing. Set OPENROUTER_API_KEY or run "
                "'nb config set --api-key'."
            )

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        try:
            response = self._post({"model": self.model, "messages": messages})
        except httpx.HTTPError as e:
            raise CollaboratorError(f"OpenRouter request failed: {e}", provider=self.name) from e

        if response.is_error:
            raise CollaboratorError(
                f"OpenRouter returned {response.status_code} {response.reason_phrase}: "
                f"{_error_detail(response)}",
                provider=self.name,
                status=response.reason_phrase,
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CollaboratorError(
                "OpenRouter response did not contain a completion", provider=self.name
            ) from e
        return content or ""


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if not isinstance(body, dict):
        return response.text[:200]
    error = body.get("error")
    if isinstance(error, dict):
        return str(error.get("message", error))
    return str(error or response.text[:200])


def get_provider(ai_config: AIConfig, config: Config) -> CompletionProvider:
    """Build the provider selected by the AI settings."""
    factories = {
        Provider.CLAUDE: lambda: ClaudeCLIProvider(
            binary=config.claude_binary,
            model=ai_config.model,
            timeout=config.request_timeout,
        ),
        Provider.OPENROUTER: lambda: OpenRouterProvider(
            api_key=ai_config.api_key,
            model=ai_config.model or "",
            base_url=config.openrouter_base_url,
            timeout=config.request_timeout,
        ),
    }
    return factories[ai_config.provider]()
