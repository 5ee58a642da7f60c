"""Tests for the LLM collaborators and the completion providers."""

import json
import subprocess
from unittest.mock import patch

import httpx
import pytest

from nexbuilder.config import Config, resolve_ai_config
from nexbuilder.db.models import AgentRole, AIConfig, Provider, Task
from nexbuilder.errors import CollaboratorError, ConfigurationError, EmptyPlanError, ParseError
from nexbuilder.integrations.ai import (
    DECOMPOSE_SYSTEM_PROMPT,
    PLAN_SYSTEM_PROMPT,
    LLMDescriptionRefiner,
    LLMPlanGenerator,
    LLMTaskDecomposer,
    LLMTaskExecutor,
    extract_json,
)
from nexbuilder.integrations.providers import (
    ClaudeCLIProvider,
    OpenRouterProvider,
    get_provider,
)


class FakeProvider:
    def __init__(self, response=""):
        self.response = response
        self.calls = []

    def complete(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        return self.response


class TestExtractJson:
    def test_plain(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced(self):
        text = 'Here is the plan:\n```json\n{"name": "X"}\n```\nEnjoy.'
        assert extract_json(text) == {"name": "X"}

    def test_embedded_in_prose(self):
        assert extract_json('Sure! [{"title": "A"}] hope that helps') == [{"title": "A"}]

    def test_skips_unparseable_braces(self):
        assert extract_json('use {curly} braces: {"ok": true}') == {"ok": True}

    def test_no_json(self):
        with pytest.raises(ParseError):
            extract_json("I cannot help with that.")

    def test_empty(self):
        with pytest.raises(ParseError):
            extract_json("   ")


class TestPlanGenerator:
    def test_generate(self):
        response = json.dumps(
            {
                "name": "Todo App",
                "packages": ["lodash"],
                "tasks": [{"id": "a", "title": "A"}],
            }
        )
        provider = FakeProvider(response)
        plan = LLMPlanGenerator(provider).generate("a todo app")
        assert plan.name == "Todo App"
        assert plan.packages == ["lodash"]
        assert plan.tasks == [{"id": "a", "title": "A"}]
        assert provider.calls == [(PLAN_SYSTEM_PROMPT, "User Request: a todo app")]

    def test_default_name(self):
        plan = LLMPlanGenerator(FakeProvider('{"tasks": [{"title": "A"}]}')).generate("x")
        assert plan.name == "New Project"
        assert plan.packages == []

    def test_empty_tasks(self):
        with pytest.raises(EmptyPlanError):
            LLMPlanGenerator(FakeProvider('{"name": "X", "tasks": []}')).generate("x")

    def test_not_an_object(self):
        with pytest.raises(ParseError):
            LLMPlanGenerator(FakeProvider('[{"title": "A"}]')).generate("x")

    def test_tasks_not_a_list(self):
        with pytest.raises(ParseError):
            LLMPlanGenerator(FakeProvider('{"tasks": "many"}')).generate("x")


class TestTaskExecutor:
    def test_prompt_sections(self):
        task = Task(id="a", title="Build UI", description="Use flexbox")
        prompt = LLMTaskExecutor(FakeProvider()).build_prompt(task, "Existing Files:\n- a.js", ["react"])
        assert prompt.startswith("# Task: Build UI")
        assert "## Description\nUse flexbox" in prompt
        assert "## Packages\n- react" in prompt
        assert prompt.endswith("## Context from previous tasks\nExisting Files:\n- a.js")

    def test_minimal_prompt(self):
        prompt = LLMTaskExecutor(FakeProvider()).build_prompt(Task(id="a", title="A"), "", [])
        assert prompt == "# Task: A"

    def test_role_in_system_prompt(self):
        provider = FakeProvider('<file path="a.js">x</file>')
        task = Task(id="a", title="A", agent_role=AgentRole.REVIEWER)
        output = LLMTaskExecutor(provider).execute(task, "", [])
        assert output == '<file path="a.js">x</file>'
        assert provider.calls[0][0].startswith("You are an expert AI reviewer.")


class TestTaskDecomposer:
    def test_array(self):
        response = json.dumps(
            [
                {"title": "Markup", "description": "HTML", "agentRole": "architect"},
                {"title": "Events"},
            ]
        )
        provider = FakeProvider(response)
        specs = LLMTaskDecomposer(provider).decompose(Task(id="a", title="Build UI", description="all of it"))
        assert [s.title for s in specs] == ["Markup", "Events"]
        assert specs[0].agent_role == AgentRole.ARCHITECT
        assert specs[1].agent_role == AgentRole.DEVELOPER
        assert provider.calls[0] == (DECOMPOSE_SYSTEM_PROMPT, "Current Task: Build UI\nDescription: all of it")

    def test_wrapped_object(self):
        response = '```json\n{"tasks": [{"title": "One", "agent_role": "reviewer"}]}\n```'
        specs = LLMTaskDecomposer(FakeProvider(response)).decompose(Task(id="a", title="A"))
        assert [(s.title, s.agent_role) for s in specs] == [("One", AgentRole.REVIEWER)]

    def test_malformed_items_skipped(self):
        response = json.dumps([{"title": "  "}, "text", {"title": "Keep"}])
        specs = LLMTaskDecomposer(FakeProvider(response)).decompose(Task(id="a", title="A"))
        assert [s.title for s in specs] == ["Keep"]

    def test_not_a_list(self):
        with pytest.raises(ParseError):
            LLMTaskDecomposer(FakeProvider('"just text"')).decompose(Task(id="a", title="A"))


class TestDescriptionRefiner:
    def test_refine(self):
        provider = FakeProvider("  Clear steps.\n")
        assert LLMDescriptionRefiner(provider).refine("T", "vague") == "Clear steps."
        assert provider.calls[0][1] == "Task: T\nCurrent description: vague"

    def test_empty_response_keeps_original(self):
        assert LLMDescriptionRefiner(FakeProvider("")).refine("T", "vague") == "vague"


def _openrouter(handler, api_key="sk-test"):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return OpenRouterProvider(api_key=api_key, model="x/model", base_url="https://router.test/v1", client=client)


class TestOpenRouterProvider:
    def test_success(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["title"] = request.headers["X-Title"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": "hello"}}]})

        assert _openrouter(handler).complete("sys", "hi") == "hello"
        assert seen["url"] == "https://router.test/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["title"] == "NexBuilder"
        assert seen["body"] == {
            "model": "x/model",
            "messages": [
                {"role": "system", "content": "sys"},
                {"role": "user", "content": "hi"},
            ],
        }

    def test_http_error(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "No auth credentials found"}})

        with pytest.raises(CollaboratorError, match="No auth credentials found") as exc_info:
            _openrouter(handler).complete("", "hi")
        assert exc_info.value.status == "Unauthorized"
        assert exc_info.value.provider == "openrouter"

    def test_non_object_error_body(self):
        def handler(request):
            return httpx.Response(500, json=["upstream", "down"])

        with pytest.raises(CollaboratorError, match="upstream") as exc_info:
            _openrouter(handler).complete("", "hi")
        assert exc_info.value.status == "Internal Server Error"

    def test_missing_key(self):
        def handler(request):
            raise AssertionError("no request expected")

        with pytest.raises(ConfigurationError):
            _openrouter(handler, api_key=None).complete("", "hi")

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(CollaboratorError, match="request failed"):
            _openrouter(handler).complete("", "hi")

    def test_malformed_body(self):
        def handler(request):
            return httpx.Response(200, json={"choices": []})

        with pytest.raises(CollaboratorError, match="did not contain a completion"):
            _openrouter(handler).complete("", "hi")


class TestClaudeCLIProvider:
    def test_build_command(self):
        cmd = ClaudeCLIProvider(model="sonnet").build_command("be terse", "hello")
        assert cmd == [
            "claude", "-p", "hello", "--output-format", "json",
            "--model", "sonnet", "--system-prompt", "be terse",
        ]

    @patch("nexbuilder.integrations.providers.subprocess.run")
    @patch("nexbuilder.integrations.providers.shutil.which", return_value="/usr/bin/claude")
    def test_json_result(self, mock_which, mock_run):
        mock_run.return_value = subprocess.CompletedProcess(
            [], 0, stdout=json.dumps({"type": "result", "result": "done"}), stderr=""
        )
        assert ClaudeCLIProvider().complete("", "hi") == "done"

    @patch("nexbuilder.integrations.providers.subprocess.run")
    @patch("nexbuilder.integrations.providers.shutil.which", return_value="/usr/bin/claude")
    def test_plain_text_output(self, mock_which, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 0, stdout="plain answer\n", stderr="")
        assert ClaudeCLIProvider().complete("", "hi") == "plain answer"

    @patch("nexbuilder.integrations.providers.subprocess.run")
    @patch("nexbuilder.integrations.providers.shutil.which", return_value="/usr/bin/claude")
    def test_nonzero_exit(self, mock_which, mock_run):
        mock_run.return_value = subprocess.CompletedProcess([], 2, stdout="", stderr="bad flag")
        with pytest.raises(CollaboratorError, match="bad flag") as exc_info:
            ClaudeCLIProvider().complete("", "hi")
        assert exc_info.value.status == "2"

    @patch("nexbuilder.integrations.providers.subprocess.run")
    @patch("nexbuilder.integrations.providers.shutil.which", return_value="/usr/bin/claude")
    def test_reported_error(self, mock_which, mock_run):
        stdout = json.dumps({"is_error": True, "subtype": "error_max_turns", "result": "Too many turns"})
        mock_run.return_value = subprocess.CompletedProcess([], 0, stdout=stdout, stderr="")
        with pytest.raises(CollaboratorError, match="Too many turns") as exc_info:
            ClaudeCLIProvider().complete("", "hi")
        assert exc_info.value.status == "error_max_turns"

    @patch("nexbuilder.integrations.providers.subprocess.run")
    @patch("nexbuilder.integrations.providers.shutil.which", return_value="/usr/bin/claude")
    def test_timeout(self, mock_which, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(["claude"], 5)
        with pytest.raises(CollaboratorError, match="timed out"):
            ClaudeCLIProvider(timeout=5).complete("", "hi")

    @patch("nexbuilder.integrations.providers.shutil.which", return_value=None)
    def test_binary_missing(self, mock_which):
        with pytest.raises(ConfigurationError):
            ClaudeCLIProvider().complete("", "hi")


class TestProviderSelection:
    def test_claude(self):
        provider = get_provider(AIConfig(Provider.CLAUDE, "opus"), Config(claude_binary="/opt/claude"))
        assert isinstance(provider, ClaudeCLIProvider)
        assert provider.binary == "/opt/claude"
        assert provider.model == "opus"

    def test_openrouter(self):
        provider = get_provider(AIConfig(Provider.OPENROUTER, "x/y", "sk-1"), Config())
        assert isinstance(provider, OpenRouterProvider)
        assert provider.api_key == "sk-1"
        assert provider.model == "x/y"


class TestResolveAIConfig:
    def test_defaults(self):
        assert resolve_ai_config(None, Config()) == AIConfig(Provider.CLAUDE, "sonnet", None)

    def test_environment_model(self):
        assert resolve_ai_config(None, Config(model="haiku")).model == "haiku"

    def test_stored_openrouter_uses_env_key(self):
        stored = AIConfig(Provider.OPENROUTER)
        resolved = resolve_ai_config(stored, Config(openrouter_api_key="sk-env"))
        assert resolved.api_key == "sk-env"
        assert resolved.model == "anthropic/claude-3.5-sonnet"

    def test_stored_key_wins(self):
        stored = AIConfig(Provider.OPENROUTER, "x/y", "sk-saved")
        assert resolve_ai_config(stored, Config(openrouter_api_key="sk-env")).api_key == "sk-saved"


class TestConfigFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("NB_DB_PATH", "/tmp/x.db")
        monkeypatch.setenv("NB_PROVIDER", "OpenRouter")
        monkeypatch.setenv("NB_REQUEST_TIMEOUT", "12")
        monkeypatch.setenv("NB_LOG_LEVEL", "debug")
        config = Config.from_env()
        assert str(config.db_path) == "/tmp/x.db"
        assert config.provider == Provider.OPENROUTER
        assert config.request_timeout == 12.0
        assert config.log_level == "DEBUG"
