"""LLM-backed planner, executor, decomposer and refiner built on a completion provider."""

import json
import logging
import re

from nexbuilder.db.models import AgentRole, Plan, SubtaskSpec, Task
from nexbuilder.errors import EmptyPlanError, ParseError
from nexbuilder.integrations.providers import CompletionProvider

logger = logging.getLogger(__name__)

FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)

PLAN_SYSTEM_PROMPT = """You are an expert technical architect and project manager.
Break the user's app idea into a directed acyclic graph of executable tasks.

Respond with JSON only, in this shape:
{
  "name": "Project Name",
  "packages": ["optional-npm-package"],
  "tasks": [
    {
      "id": "unique_string_id",
      "title": "Task title",
      "description": "Detailed instructions for the developer.",
      "agentRole": "architect" | "developer" | "reviewer",
      "dependencies": ["id_of_dependency_task"]
    }
  ]
}

Rules:
1. Tasks must be granular and actionable.
2. Dependencies must only reference ids defined in the same plan and must not form a cycle.
3. Plan for a plain web structure (index.html, style.css, app.js) unless a framework is requested.
4. Return raw JSON, not a markdown code block."""

EXECUTE_SYSTEM_PROMPT = """You are an expert AI {role}.

Instructions:
1. Perform the task diligently.
2. When writing code, put every file inside raw XML tags:
   <file path="filename.ext">
   ...full file content...
   </file>
3. You may output several files in one response.
4. Do not wrap <file> tags in markdown code blocks.
5. When editing an existing file, output its full new content."""

DECOMPOSE_SYSTEM_PROMPT = """You are a senior technical lead.
Break the given task into 2-4 smaller, sequential subtasks.

Respond with a JSON array only (no wrapping object):
[
  {"title": "Subtask 1", "description": "...", "agentRole": "developer"}
]

Keep the subtasks sequential and specific."""

REFINE_SYSTEM_PROMPT = """You are a senior technical lead reviewing a task card.
Rewrite the description into clear, specific instructions an AI developer can follow.
Respond with the new description text only."""


def extract_json(text: str):
    """Pull the first JSON value out of a model response.

    Tries the whole text, then fenced code blocks, then the first parseable
    object or array starting at any brace or bracket.
    """
    text = (text or "").strip()
    if not text:
        raise ParseError("Empty response from model")

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for match in FENCE_PATTERN.finditer(text):
        try:
            return json.loads(match.group(1).strip())
        except json.JSONDecodeError:
            continue

    decoder = json.JSONDecoder()
    for i, ch in enumerate(text):
        if ch not in "{[":
            continue
        try:
            value, _ = decoder.raw_decode(text, i)
        except json.JSONDecodeError:
            continue
        return value

    raise ParseError("Model response did not contain valid JSON")


class LLMPlanGenerator:
    def __init__(self, provider: CompletionProvider):
        self.provider = provider

    def generate(self, prompt: str) -> Plan:
        data = extract_json(self.provider.complete(PLAN_SYSTEM_PROMPT, f"User Request: {prompt}"))
        if not isinstance(data, dict):
            raise ParseError("Plan must be a JSON object")

        tasks = data.get("tasks") or []
        if not isinstance(tasks, list):
            raise ParseError("Plan 'tasks' must be a list")
        if not tasks:
            raise EmptyPlanError("The generated plan contained no tasks")

        packages = data.get("packages") or []
        if not isinstance(packages, list):
            packages = []

        logger.debug("Generated plan with %d tasks", len(tasks))
        return Plan(
            name=str(data.get("name") or "New Project"),
            tasks=tasks,
            packages=[str(p) for p in packages],
        )


class LLMTaskExecutor:
    def __init__(self, provider: CompletionProvider):
        self.provider = provider

    def build_prompt(self, task: Task, context: str, packages: list[str]) -> str:
        parts = [f"# Task: {task.title}"]
        if task.description:
            parts.append(f"\n## Description\n{task.description}")
        if packages:
            parts.append("\n## Packages\n" + "\n".join(f"- {p}" for p in packages))
        if context:
            parts.append(f"\n## Context from previous tasks\n{context}")
        return "\n".join(parts)

    def execute(self, task: Task, context: str, packages: list[str]) -> str:
        system_prompt = EXECUTE_SYSTEM_PROMPT.format(role=task.agent_role.value)
        return self.provider.complete(system_prompt, self.build_prompt(task, context, packages))


class LLMTaskDecomposer:
    def __init__(self, provider: CompletionProvider):
        self.provider = provider

    def decompose(self, task: Task) -> list[SubtaskSpec]:
        user_prompt = f"Current Task: {task.title}\nDescription: {task.description}"
        data = extract_json(self.provider.complete(DECOMPOSE_SYSTEM_PROMPT, user_prompt))
        if isinstance(data, dict):
            data = data.get("tasks") or []
        if not isinstance(data, list):
            raise ParseError("Decomposition must be a JSON array")

        subtasks = []
        for item in data:
            if not isinstance(item, dict) or not str(item.get("title") or "").strip():
                logger.warning("Skipping malformed subtask: %r", item)
                continue
            subtasks.append(
                SubtaskSpec(
                    title=str(item["title"]).strip(),
                    description=str(item.get("description") or ""),
                    agent_role=AgentRole.parse(item.get("agentRole") or item.get("agent_role")),
                )
            )
        return subtasks


class LLMDescriptionRefiner:
    def __init__(self, provider: CompletionProvider):
        self.provider = provider

    def refine(self, title: str, description: str) -> str:
        user_prompt = f"Task: {title}\nCurrent description: {description or '(none)'}"
        refined = self.provider.complete(REFINE_SYSTEM_PROMPT, user_prompt).strip()
        return refined or description
