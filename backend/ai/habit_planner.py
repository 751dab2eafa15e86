import asyncio
import json
import logging
from dataclasses import dataclass, field

from ai.providers import AIProvider, AIProviderError, get_provider
from config import settings
from services.errors import ExternalServiceError
from services.habit_schedule import MAX_DURATION, MIN_DURATION

logger = logging.getLogger(__name__)

PLAN_SYSTEM_PROMPT = """You are a habit formation expert. Create personalized daily tasks for habits.
For 'build' type: focus on progressive skill development and positive reinforcement.
For 'quit' type: focus on gradual reduction and alternative behaviors.
Return ONLY valid JSON without markdown formatting."""

FIXED_DURATION_PROMPT = """Create a {duration}-day habit plan for "{title}" (type: {habit_type}).
Return a JSON object with:
{{
    "duration": {duration},
    "dailyTasks": [
        {{"dayTitle": "Day 1 task description", "completed": false}},
        {{"dayTitle": "Day 2 task description", "completed": false}}
    ]
}}

Each dayTitle should be a specific, actionable task for that day.
Create exactly {duration} daily tasks.
Return ONLY valid JSON, no additional text."""

OPEN_DURATION_PROMPT = """Create an optimal habit plan for "{title}" (type: {habit_type}).
Determine the best duration (between 21 and 90 days) and create daily tasks.
Return a JSON object with:
{{
    "duration": <optimal_duration_number>,
    "dailyTasks": [
        {{"dayTitle": "Day 1 task description", "completed": false}},
        {{"dayTitle": "Day 2 task description", "completed": false}}
    ]
}}

Each dayTitle should be a specific, actionable task for that day.
The number of daily tasks must match the duration.
Return ONLY valid JSON, no additional text."""


class PlanFormatError(ValueError):
    """The model replied, but not with a usable plan."""


@dataclass
class HabitPlan:
    duration: int
    day_titles: list[str] = field(default_factory=list)


def _strip_code_fence(text: str) -> str:
    text = (text or "").strip()
    if "```" in text:
        text = text.split("```")[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    return text


def _task_title(task) -> str:
    if isinstance(task, dict):
        return " ".join(str(task.get("dayTitle") or "").split())
    if isinstance(task, str):
        return " ".join(task.split())
    return ""


def placeholder_title(title: str, day_number: int) -> str:
    return f"Day {day_number}: {title}"


def parse_plan(content: str, title: str, requested_duration: int | None = None) -> HabitPlan:
    """Turn a model reply into a plan with exactly ``duration`` day titles.

    A requested duration always wins over the one the model reports. Task
    lists of the wrong length are truncated or padded with placeholders.
    """
    try:
        data = json.loads(_strip_code_fence(content))
    except json.JSONDecodeError as exc:
        raise PlanFormatError(f"Reply is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise PlanFormatError("Reply is not a JSON object")

    tasks = data.get("dailyTasks")
    if not isinstance(tasks, list) or not tasks:
        raise PlanFormatError("Reply has no dailyTasks list")

    if requested_duration:
        duration = int(requested_duration)
    else:
        raw_duration = data.get("duration")
        try:
            duration = int(raw_duration)
        except (TypeError, ValueError):
            raise PlanFormatError(f"Reply has an invalid duration: {raw_duration!r}") from None
        if duration <= 0:
            raise PlanFormatError(f"Reply has an invalid duration: {raw_duration!r}")
    duration = max(MIN_DURATION, min(MAX_DURATION, duration))

    titles = [_task_title(task) for task in tasks[:duration]]
    if len(tasks) != duration:
        logger.info("AI plan task count %s corrected to duration %s", len(tasks), duration)
    titles += [""] * (duration - len(titles))
    titles = [t or placeholder_title(title, idx + 1) for idx, t in enumerate(titles)]
    return HabitPlan(duration=duration, day_titles=titles)


class HabitPlanner:
    """Generates day-by-day habit plans through an AI provider."""

    def __init__(
        self,
        provider: AIProvider,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        temperature: float = 0.7,
    ):
        self.provider = provider
        self.max_attempts = max(int(max_attempts), 1)
        self.backoff_seconds = max(float(backoff_seconds), 0.0)
        self.temperature = temperature

    def _build_prompt(self, title: str, habit_type: str, duration: int | None) -> str:
        if duration:
            return FIXED_DURATION_PROMPT.format(title=title, habit_type=habit_type, duration=duration)
        return OPEN_DURATION_PROMPT.format(title=title, habit_type=habit_type)

    async def generate_plan(self, title: str, habit_type: str, duration: int | None = None) -> HabitPlan:
        if not self.provider.api_key:
            raise ExternalServiceError("AI service is not configured")

        prompt = self._build_prompt(title, habit_type, duration)
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await self.provider.chat(
                    messages=[{"role": "user", "content": prompt}],
                    model=self.provider.get_model(),
                    system=PLAN_SYSTEM_PROMPT,
                    json_response=True,
                    temperature=self.temperature,
                )
                plan = parse_plan(result.get("content", ""), title, duration)
                logger.info(
                    "AI plan received for %r: duration=%s tokens_in=%s tokens_out=%s",
                    title,
                    plan.duration,
                    result.get("tokens_in", 0),
                    result.get("tokens_out", 0),
                )
                return plan
            except AIProviderError as e:
                if not e.transient:
                    logger.error("AI plan generation rejected by provider: %s", e)
                    raise ExternalServiceError() from e
                last_error = e
            except PlanFormatError as e:
                last_error = e

            logger.warning("AI plan attempt %s/%s failed: %s", attempt, self.max_attempts, last_error)
            if attempt < self.max_attempts and self.backoff_seconds:
                await asyncio.sleep(self.backoff_seconds * attempt)

        logger.error("AI plan generation failed after %s attempts: %s", self.max_attempts, last_error)
        raise ExternalServiceError() from last_error


def get_plan_generator() -> HabitPlanner:
    provider = get_provider(
        "openai",
        api_key=settings.OPENAI_API_KEY,
        model=settings.AI_PLAN_MODEL,
        timeout_seconds=settings.AI_TIMEOUT_SECONDS,
        base_url=settings.OPENAI_BASE_URL,
    )
    return HabitPlanner(
        provider,
        max_attempts=settings.AI_MAX_ATTEMPTS,
        backoff_seconds=settings.AI_RETRY_BACKOFF_SECONDS,
    )
