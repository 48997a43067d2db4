# ── AI-оценка через Ollama vision ─────────────────────────────────────────────

from __future__ import annotations

import json
import logging
import re

import requests

from config import OLLAMA_DEFAULT_MODEL, OLLAMA_DEFAULT_URL, OLLAMA_TIMEOUT, Evaluation
from images import PreparedImage

logger = logging.getLogger(__name__)


class GradingError(Exception):
    """Модель ответила, но оценку из ответа получить нельзя."""


_FIELDS = (
    '- is_worth_keeping: true/false (would a careful photographer keep this shot)\n'
    '- rating: integer 1-5 (1=reject, 5=portfolio quality)\n'
    '- sharpness: 0.0-1.0 (focus quality, 0=very blurry, 1=tack sharp)\n'
    '- exposure: 0.0-1.0 (brightness correctness, 0=very dark/bright, 1=perfect)\n'
    '- composition: 0.0-1.0 (framing, balance, visual appeal)\n'
    '- reasoning: one or two sentences explaining the decision\n'
)


def _build_prompt() -> str:
    """Промпт для оценки одного фото."""
    return (
        "Analyze this photograph for technical and aesthetic quality.\n"
        "Return ONLY valid JSON with these fields:\n"
        + _FIELDS
    )


def _build_group_prompt(names: list[str]) -> str:
    """Промпт для серии: модель сравнивает кадры между собой."""
    listing = "\n".join(f"{i + 1}. {name}" for i, name in enumerate(names))
    return (
        f"These {len(names)} photographs were taken in one burst of the same scene.\n"
        "The images are attached in this order:\n"
        f"{listing}\n"
        "Compare them with each other: keep the best frames and reject near-duplicates "
        "that are clearly worse.\n"
        "Return ONLY valid JSON: an object keyed by file name, where each value has "
        "these fields:\n"
        + _FIELDS
    )


def _parse_response(text: str) -> dict | None:
    """Извлекает JSON из ответа модели (может содержать markdown-обёртку и лишний текст)."""
    cleaned = text.strip()

    # Извлекаем содержимое между ``` ... ``` если есть
    fence_match = re.search(r"```(?:json)?\s*\n(.*?)\n\s*```", cleaned, re.DOTALL)
    if fence_match:
        cleaned = fence_match.group(1).strip()

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        # Ищем первый { ... } блок
        brace_match = re.search(r"\{.*\}", cleaned, re.DOTALL)
        if not brace_match:
            return None
        try:
            data = json.loads(brace_match.group(0))
        except json.JSONDecodeError:
            return None

    return data if isinstance(data, dict) else None


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _to_evaluation(data) -> Evaluation | None:
    """dict из ответа → Evaluation. Без is_worth_keeping оценка недействительна."""
    if not isinstance(data, dict) or "is_worth_keeping" not in data:
        return None
    try:
        return Evaluation(
            is_worth_keeping=_as_bool(data["is_worth_keeping"]),
            rating=max(1, min(5, int(data.get("rating", 3)))),
            sharpness=float(data.get("sharpness", 0.5)),
            exposure=float(data.get("exposure", 0.5)),
            composition=float(data.get("composition", 0.5)),
            reasoning=str(data.get("reasoning", "")),
        )
    except (TypeError, ValueError):
        return None


class OllamaGrader:
    """Клиент оценки фото через Ollama /api/chat."""

    def __init__(
        self,
        model: str = OLLAMA_DEFAULT_MODEL,
        ollama_url: str = OLLAMA_DEFAULT_URL,
        timeout: float = OLLAMA_TIMEOUT,
    ):
        self.model = model
        self.ollama_url = ollama_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def _chat(self, prompt: str, images: list[PreparedImage]) -> str:
        """Один запрос к модели. Ошибки requests пробрасываются вызывающему."""
        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": prompt,
                    "images": [image.data for image in images],
                }
            ],
            "format": "json",
            "stream": False,
        }

        resp = self.session.post(
            f"{self.ollama_url}/api/chat",
            json=payload,
            timeout=self.timeout,
        )
        resp.raise_for_status()

        try:
            return resp.json()["message"]["content"]
        except (KeyError, TypeError, ValueError) as e:
            raise GradingError(f"Unexpected Ollama response: {e}") from e

    def grade_one(self, image: PreparedImage) -> Evaluation:
        content = self._chat(_build_prompt(), [image])
        evaluation = _to_evaluation(_parse_response(content))
        if evaluation is None:
            logger.warning("Invalid AI response: %s", content[:200])
            raise GradingError("Model returned no usable evaluation")
        return evaluation

    def grade_group(self, images: dict[str, PreparedImage]) -> dict[str, Evaluation]:
        """
        Оценивает серию одним запросом. Возвращает {имя файла: Evaluation}.
        Кадры, для которых модель не вернула оценку, в результат не попадают.
        """
        names = list(images)
        content = self._chat(_build_group_prompt(names), [images[n] for n in names])
        data = _parse_response(content) or {}

        # Часть моделей оборачивает ответ в {"results": {...}}
        if isinstance(data.get("results"), dict):
            data = data["results"]

        results = {}
        for name in names:
            evaluation = _to_evaluation(data.get(name))
            if evaluation is not None:
                results[name] = evaluation
            else:
                logger.warning("No usable evaluation for %s in group response", name)
        return results
