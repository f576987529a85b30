"""Run the staged market analysis against the configured AI model."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from app.ai.errors import GenerationTimeoutError
from app.ai.providers.base import AIModel
from app.intelligence.data import MarketData
from app.intelligence.prompts import phase_1_reviews_prompt, phase_2_qna_prompt, phase_3_market_prompt, phase_4_strategy_prompt

ANALYSIS_MAX_TOKENS = 16384
ANALYSIS_PHASES: tuple[tuple[str, str], ...] = (
  ("phase_1", "Phase 1: Analyzing reviews..."),
  ("phase_2", "Phase 2: Analyzing Q&A data..."),
  ("phase_3", "Phase 3: Analyzing market & competition..."),
  ("phase_4", "Phase 4: Building customer intelligence & strategy..."),
)

# (step, completed phases, message)
PhaseCallback = Callable[[str, int, str], Awaitable[None]]

logger = logging.getLogger(__name__)


@dataclass
class AnalysisOutcome:
  result: dict[str, Any]
  model_used: str
  tokens_used: int


class MarketAnalyzer:
  """Four sequential model calls; each phase receives the results of the earlier ones."""

  def __init__(self, model: AIModel, *, timeout_seconds: float) -> None:
    self._model = model
    self._timeout_seconds = timeout_seconds

  async def _run_phase(self, step: str, prompt: str) -> tuple[dict[str, Any], int]:
    logger.info("Market analysis %s model=%s prompt_chars=%d", step, self._model.name, len(prompt))
    try:
      async with asyncio.timeout(self._timeout_seconds):
        response = await self._model.generate_json(prompt, max_tokens=ANALYSIS_MAX_TOKENS)
    except TimeoutError as exc:
      raise GenerationTimeoutError(self._model.provider_name, self._timeout_seconds) from exc
    return response.content, response.total_tokens

  async def analyze(self, data: MarketData, *, on_phase: PhaseCallback | None = None) -> AnalysisOutcome:
    results: list[dict[str, Any]] = []
    tokens = 0
    for index, (step, message) in enumerate(ANALYSIS_PHASES):
      if on_phase is not None:
        await on_phase(step, index, message)
      if index == 0:
        prompt = phase_1_reviews_prompt(data)
      elif index == 1:
        prompt = phase_2_qna_prompt(data, results[0])
      elif index == 2:
        prompt = phase_3_market_prompt(data, results[0], results[1])
      else:
        prompt = phase_4_strategy_prompt(data, results[0], results[1], results[2])
      result, used = await self._run_phase(step, prompt)
      results.append(result)
      tokens += used

    merged: dict[str, Any] = {}
    for result in results:
      merged.update(result)
    return AnalysisOutcome(result=merged, model_used=self._model.name, tokens_used=tokens)
