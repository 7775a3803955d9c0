"""LLM-assisted deduplication, tool selection and market insights.

Every call degrades to a deterministic local answer when the model is
unavailable or returns something unusable.
"""

import json
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger
from openai import OpenAI

from hwtracker.errors import McpValidationError
from hwtracker.items import Category, Item, ScrapingResult
from hwtracker.mcp_client import McpTool
from hwtracker.scraper import deduplicate_products

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


class BaseLLMAdapter(ABC):
    """Abstract base for all LLM adapters."""

    @abstractmethod
    def generate(self, prompt: str, max_tokens: int = 2000) -> str:
        """Send a prompt to the LLM and return the raw response text."""


class OpenAILLMAdapter(BaseLLMAdapter):
    """Adapter for OpenAI-compatible chat completion APIs."""

    def __init__(
        self,
        model: str = "gpt-4.1-nano",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.1,
    ) -> None:
        client_kwargs: Dict[str, Any] = {"api_key": api_key or os.environ.get("OPENAI_API_KEY", "")}
        if base_url:
            client_kwargs["base_url"] = base_url
        self._client = OpenAI(**client_kwargs)
        self._model = model
        self._temperature = temperature

    def generate(self, prompt: str, max_tokens: int = 2000) -> str:
        response = self._client.chat.completions.create(
            model=self._model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=self._temperature,
        )
        return response.choices[0].message.content or ""


class StaticLLMAdapter(BaseLLMAdapter):
    """Returns canned responses in order. Useful offline and in tests."""

    def __init__(self, responses: Sequence[str]):
        self._responses = list(responses)
        self.prompts: List[str] = []

    def generate(self, prompt: str, max_tokens: int = 2000) -> str:
        self.prompts.append(prompt)
        if not self._responses:
            raise RuntimeError("No canned response left")
        return self._responses.pop(0)


class ResponseLog:
    """Append-only text log of model responses.

    Write failures never reach the caller; they are counted in `failures`.
    """

    def __init__(self, path: Optional[str]):
        self.path = Path(path) if path else None
        self.failures = 0

    def write(self, method: str, content: Optional[str] = None, error: Optional[BaseException] = None) -> None:
        if self.path is None:
            return
        separator = "=" * 80
        lines = [
            separator,
            f"TIMESTAMP: {datetime.now(timezone.utc).isoformat()}",
            f"METHOD: {method}",
            separator,
        ]
        if error is not None:
            lines.append("ERROR:")
            lines.append(f"Error Message: {error}")
        else:
            lines.append("SUCCESS:")
            lines.append(f"Response Content:\n{content or 'No content'}")
        lines.extend([separator, "", ""])
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write("\n".join(lines))
        except OSError as e:
            self.failures += 1
            logger.debug(f"AI response log write failed ({self.failures} so far): {e}")


@dataclass(frozen=True)
class ToolSelection:
    tool: McpTool
    reasoning: str
    confidence: float


def parse_json_response(text: str) -> Any:
    """Parse model output as JSON, tolerating markdown code fences."""
    return json.loads(_FENCE.sub("", (text or "").strip()))


def compute_market_trends(result: ScrapingResult) -> Dict[str, Any]:
    """Price and store statistics computed locally from the scraped items."""
    products = result.products
    gpus = [p.price for p in products if p.category is Category.GPU]
    cpus = [p.price for p in products if p.category is Category.CPU]
    trends: Dict[str, Any] = {"priceAnalysis": {}, "storeAnalysis": {}, "recommendations": []}
    if gpus:
        trends["priceAnalysis"]["averageGPUPrice"] = round(sum(gpus) / len(gpus), 2)
    if cpus:
        trends["priceAnalysis"]["averageCPUPrice"] = round(sum(cpus) / len(cpus), 2)
    if products:
        prices = [p.price for p in products]
        trends["priceAnalysis"]["priceRange"] = {"min": min(prices), "max": max(prices)}

        per_store: Dict[str, List[float]] = {}
        for product in products:
            per_store.setdefault(product.store, []).append(product.price)
        averages = {store: sum(v) / len(v) for store, v in per_store.items()}
        trends["storeAnalysis"]["mostExpensive"] = max(averages, key=averages.get)
        trends["storeAnalysis"]["mostAffordable"] = min(averages, key=averages.get)
    return trends


def generate_fallback_report(result: ScrapingResult) -> str:
    products = result.products
    gpus = [p.price for p in products if p.category is Category.GPU]
    cpus = [p.price for p in products if p.category is Category.CPU]
    stores = ", ".join(dict.fromkeys(p.store for p in products)) or "none"

    def _range(prices: List[float]) -> str:
        if not prices:
            return "N/A"
        return f"€{min(prices):.2f} - €{max(prices):.2f}"

    lines = [
        "SCRAPING RESULTS SUMMARY",
        f"Total Products Found: {len(products)}",
        f"GPUs: {len(gpus)}",
        f"CPUs: {len(cpus)}",
        f"Stores Scraped: {stores}",
        "Price Range:",
        f"   - GPU: {_range(gpus)}",
        f"   - CPU: {_range(cpus)}",
        f"Errors: {len(result.errors)}",
    ]
    lines.extend(f"   - {error}" for error in result.errors)
    return "\n".join(lines)


class AIStorageAgent:
    """Prompt/response contract with the text-completion collaborator."""

    def __init__(
        self,
        adapter: BaseLLMAdapter,
        response_log: Optional[ResponseLog] = None,
        search_terms: Sequence[str] = (),
    ):
        self.adapter = adapter
        self.response_log = response_log or ResponseLog(None)
        self.search_terms = list(search_terms)

    @classmethod
    def from_config(cls, ai_config: Dict[str, Any], search_terms: Sequence[str] = ()) -> "AIStorageAgent":
        adapter = OpenAILLMAdapter(
            model=ai_config.get("model", "gpt-4.1-nano"),
            api_key=ai_config.get("api_key") or None,
            base_url=ai_config.get("base_url") or None,
        )
        return cls(
            adapter,
            ResponseLog(ai_config.get("response_log", "data/logs/ai_responses.log")),
            search_terms,
        )

    @property
    def log_failures(self) -> int:
        return self.response_log.failures

    def _ask(self, method: str, prompt: str, max_tokens: int) -> Any:
        try:
            content = self.adapter.generate(prompt, max_tokens=max_tokens)
        except Exception as e:
            self.response_log.write(method, error=e)
            raise
        self.response_log.write(method, content=content)
        return parse_json_response(content)

    def deduplicate_products(self, products: Sequence[Item]) -> List[Item]:
        """Ask the model to merge near-duplicates; exact dedup on any failure."""
        if not products:
            return list(products)

        prompt = (
            "Analyze these products and remove duplicates. Consider:\n"
            "- Same product name and store\n"
            f"- Focus on the names listed at {json.dumps(self.search_terms, indent=2)}\n"
            "- Similar products with slight name variations\n"
            "- Keep the one with the most complete information\n\n"
            f"Products:\n{json.dumps([p.to_dict() for p in products], indent=2)}\n\n"
            "Return a JSON array of unique products only."
        )
        try:
            parsed = self._ask("deduplicateProducts", prompt, max_tokens=5000)
            if not isinstance(parsed, list) or not parsed:
                raise ValueError("expected a non-empty JSON array of products")
            deduplicated = deduplicate_products(Item.from_dict(entry) for entry in parsed)
        except Exception as e:
            logger.warning(f"AI deduplication failed, using exact (name, store) dedup: {e}")
            return deduplicate_products(products)

        logger.info(f"AI deduplication kept {len(deduplicated)} of {len(products)} products")
        return deduplicated

    def select_best_tool(self, tools: Sequence[McpTool], data_description: str) -> ToolSelection:
        if not tools:
            raise McpValidationError("No MCP tools available")

        prompt = (
            "You are an expert at selecting the MCP tool best suited to persist data.\n\n"
            f"Available MCP Tools:\n{json.dumps([t.to_dict() for t in tools], indent=2)}\n\n"
            f"Task Description: {data_description}\n\n"
            "The data is a scrape with a timestamp and an items array; each item has name, "
            "price, url, item_type and a nested store object. The tool must write structured, "
            "nested JSON in one batch.\n\n"
            'Return ONLY a JSON object: {"selectedTool": "tool_name", '
            '"reasoning": "brief explanation", "confidence": 0.95}'
        )
        try:
            parsed = self._ask("selectBestTool", prompt, max_tokens=2000)
            selected_name = parsed.get("selectedTool")
            tool = next((t for t in tools if t.name == selected_name), None)
            if tool is None:
                raise ValueError(f"Selected tool '{selected_name}' not found in available tools")
            selection = ToolSelection(
                tool=tool,
                reasoning=str(parsed.get("reasoning", "")),
                confidence=float(parsed.get("confidence", 0.0)),
            )
        except Exception as e:
            logger.warning(f"AI tool selection failed, falling back to first available tool: {e}")
            return ToolSelection(tool=tools[0], reasoning="Fallback selection due to AI error", confidence=0.5)

        logger.info(f"Selected MCP tool: {selection.tool.name} (confidence {selection.confidence})")
        return selection

    def generate_insights(self, result: ScrapingResult) -> Dict[str, Any]:
        """Market trend summary from the model, or local statistics on failure."""
        if not result.products:
            return compute_market_trends(result)

        prompt = (
            "Analyze these GPU and CPU listings and summarise market trends.\n"
            f"Products:\n{json.dumps([p.to_dict() for p in result.products], indent=2)}\n\n"
            'Return ONLY a JSON object with keys "priceAnalysis" '
            '(averageGPUPrice, averageCPUPrice, priceRange{min,max}), '
            '"storeAnalysis" (mostExpensive, mostAffordable) and "recommendations" (list of strings).'
        )
        try:
            parsed = self._ask("generateInsights", prompt, max_tokens=1500)
            if not isinstance(parsed, dict) or "priceAnalysis" not in parsed:
                raise ValueError("insights object missing priceAnalysis")
            return parsed
        except Exception as e:
            logger.warning(f"AI insights failed, using local statistics: {e}")
            trends = compute_market_trends(result)
            trends["error"] = str(e)
            return trends
