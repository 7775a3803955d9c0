"""Relay of scrape results to a remote storage tool, with local file fallback."""

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from hwtracker.ai_agent import AIStorageAgent, ToolSelection
from hwtracker.errors import McpValidationError
from hwtracker.items import ScrapingResult
from hwtracker.mcp_client import McpClient
from hwtracker.mcp_transformer import create_data_description, transform_scraping_result, validate_mcp_data


def save_results_file(result: ScrapingResult, output_dir: str = "data/exports") -> str:
    """Write the result as JSON, one file per day. Returns the path."""
    Path(output_dir).mkdir(parents=True, exist_ok=True)
    path = Path(output_dir) / f"electronics_scrape_{datetime.now().strftime('%Y-%m-%d')}.json"
    with open(path, "w", encoding="utf-8") as f:
        json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
    logger.info(f"Results saved to {path}")
    return str(path)


class McpRelay:
    """Discover a storage tool on the remote service and send the scrape to it."""

    def __init__(self, client: McpClient, agent: Optional[AIStorageAgent] = None):
        self.client = client
        self.agent = agent

    async def relay(self, result: ScrapingResult) -> Any:
        await self.client.connect()
        try:
            tools = await self.client.list_tools()
            if not tools:
                raise McpValidationError("No MCP tools available")

            if self.agent is not None:
                selection = await asyncio.to_thread(
                    self.agent.select_best_tool, tools, create_data_description(result)
                )
            else:
                selection = ToolSelection(tool=tools[0], reasoning="First available tool", confidence=1.0)

            payload = transform_scraping_result(result)
            is_valid, errors = validate_mcp_data(payload)
            if not is_valid:
                raise McpValidationError(f"Invalid MCP data: {'; '.join(errors)}")

            response = await self.client.call_tool(selection.tool.name, payload)
            logger.info(f"Relayed {len(result.products)} products via '{selection.tool.name}'")
            return response
        finally:
            await self.client.disconnect()
