"""Load agents, channels and channel mappings from a JSON file.

The file holds three optional lists::

    {
      "agents": [{"aad_object_id": "...", "user_principal_name": "..."}],
      "channels": [{"channel_id": "...", "team_id": "...", ...}],
      "mappings": [{"category": "Tax", "channel_id": "...", ...}]
    }

Existing records are refreshed in place: agents and channels by their
directory/channel id, mappings by category.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from consultdesk.consults.errors import ConflictError
from consultdesk.consults.models import Channel
from consultdesk.consults.schemas import (
    AgentRegistration,
    ChannelMappingCreate,
    ChannelMappingUpdate,
)
from consultdesk.core.settings import get_settings
from consultdesk.services import Services, build_services

logger = logging.getLogger("tools.seed_routing")


async def seed(services: Services, data: dict[str, Any]) -> dict[str, int]:
    """Apply ``data`` to the stores behind ``services`` and return counts."""

    counts = {"agents": 0, "channels": 0, "mappings_created": 0, "mappings_updated": 0}

    for raw in data.get("agents", []):
        await services.agents.register_agent(AgentRegistration.model_validate(raw))
        counts["agents"] += 1

    for raw in data.get("channels", []):
        await services.routing.register_channel(Channel.model_validate(raw))
        counts["channels"] += 1

    for raw in data.get("mappings", []):
        payload = ChannelMappingCreate.model_validate(raw)
        try:
            await services.routing.create_mapping(payload)
            counts["mappings_created"] += 1
        except ConflictError:
            existing = await services.routing.mappings.get_by_category(payload.category)
            await services.routing.update_mapping(
                existing.id, ChannelMappingUpdate.model_validate(raw)
            )
            counts["mappings_updated"] += 1
            logger.info("Updated existing mapping for category %s", payload.category)

    return counts


async def _run(path: Path) -> dict[str, int]:
    data = json.loads(path.read_text(encoding="utf-8"))
    services = build_services(get_settings())
    try:
        return await seed(services, data)
    finally:
        await services.aclose()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("file", type=Path, help="JSON file with agents, channels and mappings")
    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    counts = asyncio.run(_run(args.file))
    logger.info("Seed completed: %s", counts)


if __name__ == "__main__":
    main()
