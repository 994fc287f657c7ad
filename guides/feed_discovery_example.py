"""Example showing how to seed and run the feed discovery workflow.

Requires OPENAI_API_KEY (or ANTHROPIC_API_KEY for claude models) and
BRAVE_SEARCH_API_KEY. Results are stored in the repository selected by
STEPFLOW_DATABASE_URL, or in memory when it is unset.
"""

import asyncio
import json
import sys

from stepflow import WorkflowOrchestrator, load_config
from stepflow.persistence import get_repository
from stepflow.seed import FEED_DISCOVERY_SLUG, seed_all


async def main():
    interests = sys.argv[1] if len(sys.argv) > 1 else "AI, machine learning"
    criteria = sys.argv[2] if len(sys.argv) > 2 else "original research, technical depth"

    config = load_config()
    repository = get_repository(config=config)
    await seed_all(repository)

    orchestrator = WorkflowOrchestrator(repository, config=config)
    run = await orchestrator.trigger_run(
        FEED_DISCOVERY_SLUG,
        {"interests": interests, "criteria": criteria, "search_limit": 10},
    )

    print(f"Run {run.id}: {run.status.value} (${run.actual_cost:.4f})")
    print(json.dumps(run.output, indent=2))


if __name__ == "__main__":
    asyncio.run(main())
