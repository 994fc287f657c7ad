"""Seed data: the feed discovery workflow and its evaluation cases."""

from __future__ import annotations

import logging
from typing import List

from .contracts import (
    EvalCase,
    EvalConstraints,
    EvalDefinition,
    ModelCallStep,
    ToolCallStep,
    TransformStep,
    WorkflowDefinition,
)
from .errors import WorkflowNotFoundError
from .persistence import WorkflowRepository

logger = logging.getLogger(__name__)

FEED_DISCOVERY_SLUG = "feed-discovery"
FEED_DISCOVERY_EVAL_NAME = "Feed Discovery Evaluation"

_CURATOR = (
    "You are an expert curator of RSS feeds and newsletters. "
    "You favour independent, high-signal writers over aggregators."
)


def feed_discovery_steps() -> list:
    return [
        ModelCallStep(
            id="generate_queries",
            name="Generate search query",
            input_mapping={"interests": "input.interests", "criteria": "input.criteria"},
            system_prompt_template=_CURATOR,
            user_prompt_template=(
                "Write one web search query that finds blogs and newsletters about "
                "{{interests}}.\nQuality criteria: {{criteria}}\n"
                'Respond as {"query": "..."}.'
            ),
            output_schema={"type": "object", "required": ["query"]},
            temperature=0.4,
        ),
        ToolCallStep(
            id="search_web",
            name="Search the web",
            tool_name="web_search",
            input_mapping={
                "query": "steps.generate_queries.output.query",
                "limit": "input.search_limit",
            },
        ),
        ModelCallStep(
            id="extract_candidates",
            name="Extract candidate sites",
            input_mapping={
                "results": "steps.search_web.output",
                "interests": "input.interests",
                "criteria": "input.criteria",
            },
            system_prompt_template=_CURATOR,
            user_prompt_template=(
                "From these search results pick the websites most likely to publish "
                "an RSS feed about {{interests}} ({{criteria}}).\n\n{{results}}\n\n"
                'Respond as {"candidates": [{"name": "...", "website_url": "...", '
                '"reason": "..."}]}.'
            ),
            output_schema={"type": "object", "required": ["candidates"]},
        ),
        TransformStep(
            id="resolve_rss_urls",
            name="Resolve RSS URLs",
            operation="resolve_feed_urls",
            input_mapping={"candidates": "steps.extract_candidates.output.candidates"},
        ),
        TransformStep(
            id="validate_rss",
            name="Validate RSS feeds",
            operation="validate_feeds",
            input_mapping={"resolved_feeds": "steps.resolve_rss_urls.output"},
        ),
        ModelCallStep(
            id="rank_feeds",
            name="Rank feeds",
            input_mapping={
                "feeds": "steps.validate_rss.output.feeds",
                "interests": "input.interests",
                "criteria": "input.criteria",
            },
            system_prompt_template=_CURATOR,
            user_prompt_template=(
                "Rank the validated feeds below for a reader interested in "
                "{{interests}} who values {{criteria}}. Only keep feeds whose "
                "validation is ok.\n\n{{feeds}}\n\n"
                'Respond as {"ranked_feeds": [{"title": "...", "rss_url": "...", '
                '"site_url": "...", "reason": "...", "score": 0}]}.'
            ),
            output_schema={"type": "object", "required": ["ranked_feeds"]},
        ),
        TransformStep(
            id="final_validate",
            name="Final validation",
            operation="validate_ranked_feeds",
            input_mapping={"ranked_feeds": "steps.rank_feeds.output.ranked_feeds"},
        ),
    ]


def _case(
    case_id: str,
    name: str,
    interests: str,
    criteria: str,
    search_limit: int = 10,
    **constraints,
) -> EvalCase:
    return EvalCase(
        id=case_id,
        name=name,
        input={"interests": interests, "criteria": criteria, "search_limit": search_limit},
        constraints=EvalConstraints(**constraints),
    )


def feed_discovery_cases() -> List[EvalCase]:
    standard = dict(min_count=5, max_count=15, freshness_window_days=30)
    return [
        _case(
            "case-1",
            "AI and Machine Learning Feeds",
            "AI, machine learning, deep learning",
            "thought leadership, technical depth, original research",
            **standard,
        ),
        _case(
            "case-2",
            "Startup and Entrepreneurship",
            "startups, entrepreneurship, venture capital",
            "practical advice, contrarian views, founder stories",
            **standard,
        ),
        _case(
            "case-3",
            "Technology and Innovation",
            "technology, innovation, software development",
            "high signal, original content, technical expertise",
            **standard,
        ),
        _case(
            "case-4",
            "Economics and Finance",
            "economics, finance, markets",
            "data-driven analysis, contrarian perspectives, market insights",
            **standard,
        ),
        _case(
            "case-5",
            "Product and Design",
            "product management, design, user experience",
            "practical insights, case studies, design thinking",
            **standard,
        ),
        _case(
            "case-6",
            "Specific Domain Test",
            "RSS feeds similar to Paul Graham's writing style",
            "essay format, contrarian views, startup advice",
            min_count=3,
            max_count=10,
            freshness_window_days=60,
            required_domains=["paulgraham.com"],
        ),
        _case(
            "case-7",
            "Minimal Input Test",
            "tech",
            "",
            search_limit=5,
            min_count=3,
            max_count=20,
            freshness_window_days=90,
        ),
        _case(
            "case-8",
            "High Quality Signal Test",
            "high signal content, long-form essays, newsletters",
            "thought leadership, original research, deep analysis",
            search_limit=15,
            min_count=8,
            max_count=20,
            freshness_window_days=30,
            min_score=70,
        ),
    ]


async def seed_feed_discovery_workflow(repository: WorkflowRepository) -> WorkflowDefinition:
    """Create the workflow, or refresh the definition of an existing one."""
    existing = await repository.get_workflow_by_slug(FEED_DISCOVERY_SLUG)
    if existing is not None:
        updated = await repository.update_workflow(
            existing.model_copy(update={"steps": feed_discovery_steps()})
        )
        logger.info(f"Updated feed discovery workflow {updated.id} to v{updated.version}")
        return updated

    workflow = await repository.create_workflow(
        WorkflowDefinition(
            name="Feed Discovery", slug=FEED_DISCOVERY_SLUG, steps=feed_discovery_steps()
        )
    )
    logger.info(f"Created feed discovery workflow {workflow.id}")
    return workflow


async def seed_feed_discovery_eval(repository: WorkflowRepository) -> EvalDefinition:
    workflow = await repository.get_workflow_by_slug(FEED_DISCOVERY_SLUG)
    if workflow is None:
        raise WorkflowNotFoundError(
            "Feed discovery workflow not found. Seed workflow first."
        )
    for eval_def in await repository.list_evals(workflow.id):
        if eval_def.name == FEED_DISCOVERY_EVAL_NAME:
            logger.info(f"Feed discovery eval already exists ({eval_def.id})")
            return eval_def

    eval_def = await repository.create_eval(
        EvalDefinition(
            workflow_id=workflow.id,
            name=FEED_DISCOVERY_EVAL_NAME,
            cases=feed_discovery_cases(),
        )
    )
    logger.info(f"Created feed discovery eval {eval_def.id}")
    return eval_def


async def seed_all(repository: WorkflowRepository) -> tuple[WorkflowDefinition, EvalDefinition]:
    workflow = await seed_feed_discovery_workflow(repository)
    eval_def = await seed_feed_discovery_eval(repository)
    return workflow, eval_def
