"""
Multi-step task templates.

A template is a named sequence of capability steps with dependency edges.
The planner opts into one by naming it alongside its action.
"""

from __future__ import annotations

from typing import Container

from pydantic import BaseModel, Field


class TemplateStep(BaseModel):
    model_config = {"frozen": True}
    name: str = Field(..., description="Capability name")
    dependencies: list[str] = Field(default_factory=list, description="Capability names of earlier steps")


class TaskTemplate(BaseModel):
    model_config = {"frozen": True}
    name: str
    description: str = ""
    steps: list[TemplateStep]


def _template(name: str, description: str, *steps: tuple[str, list[str]]) -> TaskTemplate:
    return TaskTemplate(
        name=name,
        description=description,
        steps=[TemplateStep(name=step, dependencies=deps) for step, deps in steps],
    )


DEFAULT_TEMPLATES: dict[str, TaskTemplate] = {
    t.name: t
    for t in (
        _template(
            "research_scan_trade",
            "Analyze a token, trade it, then watch its price.",
            ("analyze_token_by_symbol", []),
            ("execute_trade", ["analyze_token_by_symbol"]),
            ("create_price_alert", ["execute_trade"]),
        ),
        _template(
            "portfolio_review_alert",
            "Review the portfolio and set an alert.",
            ("get_portfolio", []),
            ("create_price_alert", ["get_portfolio"]),
        ),
        _template(
            "flipper_mode_setup",
            "Configure, start and report on flipper mode.",
            ("setup_flipper_mode", []),
            ("start_flipper_mode", ["setup_flipper_mode"]),
            ("fetch_flipper_mode_metrics", ["start_flipper_mode"]),
        ),
        _template(
            "token_discovery_flow",
            "Find trending tokens on a chain, check sentiment, analyze and alert.",
            ("fetch_trending_tokens_by_chain", []),
            ("fetch_tweets_for_symbol", ["fetch_trending_tokens_by_chain"]),
            ("analyze_token_by_symbol", ["fetch_tweets_for_symbol"]),
            ("create_price_alert", ["analyze_token_by_symbol"]),
        ),
        _template(
            "research_and_email_flow",
            "Search the web, set a reminder and generate a report.",
            ("search_internet", []),
            ("set_reminder", ["search_internet"]),
            ("start_monitoring_reminders", ["set_reminder"]),
            ("generate_google_report", ["start_monitoring_reminders"]),
        ),
        _template(
            "defi_approval_trade",
            "Approve a token, trade it and set an alert.",
            ("get_portfolio", []),
            ("approve_token", ["get_portfolio"]),
            ("execute_trade", ["approve_token"]),
            ("create_price_alert", ["execute_trade"]),
            ("search_internet", ["create_price_alert"]),
            ("set_reminder", ["execute_trade"]),
        ),
        _template(
            "internet_searches_multiple",
            "Two web searches in sequence; pass both in 'queries'.",
            ("search_internet", []),
            ("search_internet", ["search_internet"]),
        ),
        _template(
            "bitrefill_giftcard_flow",
            "Buy a gift card and check its payment.",
            ("start_bitrefill_shopping_flow", []),
            ("check_bitrefill_payment_status", ["start_bitrefill_shopping_flow"]),
        ),
        _template(
            "solana_payment_workflow",
            "Check SOL balance, then create a Solana Pay request.",
            ("get_portfolio", []),
            ("create_solana_payment", ["get_portfolio"]),
        ),
        _template(
            "market_category_exploration",
            "Browse categories, list coins of one, analyze a coin.",
            ("fetch_market_categories", []),
            ("fetch_coins_by_category", ["fetch_market_categories"]),
            ("analyze_token_by_symbol", ["fetch_coins_by_category"]),
        ),
        _template(
            "kol_monitoring_flow",
            "Start and later stop monitoring a KOL.",
            ("monitor_kol", []),
            ("stop_monitor_kol", ["monitor_kol"]),
        ),
    )
}


def runnable_templates(templates: dict[str, TaskTemplate], known: Container[str]) -> dict[str, TaskTemplate]:
    """Templates whose every step names a capability in ``known``."""
    return {
        name: template
        for name, template in templates.items()
        if all(step.name in known for step in template.steps)
    }
