from agent_monitor.cost.cursor_api_client import CursorApiError, CursorUsageClient
from agent_monitor.cost.pricing import AGENT_DEFAULT_MODELS, ModelPrice, PricingEngine, TokenUsage
from agent_monitor.cost.usage_parser import (
    UsageSummary,
    aggregate_usage,
    discover_gemini_sessions,
    gemini_usage_in_range,
    parse_claude_usage,
    parse_gemini_usage,
)

__all__ = [
    "AGENT_DEFAULT_MODELS",
    "CursorApiError",
    "CursorUsageClient",
    "ModelPrice",
    "PricingEngine",
    "TokenUsage",
    "UsageSummary",
    "aggregate_usage",
    "discover_gemini_sessions",
    "gemini_usage_in_range",
    "parse_claude_usage",
    "parse_gemini_usage",
]
