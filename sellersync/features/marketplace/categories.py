"""Marketplace API capability categories.

A seller token is issued for a subset of categories. Calling an endpoint
outside that subset yields a 401 whose body mentions the token scope.
"""

from enum import Enum


class ApiCategory(str, Enum):
    """Capability category gating a group of marketplace endpoints."""

    CONTENT = "content"
    ANALYTICS = "analytics"
    PRICES_AND_DISCOUNTS = "prices_and_discounts"
    MARKETPLACE = "marketplace"
    STATISTICS = "statistics"
    PROMOTION = "promotion"
    FEEDBACKS_AND_QUESTIONS = "feedbacks_and_questions"
    BUYER_CHAT = "buyer_chat"
    SUPPLIES = "supplies"
    RETURNS = "returns"
    DOCUMENTS = "documents"
    FINANCE = "finance"
    USERS = "users"
    COMMON = "common"

    @property
    def display_name(self) -> str:
        """Human-readable name used in log events and reports."""
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES: dict[ApiCategory, str] = {
    ApiCategory.CONTENT: "Content",
    ApiCategory.ANALYTICS: "Analytics",
    ApiCategory.PRICES_AND_DISCOUNTS: "Prices and discounts",
    ApiCategory.MARKETPLACE: "Marketplace",
    ApiCategory.STATISTICS: "Statistics",
    ApiCategory.PROMOTION: "Promotion",
    ApiCategory.FEEDBACKS_AND_QUESTIONS: "Feedbacks and questions",
    ApiCategory.BUYER_CHAT: "Buyer chat",
    ApiCategory.SUPPLIES: "Supplies",
    ApiCategory.RETURNS: "Returns",
    ApiCategory.DOCUMENTS: "Documents",
    ApiCategory.FINANCE: "Finance",
    ApiCategory.USERS: "Users",
    ApiCategory.COMMON: "Common",
}
