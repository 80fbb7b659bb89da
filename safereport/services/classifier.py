"""Keyword classifier for incoming reports.

Assigns a suggested category, a sentiment and a triage priority from the
report description. Deliberately simple: a first pass for the triage queue,
never a substitute for the reviewer's judgement. Anything with an async
``classify(description)`` returning a ``Classification`` can replace it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from safereport.models import Category, Priority, Sentiment

logger = logging.getLogger(__name__)

# First match wins, in this order.
CATEGORY_KEYWORDS: dict[Category, tuple[str, ...]] = {
    Category.HARASSMENT: ("harassment", "harassed", "stalking", "unwanted", "inappropriate"),
    Category.ASSAULT: ("assault", "attack", "violence", "physical", "fight", "battery"),
    Category.THEFT: ("theft", "stolen", "robbery", "burglary", "missing", "lost"),
    Category.VANDALISM: ("vandalism", "damage", "broken", "destroyed", "graffiti"),
    Category.SUSPICIOUS_ACTIVITY: ("suspicious", "strange", "weird", "odd", "unusual"),
    Category.EMERGENCY: ("emergency", "urgent", "critical", "danger", "help"),
    Category.SAFETY_HAZARD: ("hazard", "dangerous", "unsafe", "risk", "accident"),
    Category.DISCRIMINATION: ("discrimination", "racist", "sexist", "bias", "prejudice"),
    Category.BULLYING: ("bullying", "bullied", "intimidation", "threat"),
}

DISTRESSED_WORDS = ("emergency", "urgent", "critical", "danger", "help", "panic", "terrified")
NEGATIVE_WORDS = ("scared", "afraid", "terrified", "worried", "concerned", "fear")
POSITIVE_WORDS = ("safe", "resolved", "helpful", "good", "fine", "okay")

CRITICAL_CATEGORIES = frozenset({Category.ASSAULT, Category.EMERGENCY, Category.SAFETY_HAZARD})
HIGH_CATEGORIES = frozenset({Category.HARASSMENT, Category.THEFT, Category.SUSPICIOUS_ACTIVITY})


@dataclass(frozen=True)
class Classification:
    category: Category
    sentiment: Sentiment
    priority: Priority


def categorize(text: str) -> Category:
    text = text.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(k in text for k in keywords):
            return category
    return Category.OTHER


def analyze_sentiment(text: str) -> Sentiment:
    text = text.lower()
    if any(w in text for w in DISTRESSED_WORDS):
        return Sentiment.DISTRESSED
    if any(w in text for w in NEGATIVE_WORDS):
        return Sentiment.NEGATIVE
    if any(w in text for w in POSITIVE_WORDS):
        return Sentiment.POSITIVE
    return Sentiment.NEUTRAL


def analyze_priority(category: Category, sentiment: Sentiment) -> Priority:
    if category in CRITICAL_CATEGORIES or sentiment == Sentiment.DISTRESSED:
        return Priority.CRITICAL
    if category in HIGH_CATEGORIES or sentiment == Sentiment.NEGATIVE:
        return Priority.HIGH
    return Priority.MEDIUM


class KeywordClassifier:
    async def classify(self, description: str) -> Classification:
        category = categorize(description)
        sentiment = analyze_sentiment(description)
        return Classification(category, sentiment, analyze_priority(category, sentiment))
