"""Trader classifier - Insider, bot, whale and follow scoring of wallets."""

from polymarket_trade_assistant.classifier.models import (
    TraderClassification,
    TraderInputs,
    TraderType,
)
from polymarket_trade_assistant.classifier.trader import TraderClassifier, score_trader

__all__ = [
    "TraderClassification",
    "TraderClassifier",
    "TraderInputs",
    "TraderType",
    "score_trader",
]
