"""Broker adapters"""
from .alpaca_client import AlpacaAPIError, AlpacaClient

__all__ = ["AlpacaAPIError", "AlpacaClient"]
