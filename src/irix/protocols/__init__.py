"""Exchange protocols."""

from irix.protocols.exchange import BotExchange

__all__ = ["BotExchange"]
