"""
irix: cryptocurrency exchange adapters behind one contract.

Each adapter under irix.adapters implements irix.protocols.BotExchange on
top of the shared irix.exchange.Base plumbing.
"""

__version__ = "0.1.0"
