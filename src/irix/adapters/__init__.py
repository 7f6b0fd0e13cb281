"""
============================

Exchange Adapters.

============================

One subpackage per venue. Each holds a REST client (`client`), the
venue's response models (`data`) and the BotExchange implementation
(`exchange`) built on irix.exchange.Base.
"""
