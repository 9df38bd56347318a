"""
Exchange Adapters Package

This package contains one adapter per supported exchange. Each exchange has
its own subfolder whose __init__.py defines an ExchangeAdapter subclass:

- binance: BinanceAdapter
- bybit:   BybitAdapter
- mexc:    MEXCAdapter
- gate:    GateAdapter
- okx:     OKXAdapter

Adapters hold no state and do no I/O; adding an exchange means adding a
subfolder and registering the adapter in core.exchange_manager.
"""
