"""
Core Package

Contains the exchange-agnostic core logic including:
- ExchangeAdapter: Abstract base class defining the contract for all exchanges
- ExchangeManager: Registry of adapters plus the shared SnapshotFetcher
- SnapshotFetcher / StreamManager: REST (direct, then relay) and live kline streams
- CandleSeries / indicators: Bounded candle buffer and the indicators computed over it
- Schemas: Pydantic models for normalized data structures (Candle, TickerSnapshot, ...)

This layer ensures all exchanges follow the same interface, making the system modular and scalable.
"""
