"""Code Vortex core.

Two resilience components consumed by the web layer:
- ProviderChain: ordered fallback across interchangeable AI backends
- ResilientStore: durable (PostgreSQL) persistence with in-memory fallback
"""

__version__ = "0.1.0"
