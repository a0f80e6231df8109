"""
zerogkit Client -- the entry point to 0G compute network services.

## Overview

The `zerogkit.client.client.Client` class exposes:

- **`zerogkit.client.inference`** -- chat inference: provider discovery, acknowledgment,
  per-request auth headers and the HTTP call, under retries and a per-request deadline
- **`zerogkit.client.connection`** -- the memoized, lazily initialized connection for one
  signing identity, and the prepaid ledger (balance, deposit, withdraw)

## Usage

```python
from zerogkit import Client, ZeroGConfig

config = ZeroGConfig(private_key="0x...", broker_factory="my_broker:create")

async with Client(config) as client:
    print(await client.chat("Hello!"))
    print(await client.use_llama("Tell me a joke"))
    print(await client.get_balance())
```

Blocking code can use `zerogkit.client.sync.SyncClient`, which runs the same client on a
background event loop.
"""

from .client import Client
from .connection import Connection, ConnectionRegistry
from .sync import SyncClient

__all__ = ["Client", "Connection", "ConnectionRegistry", "SyncClient"]
