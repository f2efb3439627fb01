"""
Feature modules.

- ``src.modules.shared``: base service/repository and domain exceptions
- ``src.modules.progression``: progression ledger and reward engine
"""
