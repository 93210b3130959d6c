"""Core mathematics for the StakePool syndicate engine.

This package contains pure, storage-agnostic building blocks:

- ``fee_schedule``: tiered platform fee rate by active-investor count
- ``hedge_math``: anchor/hedge ("middle") profit branches and solvers
- ``distribution``: pro-rata allocation of a day's gross P&L to investors
- ``enums``: wager, ledger and participant enumerations
- ``errors``: exception hierarchy shared with the services layer

Nothing in this package imports from ``stakepool.services`` or
``stakepool.models``.  All modules are side-effect-free and unit-testable in
isolation.
"""
