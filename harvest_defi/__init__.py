"""Harvest Finance vaults and reward pools from Python.

- :py:class:`harvest_defi.sdk.HarvestSDK` is the entry point

- Catalogs come from the Harvest data API, see :py:mod:`harvest_defi.metadata`
"""
