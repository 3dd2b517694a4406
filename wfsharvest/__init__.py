"""wfsharvest - Harvest and catalogue WFS services.

Fetches GetCapabilities documents from WFS endpoints (1.0.0, 1.1.0, 2.0.0),
extracts service and layer metadata with tolerant fallback strategies,
classifies layers and probes them for queryability.
"""

__version__ = "0.1.0"
