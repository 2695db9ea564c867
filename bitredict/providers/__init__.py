"""Provider integrations.

Adapters around the external result sources: SportMonks for football
fixtures and results, Coinpaprika for crypto spot prices.
"""

from . import coinpaprika as coinpaprika
from . import sportmonks as sportmonks

__all__ = ["coinpaprika", "sportmonks"]
